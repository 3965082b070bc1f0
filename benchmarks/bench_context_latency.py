"""Benchmark: get_context latency — per-call p50/p99.

Measures SmartContextWeaver.get_context() on a session of a few hundred
messages with a current query, so every call scores, boosts and packs
(the result cache only serves query-less calls).
"""
from __future__ import annotations

import asyncio
import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from context_weaver.session.weaver import SmartContextWeaver

_HISTORY: int = 300
_ITERATIONS: int = 500

_TOPICS = ("hotel", "flight", "museum", "restaurant", "train", "budget")


async def _build_session(weaver: SmartContextWeaver) -> None:
    for i in range(_HISTORY):
        topic = _TOPICS[i % len(_TOPICS)]
        role = "user" if i % 2 == 0 else "assistant"
        await weaver.add(
            "bench", role, f"Message {i} about the {topic} options for day {i % 7}.", pinned=False
        )


async def _measure() -> list[float]:
    weaver = SmartContextWeaver(token_limit=100_000)
    await _build_session(weaver)

    latencies_ms: list[float] = []
    for i in range(_ITERATIONS):
        query = f"what about the {_TOPICS[i % len(_TOPICS)]}"
        t0 = time.perf_counter()
        await weaver.get_context("bench", max_tokens=1_500, current_query=query)
        latencies_ms.append((time.perf_counter() - t0) * 1000)
    return latencies_ms


def bench_context_latency() -> dict[str, object]:
    """Benchmark get_context() per-call latency.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, p50_latency_ms, p99_latency_ms, memory_peak_mb.
    """
    latencies_ms = asyncio.run(_measure())

    sorted_lats = sorted(latencies_ms)
    n = len(sorted_lats)
    total = sum(latencies_ms) / 1000

    result: dict[str, object] = {
        "operation": "get_context_latency",
        "iterations": _ITERATIONS,
        "history_messages": _HISTORY,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(sum(latencies_ms) / n, 4),
        "p50_latency_ms": round(sorted_lats[n // 2], 4),
        "p99_latency_ms": round(sorted_lats[min(int(n * 0.99), n - 1)], 4),
        "memory_peak_mb": 0.0,
    }
    print(
        f"[bench_context_latency] {result['operation']}: "
        f"p50={result['p50_latency_ms']:.4f}ms  "
        f"p99={result['p99_latency_ms']:.4f}ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_context_latency()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "latency_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
