"""Benchmark: Memory usage of a long-running weaver.

Uses tracemalloc to measure memory allocated while many sessions receive
messages and auto-summarization keeps trimming their history.
"""
from __future__ import annotations

import asyncio
import json
import sys
import tracemalloc
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from context_weaver.session.weaver import SmartContextWeaver

_SESSIONS: int = 50
_MESSAGES_PER_SESSION: int = 60


async def _fill(weaver: SmartContextWeaver) -> None:
    for s in range(_SESSIONS):
        session_id = f"session-{s}"
        for i in range(_MESSAGES_PER_SESSION):
            role = "user" if i % 2 == 0 else "assistant"
            await weaver.add(session_id, role, f"I need a quiet room near the station, note {i}.")
        await weaver.get_context(session_id)


def bench_weaver_memory_usage() -> dict[str, object]:
    """Benchmark memory usage during add+get_context cycles.

    Returns
    -------
    dict with keys: operation, iterations, peak_memory_kb, current_memory_kb,
    ops_per_second, avg_latency_ms.
    """
    tracemalloc.start()
    snapshot_before = tracemalloc.take_snapshot()

    weaver = SmartContextWeaver(token_limit=200)
    asyncio.run(_fill(weaver))

    snapshot_after = tracemalloc.take_snapshot()
    tracemalloc.stop()

    stats = snapshot_after.compare_to(snapshot_before, "lineno")
    total_bytes = sum(stat.size_diff for stat in stats if stat.size_diff > 0)
    peak_kb = round(total_bytes / 1024, 2)
    iterations = _SESSIONS * _MESSAGES_PER_SESSION

    result: dict[str, object] = {
        "operation": "weaver_memory_usage",
        "iterations": iterations,
        "peak_memory_kb": peak_kb,
        "current_memory_kb": peak_kb,
        "ops_per_second": 0.0,
        "avg_latency_ms": 0.0,
        "memory_peak_mb": round(peak_kb / 1024, 4),
    }
    print(
        f"[bench_memory_usage] {result['operation']}: "
        f"peak {peak_kb:.2f} KB over {iterations} messages"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_weaver_memory_usage()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "memory_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
