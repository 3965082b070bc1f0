"""Benchmark: SemanticIndex throughput — adds and searches per second.

Interleaves additions with searches so that most searches run against a
dirty index and pay for the IDF recalculation.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from context_weaver.context.semantic_index import SemanticIndex
from context_weaver.session.state import Message

_DOCUMENTS: int = 2_000
_SEARCH_EVERY: int = 10

_WORDS = (
    "hotel", "flight", "museum", "budget", "station", "breakfast", "window",
    "seat", "ticket", "dinner", "beach", "weather", "visa", "luggage",
)


def bench_index_throughput() -> dict[str, object]:
    """Benchmark SemanticIndex add+search throughput.

    Returns
    -------
    dict with keys: operation, iterations, searches, total_seconds,
    ops_per_second, avg_latency_ms, memory_peak_mb.
    """
    index = SemanticIndex()
    searches = 0

    t0 = time.perf_counter()
    for i in range(_DOCUMENTS):
        words = [_WORDS[(i * k) % len(_WORDS)] for k in (1, 3, 5, 7)]
        index.add(Message(id=f"m{i}", role="user", content=" ".join(words)))
        if i % _SEARCH_EVERY == 0:
            index.search(f"{_WORDS[i % len(_WORDS)]} {_WORDS[(i + 4) % len(_WORDS)]}")
            searches += 1
    total = time.perf_counter() - t0

    operations = _DOCUMENTS + searches
    result: dict[str, object] = {
        "operation": "semantic_index_throughput",
        "iterations": _DOCUMENTS,
        "searches": searches,
        "total_seconds": round(total, 4),
        "ops_per_second": round(operations / total, 1),
        "avg_latency_ms": round(total * 1000 / operations, 4),
        "memory_peak_mb": 0.0,
    }
    print(
        f"[bench_index_throughput] {result['operation']}: "
        f"{result['ops_per_second']:.1f} ops/s  "
        f"({searches} searches)"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_index_throughput()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "throughput_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
