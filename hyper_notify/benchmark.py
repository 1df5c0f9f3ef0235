#!/usr/bin/env python3
"""
Micro-benchmark for the report pipeline.

Tests:
1. Bucketing throughput (numpy binning of raw positions)
2. Window selection speed
3. Report rendering speed
4. Full pass (bucket + select + render)

Usage:
    python -m hyper_notify.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

from .engine.aggregator import bucketize, price_window
from .engine.window import select_window
from .report.renderer import RenderOptions, render
from .types import Direction, InstrumentTotals, PositionRecord


def generate_mock_positions(
    base_price: float = 30.0,
    count: int = 100_000,
    spread: float = 0.2,
) -> list[PositionRecord]:
    """Generate positions scattered within +/- spread around base_price."""
    positions = []
    for _ in range(count):
        price = base_price * (1 + random.uniform(-spread, spread))
        size = random.uniform(1, 5000)
        if random.random() > 0.5:
            positions.append(PositionRecord(price, size, Direction.LONG))
        else:
            positions.append(PositionRecord(price, -size, Direction.SHORT))
    return positions


def totals_of(positions: list[PositionRecord]) -> InstrumentTotals:
    long_total = sum(p.size for p in positions if p.direction is Direction.LONG)
    short_total = sum(p.size for p in positions if p.direction is Direction.SHORT)
    return InstrumentTotals(long_total, short_total)


def _report(label: str, times: list[float]) -> None:
    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000 if len(times) > 1 else 0.0
    print(f"  Iterations: {len(times)}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")
    print(f"  Rate: {1000/avg_time:,.0f} {label}/sec")


def benchmark_bucketize(iterations: int = 50) -> None:
    """Benchmark binning of raw positions."""
    print("\n=== Bucketing Benchmark ===")

    positions = generate_mock_positions()
    low, high = price_window(30.0)

    # Warm up
    bucketize(positions[:1000], 0.5, low, high)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        bucketize(positions, 0.5, low, high)
        times.append(time.perf_counter() - start)

    print(f"  Positions per pass: {len(positions):,}")
    _report("passes", times)


def benchmark_select_window(iterations: int = 5000) -> None:
    """Benchmark closest-bucket search + slicing."""
    print("\n=== Window Selection Benchmark ===")

    buckets = bucketize(generate_mock_positions(count=20_000), 0.05)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        select_window(buckets, 30.0)
        times.append(time.perf_counter() - start)

    print(f"  Buckets: {len(buckets):,}")
    _report("selections", times)


def benchmark_render(iterations: int = 2000) -> None:
    """Benchmark report rendering."""
    print("\n=== Render Benchmark ===")

    positions = generate_mock_positions(count=20_000)
    window = select_window(bucketize(positions, 0.5), 30.0)
    totals = totals_of(positions)
    options = RenderOptions(show_bars=True)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        render(window, totals, "HYPE", "30.123", options)
        times.append(time.perf_counter() - start)

    _report("renders", times)


def benchmark_full_pass(iterations: int = 50) -> None:
    """Benchmark bucket + select + render (one report)."""
    print("\n=== Full Pass Benchmark ===")

    positions = generate_mock_positions()
    totals = totals_of(positions)
    low, high = price_window(30.0)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        buckets = bucketize(positions, 0.5, low, high)
        render(select_window(buckets, 30.0), totals, "HYPE", "30.0")
        times.append(time.perf_counter() - start)

    _report("reports", times)


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("hyper_notify Pipeline Benchmark")
    print("=" * 60)

    benchmark_bucketize()
    benchmark_select_window()
    benchmark_render()
    benchmark_full_pass()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
