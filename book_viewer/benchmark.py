#!/usr/bin/env python3
"""
Micro-benchmark for the book store hot path.

Tests:
1. Frame decode throughput
2. Delta application throughput (insert/update/remove mix)
3. Snapshot application speed

Usage:
    python -m book_viewer.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

import orjson

from .datafeed.codec import FeedCodec
from .datafeed.orderbook import apply_message
from .types import DEFAULT_DEPTH, EMPTY_BOOK

FEED = "book_ui_1"
TICK = 0.5


def generate_mock_snapshot(base_price: float = 40000.0, levels: int = 25) -> str:
    """Generate a mock snapshot frame."""
    bids = [[base_price - (i + 1) * TICK, random.randint(1, 50000)] for i in range(levels)]
    asks = [[base_price + (i + 1) * TICK, random.randint(1, 50000)] for i in range(levels)]
    return orjson.dumps({
        "feed": f"{FEED}_snapshot",
        "product_id": "PI_XBTUSD",
        "bids": bids,
        "asks": asks,
    }).decode()


def generate_mock_update(base_price: float = 40000.0, changes: int = 6) -> str:
    """Generate a mock update frame; roughly 20% of changes are removals."""
    bids = []
    asks = []

    for _ in range(changes // 2):
        offset = random.randint(1, 30)
        bid_size = random.randint(1, 50000) if random.random() > 0.2 else 0
        ask_size = random.randint(1, 50000) if random.random() > 0.2 else 0
        bids.append([base_price - offset * TICK, bid_size])
        asks.append([base_price + offset * TICK, ask_size])

    return orjson.dumps({"feed": FEED, "product_id": "PI_XBTUSD", "bids": bids, "asks": asks}).decode()


def benchmark_decode(iterations: int = 50000) -> float:
    """Benchmark frame decoding."""
    print("\n=== Frame Decode Benchmark ===")

    codec = FeedCodec(FEED)
    frames = [generate_mock_update() for _ in range(iterations)]

    start = time.perf_counter()
    for frame in frames:
        codec.decode(frame)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Frames decoded: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} frames/sec")
    return rate


def benchmark_updates(iterations: int = 50000) -> float:
    """Benchmark delta application throughput."""
    print("\n=== Book Update Benchmark ===")

    codec = FeedCodec(FEED)
    book = apply_message(EMPTY_BOOK, codec.decode(generate_mock_snapshot()), DEFAULT_DEPTH)

    # Pre-decode so only the book store is measured
    updates = [codec.decode(generate_mock_update()) for _ in range(iterations)]

    start = time.perf_counter()
    for update in updates:
        book = apply_message(book, update, DEFAULT_DEPTH)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Updates applied: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} updates/sec")
    print(f"  Per update: {elapsed/iterations*1_000_000:.1f}µs")
    return rate


def benchmark_snapshots(iterations: int = 2000) -> float:
    """Benchmark snapshot application."""
    print("\n=== Snapshot Benchmark ===")

    codec = FeedCodec(FEED)
    snapshot = codec.decode(generate_mock_snapshot(levels=500))

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        apply_message(EMPTY_BOOK, snapshot, DEFAULT_DEPTH)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    std_time = stdev(times) * 1000 if len(times) > 1 else 0.0

    print(f"  Iterations: {iterations}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {std_time:.3f}ms")
    return avg_time


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("Book Viewer Performance Benchmark")
    print("=" * 60)

    benchmark_decode()
    benchmark_updates()
    benchmark_snapshots()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
