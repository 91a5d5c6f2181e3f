#!/usr/bin/env python3
"""Concurrent claim burst against a running service, with a uniqueness check."""

from __future__ import annotations

import argparse
import asyncio
import json
import random
import statistics
import time
from collections import Counter
from dataclasses import dataclass, field

import httpx


@dataclass
class BurstStats:
    sent: int = 0
    succeeded: int = 0
    failed: int = 0
    claimed: list[str] = field(default_factory=list)
    rejected: int = 0
    latencies: list[float] = field(default_factory=list)

    def merge(self, other: "BurstStats") -> None:
        self.sent += other.sent
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.claimed.extend(other.claimed)
        self.rejected += other.rejected
        self.latencies.extend(other.latencies)


def percentile(values: list[float], quantile: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(len(ordered) - 1, int(round((len(ordered) - 1) * quantile)))
    return ordered[index]


def make_batch(rng: random.Random, pool: list[str], batch_size: int) -> list[str]:
    return [rng.choice(pool) for _ in range(batch_size)]


async def worker(
    worker_id: int,
    base_url: str,
    pool: list[str],
    requests: int,
    batch_size: int,
    limit: int | None,
) -> BurstStats:
    rng = random.Random(worker_id * 7919 + int(time.time()))
    stats = BurstStats()

    async with httpx.AsyncClient(timeout=60.0) as client:
        for _ in range(requests):
            payload: dict[str, object] = {"lines": make_batch(rng, pool, batch_size)}
            if limit is not None:
                payload["limit"] = limit

            stats.sent += 1
            started = time.monotonic()
            try:
                response = await client.post(f"{base_url}/claim", json=payload)
            except httpx.HTTPError:
                stats.failed += 1
                continue
            stats.latencies.append(time.monotonic() - started)

            if response.status_code != 200:
                stats.failed += 1
                continue
            body = response.json()
            stats.succeeded += 1
            stats.claimed.extend(body.get("claimed", []))
            stats.rejected += len(body.get("rejected", []))

    return stats


async def run_burst(
    base_url: str,
    workers: int,
    requests: int,
    pool_size: int,
    batch_size: int,
    limit: int | None,
) -> BurstStats:
    run_tag = f"burst-{int(time.time())}"
    pool = [f"{run_tag}-{index}" for index in range(pool_size)]
    tasks = [
        asyncio.create_task(
            worker(
                worker_id=i,
                base_url=base_url,
                pool=pool,
                requests=requests,
                batch_size=batch_size,
                limit=limit,
            )
        )
        for i in range(workers)
    ]
    results = await asyncio.gather(*tasks)

    merged = BurstStats()
    for result in results:
        merged.merge(result)
    return merged


def main() -> None:
    parser = argparse.ArgumentParser(description="Fire concurrent claims and verify no line is granted twice.")
    parser.add_argument("--base-url", default="http://127.0.0.1:3000")
    parser.add_argument("--workers", type=int, default=20)
    parser.add_argument("--requests", type=int, default=25, help="Claims per worker")
    parser.add_argument("--pool-size", type=int, default=200, help="Distinct candidate lines")
    parser.add_argument("--batch-size", type=int, default=10)
    parser.add_argument("--limit", type=int, default=None)
    args = parser.parse_args()

    stats = asyncio.run(
        run_burst(
            base_url=args.base_url,
            workers=args.workers,
            requests=args.requests,
            pool_size=args.pool_size,
            batch_size=args.batch_size,
            limit=args.limit,
        )
    )

    duplicates = sorted(line for line, count in Counter(stats.claimed).items() if count > 1)
    report = {
        "workers": args.workers,
        "sent": stats.sent,
        "succeeded": stats.succeeded,
        "failed": stats.failed,
        "granted": len(stats.claimed),
        "rejected": stats.rejected,
        "double_grants": duplicates,
        "latency_p50_ms": percentile(stats.latencies, 0.50) * 1000,
        "latency_p95_ms": percentile(stats.latencies, 0.95) * 1000,
        "latency_avg_ms": statistics.mean(stats.latencies) * 1000 if stats.latencies else 0.0,
    }
    print(json.dumps(report, indent=2))
    if duplicates:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
