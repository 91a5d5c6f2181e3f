from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

CLAIM_CYCLES_TOTAL = Counter(
    "claim_cycles_total",
    "Completed claim cycles by outcome.",
    ["result"],
)
LINES_GRANTED_TOTAL = Counter(
    "lines_granted_total",
    "Identifiers granted to claimers.",
)
LINES_REJECTED_TOTAL = Counter(
    "lines_rejected_total",
    "Identifiers denied to claimers.",
    ["reason"],
)
LINES_INGESTED_TOTAL = Counter(
    "lines_ingested_total",
    "Identifiers written through the bulk ingestion path.",
)
STORE_FAILURES_TOTAL = Counter(
    "store_failures_total",
    "Line store read/write failures.",
    ["operation"],
)

CLAIM_QUEUE_DEPTH = Gauge("claim_queue_depth", "Claim cycles waiting for the serializer.")

CLAIM_CYCLE_SECONDS = Histogram(
    "claim_cycle_seconds",
    "Time spent inside the read-decide-write section.",
)
CLAIM_QUEUE_WAIT_SECONDS = Histogram(
    "claim_queue_wait_seconds",
    "Time from admission to the start of a claim cycle.",
)


class Telemetry:
    def record_cycle(
        self,
        granted: int,
        rejected_duplicate: int,
        rejected_limit: int,
        duration: float,
    ) -> None:
        CLAIM_CYCLES_TOTAL.labels(result="ok").inc()
        LINES_GRANTED_TOTAL.inc(max(0, granted))
        LINES_REJECTED_TOTAL.labels(reason="duplicate").inc(max(0, rejected_duplicate))
        LINES_REJECTED_TOTAL.labels(reason="limit").inc(max(0, rejected_limit))
        CLAIM_CYCLE_SECONDS.observe(max(0.0, duration))

    def record_failed_cycle(self, rejected: int, duration: float) -> None:
        CLAIM_CYCLES_TOTAL.labels(result="failed").inc()
        LINES_REJECTED_TOTAL.labels(reason="failure").inc(max(0, rejected))
        CLAIM_CYCLE_SECONDS.observe(max(0.0, duration))

    def record_store_failure(self, operation: str) -> None:
        STORE_FAILURES_TOTAL.labels(operation=operation).inc()

    def add_ingested(self, count: int) -> None:
        LINES_INGESTED_TOTAL.inc(max(0, count))

    def observe_queue_wait(self, value: float) -> None:
        CLAIM_QUEUE_WAIT_SECONDS.observe(max(0.0, value))

    def set_queue_depth(self, queue_depth: int) -> None:
        CLAIM_QUEUE_DEPTH.set(max(0, queue_depth))

    @staticmethod
    def scrape() -> tuple[bytes, str]:
        return generate_latest(), CONTENT_TYPE_LATEST
