from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from lineclaim.logging_config import set_cycle_id
from lineclaim.store import LineStore, StoreError, StoreIOError, clean_lines
from lineclaim.telemetry import Telemetry

logger = logging.getLogger(__name__)


class CoordinatorStopped(RuntimeError):
    """Raised for claims submitted while the coordinator is not running."""


@dataclass(slots=True)
class ClaimResult:
    claimed: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ClaimJob:
    cycle_id: int
    candidates: list[str]
    limit: int
    enqueued_at: float
    future: asyncio.Future[ClaimResult]


@dataclass(slots=True)
class Decision:
    claimed: list[str]
    rejected: list[str]
    rejected_for_limit: int


def decide(candidates: list[str], granted: set[str], limit: int) -> Decision:
    """Split candidates into grants and denials against a granted-set snapshot.

    ``granted`` is updated in place so later duplicates in the batch are denied.
    """
    claimed: list[str] = []
    rejected: list[str] = []
    rejected_for_limit = 0
    for candidate in candidates:
        if len(claimed) >= limit:
            rejected.append(candidate)
            rejected_for_limit += 1
            continue
        if candidate in granted:
            rejected.append(candidate)
            continue
        granted.add(candidate)
        claimed.append(candidate)
    return Decision(claimed=claimed, rejected=rejected, rejected_for_limit=rejected_for_limit)


class ClaimCoordinator:
    """Run claim cycles one at a time, in submission order, on a single worker task."""

    def __init__(self, store: LineStore, telemetry: Telemetry) -> None:
        self._store = store
        self._telemetry = telemetry
        self._queue: asyncio.Queue[ClaimJob | None] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._accepting = False
        self._next_cycle_id = 0
        self._cycles_completed = 0

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def is_running(self) -> bool:
        return self._accepting and self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._accepting = True
        self._task = asyncio.create_task(self._run_loop(), name="claim-coordinator")
        logger.info("claim coordinator started for %s", self._store.path)

    async def stop(self) -> None:
        self._accepting = False
        if self._task is not None:
            if not self._task.done():
                self._queue.put_nowait(None)
            await self._task
            self._task = None

        while not self._queue.empty():
            try:
                job = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if job is not None and not job.future.done():
                job.future.set_exception(CoordinatorStopped("coordinator stopped before execution"))
            self._queue.task_done()

        self._telemetry.set_queue_depth(self.queue_depth)
        logger.info("claim coordinator stopped after %d cycles", self._cycles_completed)

    async def claim(self, candidates: Iterable[object], limit: int | None = None) -> ClaimResult:
        if isinstance(candidates, (str, bytes)):
            raise TypeError("candidates must be a sequence of lines, not a single string")
        if limit is not None and limit < 0:
            raise ValueError("limit must be non-negative")

        cleaned = clean_lines(candidates)
        if not cleaned:
            return ClaimResult()
        if not self.is_running:
            raise CoordinatorStopped("claim coordinator is not running")

        self._next_cycle_id += 1
        future: asyncio.Future[ClaimResult] = asyncio.get_running_loop().create_future()
        job = ClaimJob(
            cycle_id=self._next_cycle_id,
            candidates=cleaned,
            limit=len(cleaned) if limit is None else limit,
            enqueued_at=time.monotonic(),
            future=future,
        )
        self._queue.put_nowait(job)
        self._telemetry.set_queue_depth(self.queue_depth)

        # An admitted cycle always runs to completion, even if the caller goes away.
        return await asyncio.shield(future)

    async def _run_loop(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return
                await self._run_cycle(job)
            finally:
                self._queue.task_done()
                self._telemetry.set_queue_depth(self.queue_depth)

    async def _run_cycle(self, job: ClaimJob) -> None:
        set_cycle_id(f"claim-{job.cycle_id}")
        started_at = time.monotonic()
        self._telemetry.observe_queue_wait(started_at - job.enqueued_at)

        try:
            decision = await self._execute(job)
        except StoreError as exc:
            operation = exc.operation if isinstance(exc, StoreIOError) else "unknown"
            self._telemetry.record_store_failure(operation)
            logger.error(
                "claim cycle failed, rejecting %d candidates: %s", len(job.candidates), exc
            )
            result = self._fail_closed(job, exc, started_at)
        except Exception as exc:
            logger.exception(
                "unexpected error in claim cycle, rejecting %d candidates", len(job.candidates)
            )
            result = self._fail_closed(job, exc, started_at)
        else:
            result = ClaimResult(claimed=decision.claimed, rejected=decision.rejected)
            self._telemetry.record_cycle(
                granted=len(decision.claimed),
                rejected_duplicate=len(decision.rejected) - decision.rejected_for_limit,
                rejected_limit=decision.rejected_for_limit,
                duration=time.monotonic() - started_at,
            )
            logger.debug(
                "claim cycle granted %d of %d candidates",
                len(decision.claimed),
                len(job.candidates),
            )

        self._cycles_completed += 1
        if not job.future.done():
            job.future.set_result(result)

    async def _execute(self, job: ClaimJob) -> Decision:
        granted = await asyncio.to_thread(self._store.load)
        decision = decide(job.candidates, granted, job.limit)
        if decision.claimed:
            await asyncio.to_thread(self._store.append_unique, decision.claimed)
        return decision

    def _fail_closed(self, job: ClaimJob, exc: BaseException, started_at: float) -> ClaimResult:
        self._telemetry.record_failed_cycle(
            rejected=len(job.candidates),
            duration=time.monotonic() - started_at,
        )
        return ClaimResult(claimed=[], rejected=list(job.candidates), error=str(exc))
