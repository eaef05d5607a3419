"""
Batch Scheduler: Drives partition -> assemble -> publish per batch.

    batch 1: [1 .. B]       partition ─► collect ─► append_batch ─► submit
    batch 2: [B+1 .. 2B]    partition ─► ...        (publish of batch 1 may
    ...                                              still be running)
    last:    [.. total]     clamped to the total count

The run stops early when a stop is requested (checked between batches)
or when a batch fails. Outstanding publishes are always drained before
the run returns, and the worker pool's spool directory is removed.
Cancelling the run terminates running workers and cancels outstanding
publishes instead.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional

from committer.core.types import Result, Ok, Err, IndexRange, ObjectId
from committer.core.errors import CommitterError
from committer.core.config import RunSchedule
from committer.history.partitioner import WorkerPool
from committer.history.assembler import HistoryAssembler
from committer.observability.logging import StructuredLogger
from committer.observability.metrics import MetricsCollector
from committer.pipeline.publish_queue import PublishQueue, PublishStats

logger = StructuredLogger(__name__)


@dataclass
class RunSummary:
    """Outcome of a scheduler run."""
    total_commits: int
    batches: int = 0
    last_index: int = 0
    tip: Optional[ObjectId] = None
    elapsed_seconds: float = 0.0
    interrupted: bool = False
    publishes: PublishStats = field(default_factory=PublishStats)

    @property
    def commits_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.last_index / self.elapsed_seconds


class BatchScheduler:
    """
    Sequential batch loop over the whole index range.

    Usage:
        scheduler = BatchScheduler(pool, assembler, queue, schedule, batch_size=100_000)
        summary = (await scheduler.run()).unwrap()
    """

    __slots__ = (
        "_pool", "_assembler", "_publish_queue", "_schedule", "_batch_size",
        "_stop", "_commits", "_batches", "_batch_seconds",
    )

    def __init__(
        self,
        pool: WorkerPool,
        assembler: HistoryAssembler,
        publish_queue: Optional[PublishQueue],
        schedule: RunSchedule,
        batch_size: int,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._pool = pool
        self._assembler = assembler
        self._publish_queue = publish_queue
        self._schedule = schedule
        self._batch_size = max(1, batch_size)
        self._stop = False

        metrics = metrics or MetricsCollector()
        self._commits = metrics.counter("commits_total", help_text="Entries made visible on the ref")
        self._batches = metrics.counter("batches_total", help_text="Completed batches")
        self._batch_seconds = metrics.histogram("batch_seconds", help_text="Wall time per batch")

    @property
    def stop_requested(self) -> bool:
        return self._stop

    def request_stop(self) -> None:
        """Finish the current batch, then stop."""
        if not self._stop:
            logger.warning("Stop requested; finishing current batch")
        self._stop = True

    async def run(self, total_count: Optional[int] = None) -> Result[RunSummary, CommitterError]:
        """
        Produce entries 1..total_count (default: the schedule's total).

        Returns the first batch-level failure, if any. Batches completed
        before the failure stay on the ref.
        """
        total = max(1, self._schedule.total_commits if total_count is None else total_count)
        summary = RunSummary(total_commits=total)
        started = time.perf_counter()

        logger.info(
            f"Generating {total:,} commits over {self._schedule.total_days} days "
            f"({self._schedule.commits_per_day}/day, batch size {self._batch_size:,}, "
            f"{self._pool.worker_count} workers)"
        )

        try:
            batch_start = 1
            while batch_start <= total and not self._stop:
                batch = IndexRange(batch_start, min(batch_start + self._batch_size - 1, total))
                number = summary.batches + 1

                with logger.context(batch=number):
                    outcome = await self._run_batch(batch, total, started)
                if outcome.is_err():
                    return Err(outcome.error)

                summary.batches = number
                summary.last_index = batch.end
                summary.tip = outcome.unwrap()
                batch_start = batch.end + 1
        except asyncio.CancelledError:
            logger.warning(f"Run cancelled after {summary.last_index:,} commits")
            self._pool.terminate()
            if self._publish_queue is not None:
                await self._publish_queue.cancel_all()
            raise
        finally:
            await self._release(summary, started)

        summary.interrupted = summary.last_index < total
        logger.info(
            f"Generated {summary.last_index:,} commits in {summary.elapsed_seconds:.2f}s "
            f"({summary.commits_per_second:,.0f} commits/sec)"
        )
        return Ok(summary)

    async def _release(self, summary: RunSummary, started: float) -> None:
        """Drain publishes and remove the spool, even when cancelled while draining."""
        try:
            if self._publish_queue is not None:
                try:
                    await self._publish_queue.drain_all()
                except asyncio.CancelledError:
                    await self._publish_queue.cancel_all()
                    raise
        finally:
            if self._publish_queue is not None:
                summary.publishes = self._publish_queue.stats
            self._pool.close()
            summary.elapsed_seconds = time.perf_counter() - started

    async def _run_batch(
        self,
        batch: IndexRange,
        total: int,
        started: float,
    ) -> Result[Optional[ObjectId], CommitterError]:
        logger.info(f"Executing batch {batch.start:,}-{batch.end:,}")

        with self._batch_seconds.time():
            batch_started = time.perf_counter()

            partitions = await self._pool.partition(batch)
            if partitions.is_err():
                logger.error(f"Partition failed: {partitions.error}")
                return partitions

            specs = self._pool.collect(partitions.unwrap())
            if specs.is_err():
                logger.error(f"Partition output unreadable: {specs.error}")
                return specs

            assembled = await self._assembler.append_batch(specs.unwrap())
            if assembled.is_err():
                return assembled
            result = assembled.unwrap()

            if self._publish_queue is not None:
                await self._publish_queue.submit(self._assembler.ref)

            elapsed = time.perf_counter() - batch_started

        self._commits.inc(result.count)
        self._batches.inc()

        overall = time.perf_counter() - started
        logger.info(
            f"Batch done: {result.count:,} commits in {elapsed:.2f}s "
            f"({result.count / max(elapsed, 1e-9):,.0f} commits/sec); "
            f"{batch.end:,}/{total:,} overall ({batch.end / max(overall, 1e-9):,.0f} commits/sec)"
        )
        return Ok(result.tip)
