"""
Batch Partitioner: Parallel entry-spec preparation.

Splits a batch of indices into near-equal contiguous sub-ranges and
computes each sub-range on its own worker:

    batch 1..5, 4 workers  ->  [1-2] [3] [4] [5]

Each worker writes its records to an isolated lz4-framed spool file
(worker_<id>.lz4). Reading the spool files back in worker-id order
yields the batch in ascending index order.

Failure policy:
    A worker that raises, or writes fewer records than its sub-range
    holds, fails the whole batch. Nothing is retried and nothing from a
    failed batch reaches the assembler.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import signal
import tempfile
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import lz4.frame

from committer.core.types import Result, Ok, Err, IndexRange, EntrySpec
from committer.core.errors import PartitionError
from committer.core.config import RunSchedule
from committer.core import constants as C
from committer.history.timestamps import compute_entries, job_seed

logger = logging.getLogger(__name__)


def split_range(batch: IndexRange, worker_count: int) -> list[IndexRange]:
    """
    Divide `batch` into at most `worker_count` contiguous sub-ranges.

    The first (size % workers) sub-ranges get one extra index; workers
    that would receive nothing are skipped.
    """
    worker_count = max(1, worker_count)
    base, remainder = divmod(batch.size, worker_count)

    ranges: list[IndexRange] = []
    current = batch.start
    for worker in range(worker_count):
        count = base + (1 if worker < remainder else 0)
        if count == 0:
            continue
        ranges.append(IndexRange(current, current + count - 1))
        current += count
    return ranges


# =============================================================================
# WORKER JOB (runs in a child process)
# =============================================================================
@dataclass(frozen=True)
class PartitionJob:
    """Picklable description of one worker's share of a batch."""
    worker_id: int
    start: int
    end: int
    run_start: int
    commits_per_day: int
    output: str
    modulus: int = C.CONTENT_MODULUS
    seed: Optional[Sequence[int]] = None


def ignore_interrupts() -> None:
    """Worker initializer: SIGINT is handled by the parent process only."""
    signal.signal(signal.SIGINT, signal.SIG_IGN)


def prepare_partition(job: PartitionJob) -> int:
    """Compute one sub-range and spool it. Returns records written."""
    arrays = compute_entries(
        IndexRange(job.start, job.end),
        run_start=job.run_start,
        commits_per_day=job.commits_per_day,
        seed=job.seed,
        modulus=job.modulus,
    )
    records = arrays.records()
    with lz4.frame.open(job.output, mode="wt", encoding="utf-8") as fh:
        fh.write("\n".join(records))
        fh.write("\n")
    return len(records)


# =============================================================================
# PARTITION
# =============================================================================
@dataclass(frozen=True)
class Partition:
    """One worker's completed share of a batch."""
    worker_id: int
    range: IndexRange
    output: Path

    def load(self) -> Result[list[EntrySpec], PartitionError]:
        """Read the spool file back, checking it covers exactly `range`."""
        try:
            with lz4.frame.open(self.output, mode="rt", encoding="utf-8") as fh:
                lines = [line for line in fh.read().split("\n") if line]
        except (OSError, RuntimeError) as e:
            return Err(PartitionError.malformed_output(self.worker_id, str(e)))

        specs: list[EntrySpec] = []
        for line in lines:
            parsed = EntrySpec.from_record(line)
            if parsed.is_err():
                return Err(PartitionError.malformed_output(self.worker_id, parsed.error))
            specs.append(parsed.unwrap())

        if len(specs) != self.range.size:
            return Err(PartitionError.short_output(self.worker_id, self.range.size, len(specs)))
        if specs[0].index != self.range.start or specs[-1].index != self.range.end:
            return Err(PartitionError.malformed_output(
                self.worker_id,
                f"covers {specs[0].index}-{specs[-1].index}, expected {self.range}",
            ))
        return Ok(specs)


# =============================================================================
# WORKER POOL
# =============================================================================
class WorkerPool:
    """
    Runs partition jobs in parallel and joins them before returning.

    Owns its executor, its in-flight job handles and its spool
    directory. Workers share no mutable state.

    Usage:
        with WorkerPool(8, schedule) as pool:
            partitions = (await pool.partition(IndexRange(1, 100_000))).unwrap()
            specs = pool.collect(partitions).unwrap()
    """

    __slots__ = (
        "_worker_count", "_schedule", "_seed", "_modulus",
        "_executor", "_owns_executor", "_spool_dir", "_inflight",
    )

    def __init__(
        self,
        worker_count: int,
        schedule: RunSchedule,
        seed: Optional[int] = None,
        executor: Optional[Executor] = None,
        spool_root: Optional[Path] = None,
        modulus: int = C.CONTENT_MODULUS,
    ) -> None:
        self._worker_count = max(1, worker_count)
        self._schedule = schedule
        self._seed = seed
        self._modulus = modulus
        self._owns_executor = executor is None
        self._executor = executor or ProcessPoolExecutor(
            max_workers=self._worker_count,
            initializer=ignore_interrupts,
        )
        self._spool_dir = Path(tempfile.mkdtemp(
            prefix=C.SPOOL_PREFIX,
            dir=str(spool_root) if spool_root else None,
        ))
        self._inflight: set[asyncio.Future] = set()

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def spool_dir(self) -> Path:
        return self._spool_dir

    def _clear_spool(self) -> None:
        for path in self._spool_dir.glob("worker_*.lz4"):
            path.unlink(missing_ok=True)

    async def partition(self, batch: IndexRange) -> Result[list[Partition], PartitionError]:
        """Prepare every sub-range of `batch` in parallel."""
        self._clear_spool()
        loop = asyncio.get_running_loop()

        planned: list[tuple[int, IndexRange, Path]] = []
        futures: list[asyncio.Future] = []
        for worker_id, sub_range in enumerate(split_range(batch, self._worker_count)):
            output = self._spool_dir / f"worker_{worker_id}.lz4"
            job = PartitionJob(
                worker_id=worker_id,
                start=sub_range.start,
                end=sub_range.end,
                run_start=self._schedule.run_start.epoch_seconds,
                commits_per_day=self._schedule.commits_per_day,
                output=str(output),
                modulus=self._modulus,
                seed=job_seed(self._seed, worker_id, batch.start),
            )
            planned.append((worker_id, sub_range, output))
            futures.append(loop.run_in_executor(self._executor, prepare_partition, job))

        self._inflight.update(futures)
        try:
            outcomes = await asyncio.gather(*futures, return_exceptions=True)
        finally:
            self._inflight.difference_update(futures)

        partitions: list[Partition] = []
        for (worker_id, sub_range, output), outcome in zip(planned, outcomes):
            if isinstance(outcome, BaseException):
                return Err(PartitionError.worker_failed(worker_id, repr(sub_range), cause=outcome))
            if outcome != sub_range.size:
                return Err(PartitionError.short_output(worker_id, sub_range.size, outcome))
            partitions.append(Partition(worker_id=worker_id, range=sub_range, output=output))

        logger.debug(f"Prepared {batch} across {len(partitions)} workers")
        return Ok(partitions)

    def collect(self, partitions: Sequence[Partition]) -> Result[list[EntrySpec], PartitionError]:
        """Concatenate partition outputs in worker-id order."""
        specs: list[EntrySpec] = []
        for partition in sorted(partitions, key=lambda p: p.worker_id):
            loaded = partition.load()
            if loaded.is_err():
                return loaded
            specs.extend(loaded.unwrap())
        self._clear_spool()
        return Ok(specs)

    def cancel(self) -> None:
        """Best-effort cancellation of jobs that have not started."""
        for future in list(self._inflight):
            future.cancel()

    def terminate(self) -> None:
        """
        Cancel queued jobs and stop workers that are already running.

        Best effort: only an owned process pool can be terminated. The
        pool is unusable afterwards.
        """
        self.cancel()
        if not self._owns_executor:
            return
        processes = (getattr(self._executor, "_processes", None) or {}).values()
        running = [p for p in processes if p.is_alive()]
        self._executor.shutdown(wait=False, cancel_futures=True)
        for process in running:
            process.terminate()
        if running:
            logger.warning(f"Terminated {len(running)} worker processes")

    def close(self) -> None:
        """Stop the executor and remove the spool directory."""
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        shutil.rmtree(self._spool_dir, ignore_errors=True)

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *args) -> None:
        self.close()
