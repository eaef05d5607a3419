"""
Unit Tests: Batch Partitioner

Tests:
    - split_range sizing and ordering
    - WorkerPool output ordering across worker counts
    - Worker failure and short output fail the batch
    - Spool cleanup
    - Worker processes ignore SIGINT and can be terminated
"""

import asyncio
import signal
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor

import lz4.frame
import pytest

from committer.core.config import RunSchedule
from committer.core.errors import ErrorCode
from committer.core.types import IndexRange, Timestamp
from committer.history.partitioner import (
    WorkerPool,
    Partition,
    ignore_interrupts,
    split_range,
)


RUN_START = 1_704_067_200


def make_schedule(per_day: int = 10, total: int = 1000) -> RunSchedule:
    return RunSchedule(
        run_start=Timestamp(RUN_START),
        total_days=max(1, total // per_day),
        commits_per_day=per_day,
        total_commits=total,
    )


class FailingExecutor(ThreadPoolExecutor):
    """Thread pool whose job for one worker raises."""

    def __init__(self, failing_worker: int) -> None:
        super().__init__(max_workers=4)
        self._failing_worker = failing_worker

    def submit(self, fn, *args, **kwargs):
        job = args[0]
        if job.worker_id == self._failing_worker:
            def crash():
                raise RuntimeError("worker crashed")
            return super().submit(crash)
        return super().submit(fn, *args, **kwargs)


class ShortExecutor(ThreadPoolExecutor):
    """Thread pool whose jobs report writing nothing."""

    def submit(self, fn, *args, **kwargs):
        return super().submit(lambda: 0)


class TestSplitRange:
    """Tests for split_range."""

    def test_five_over_four(self):
        """Batch 5 over 4 workers gives sizes 2,1,1,1."""
        ranges = split_range(IndexRange(1, 5), 4)
        assert [r.size for r in ranges] == [2, 1, 1, 1]
        assert ranges[0] == IndexRange(1, 2)
        assert ranges[-1] == IndexRange(5, 5)

    @pytest.mark.parametrize("size", [1, 2, 3, 10, 97, 1000, 1001])
    @pytest.mark.parametrize("workers", [1, 2, 3, 7, 13, 64])
    def test_sizes_balanced(self, size, workers):
        """Shares sum to the batch size and differ by at most one."""
        ranges = split_range(IndexRange(1, size), workers)
        sizes = [r.size for r in ranges]

        assert sum(sizes) == size
        assert max(sizes) - min(sizes) <= 1
        assert len(ranges) == min(size, workers)

    def test_contiguous(self):
        """Shares tile the batch without gaps or overlap."""
        ranges = split_range(IndexRange(101, 200), 7)
        assert ranges[0].start == 101
        assert ranges[-1].end == 200
        for left, right in zip(ranges, ranges[1:]):
            assert right.start == left.end + 1

    def test_zero_size_shares_skipped(self):
        """More workers than indices only yields non-empty shares."""
        ranges = split_range(IndexRange(1, 3), 8)
        assert ranges == [IndexRange(1, 1), IndexRange(2, 2), IndexRange(3, 3)]

    def test_nonpositive_worker_count(self):
        assert split_range(IndexRange(1, 4), 0) == [IndexRange(1, 4)]


class TestWorkerPool:
    """Tests for WorkerPool with thread executors."""

    @pytest.mark.parametrize("workers", [1, 2, 7, 13])
    def test_concatenation_ascending(self, workers, tmp_path):
        """Output is strictly ascending and complete for awkward batch sizes."""
        batch = IndexRange(50, 150)  # 101 indices

        async def run():
            with ThreadPoolExecutor(max_workers=4) as executor:
                with WorkerPool(workers, make_schedule(), seed=1, executor=executor,
                                spool_root=tmp_path) as pool:
                    partitions = (await pool.partition(batch)).unwrap()
                    return partitions, pool.collect(partitions).unwrap()

        partitions, specs = asyncio.run(run())
        indices = [s.index for s in specs]

        assert len(partitions) == workers
        assert indices == list(range(50, 151))
        assert all(s.selector == s.index % 10 for s in specs)

    def test_partitions_in_worker_order(self, tmp_path):
        """Partitions carry consecutive worker ids over consecutive shares."""
        async def run():
            with ThreadPoolExecutor(max_workers=2) as executor:
                with WorkerPool(4, make_schedule(), executor=executor, spool_root=tmp_path) as pool:
                    return (await pool.partition(IndexRange(1, 5))).unwrap()

        partitions = asyncio.run(run())
        assert [p.worker_id for p in partitions] == [0, 1, 2, 3]
        assert [p.range.size for p in partitions] == [2, 1, 1, 1]

    def test_collect_ignores_argument_order(self, tmp_path):
        async def run():
            with ThreadPoolExecutor(max_workers=2) as executor:
                with WorkerPool(3, make_schedule(), executor=executor, spool_root=tmp_path) as pool:
                    partitions = (await pool.partition(IndexRange(1, 30))).unwrap()
                    return pool.collect(list(reversed(partitions))).unwrap()

        specs = asyncio.run(run())
        assert [s.index for s in specs] == list(range(1, 31))

    def test_worker_failure_fails_batch(self, tmp_path):
        """A raising worker yields PartitionError for the whole batch."""
        async def run():
            executor = FailingExecutor(failing_worker=1)
            try:
                with WorkerPool(3, make_schedule(), executor=executor, spool_root=tmp_path) as pool:
                    return await pool.partition(IndexRange(1, 30))
            finally:
                executor.shutdown()

        result = asyncio.run(run())
        assert result.is_err()
        assert result.error.code == ErrorCode.PARTITION_WORKER_FAILED
        assert result.error.context["worker_id"] == 1

    def test_short_output_fails_batch(self, tmp_path):
        async def run():
            with ShortExecutor(max_workers=2) as executor:
                with WorkerPool(2, make_schedule(), executor=executor, spool_root=tmp_path) as pool:
                    return await pool.partition(IndexRange(1, 10))

        result = asyncio.run(run())
        assert result.is_err()
        assert result.error.code == ErrorCode.PARTITION_SHORT_OUTPUT

    def test_close_removes_spool(self, tmp_path):
        async def run():
            with ThreadPoolExecutor(max_workers=2) as executor:
                pool = WorkerPool(2, make_schedule(), executor=executor, spool_root=tmp_path)
                await pool.partition(IndexRange(1, 10))
                spool = pool.spool_dir
                assert any(spool.iterdir())
                pool.close()
                return spool

        spool = asyncio.run(run())
        assert not spool.exists()

    def test_default_process_pool(self, tmp_path):
        """The default executor runs jobs in child processes."""
        async def run():
            with WorkerPool(2, make_schedule(per_day=7), seed=3, spool_root=tmp_path) as pool:
                partitions = (await pool.partition(IndexRange(1, 64))).unwrap()
                return pool.collect(partitions).unwrap()

        specs = asyncio.run(run())
        assert [s.index for s in specs] == list(range(1, 65))

    def test_workers_ignore_interrupts(self):
        with ProcessPoolExecutor(max_workers=1, initializer=ignore_interrupts) as executor:
            handler = executor.submit(signal.getsignal, signal.SIGINT).result(timeout=30)
        assert handler == signal.SIG_IGN

    def test_terminate_stops_worker_processes(self, tmp_path):
        pool = WorkerPool(2, make_schedule(), spool_root=tmp_path)
        asyncio.run(pool.partition(IndexRange(1, 10))).unwrap()
        processes = list(pool._executor._processes.values())
        assert processes

        pool.terminate()
        for process in processes:
            process.join(timeout=10)
            assert not process.is_alive()
        pool.close()

    def test_terminate_leaves_injected_executor_running(self, tmp_path):
        with ThreadPoolExecutor(max_workers=2) as executor:
            pool = WorkerPool(2, make_schedule(), executor=executor, spool_root=tmp_path)
            pool.terminate()
            assert executor.submit(lambda: 1).result() == 1
            pool.close()


class TestPartitionLoad:
    """Tests for reading spool files back."""

    def write_spool(self, path, lines):
        with lz4.frame.open(path, mode="wt", encoding="utf-8") as fh:
            fh.write("\n".join(lines) + "\n")

    def test_truncated_spool(self, tmp_path):
        path = tmp_path / "worker_0.lz4"
        self.write_spool(path, [f"{i}|{RUN_START + i}|{i % 10}" for i in range(1, 4)])

        result = Partition(0, IndexRange(1, 5), path).load()
        assert result.is_err()
        assert result.error.code == ErrorCode.PARTITION_SHORT_OUTPUT

    def test_wrong_range(self, tmp_path):
        path = tmp_path / "worker_0.lz4"
        self.write_spool(path, [f"{i}|{RUN_START + i}|{i % 10}" for i in range(2, 7)])

        result = Partition(0, IndexRange(1, 5), path).load()
        assert result.is_err()
        assert result.error.code == ErrorCode.PARTITION_MALFORMED_OUTPUT

    def test_garbage_record(self, tmp_path):
        path = tmp_path / "worker_0.lz4"
        self.write_spool(path, ["1|not-a-number|1"])

        result = Partition(0, IndexRange(1, 1), path).load()
        assert result.is_err()
        assert result.error.code == ErrorCode.PARTITION_MALFORMED_OUTPUT

    def test_missing_file(self, tmp_path):
        result = Partition(0, IndexRange(1, 1), tmp_path / "absent.lz4").load()
        assert result.is_err()
