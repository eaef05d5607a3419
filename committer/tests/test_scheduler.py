"""
Integration Tests: Batch Scheduler

Drives the full partition -> assemble -> publish loop against the
in-memory store with thread-pool workers.

Tests:
    - End-to-end scenarios (two-day range, small batches, degenerate totals)
    - Batch failures stop the run and leave the ref at the last batch
    - Stop requests finish the current batch
    - Publishes are drained and metrics recorded
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import date

from committer.core.config import GeneratorConfig, RunSchedule
from committer.core.errors import ErrorCode
from committer.core.types import Ok, Identity
from committer.core import constants as C
from committer.history.assembler import HistoryAssembler
from committer.history.partitioner import WorkerPool
from committer.observability.metrics import MetricsCollector
from committer.pipeline.publish_queue import PublishQueue
from committer.pipeline.scheduler import BatchScheduler
from committer.store.backends import InMemoryObjectStore
from committer.store.content import ContentStore
from committer.tests.test_partitioner import FailingExecutor
from committer.tests.test_publish_queue import ScriptedPublisher


REF = "refs/heads/main"
IDENTITY = Identity(name="Test User", email="test@example.com")


def two_day_schedule() -> RunSchedule:
    return RunSchedule.from_config(GeneratorConfig(
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 2),
        max_commits_per_day=10,
    ))


class Harness:
    """Wires a scheduler over in-memory collaborators."""

    def __init__(self, schedule, executor, workers=4, batch_size=5, capacity=3,
                 publisher=None, tmp_path=None, seed=11):
        self.store = InMemoryObjectStore()
        self.metrics = MetricsCollector()
        self.publisher = publisher or ScriptedPublisher(delay=0.001)
        self.schedule = schedule
        self.executor = executor
        self.workers = workers
        self.batch_size = batch_size
        self.capacity = capacity
        self.tmp_path = tmp_path
        self.seed = seed
        self.pool = None
        self.queue = None
        self.scheduler = None

    async def build(self):
        content = ContentStore(self.store)
        (await content.warm()).unwrap()
        self.pool = WorkerPool(
            self.workers, self.schedule, seed=self.seed,
            executor=self.executor, spool_root=self.tmp_path,
        )
        assembler = HistoryAssembler(self.store, content, IDENTITY, REF)
        self.queue = PublishQueue(self.publisher, self.capacity, self.metrics)
        self.scheduler = BatchScheduler(
            self.pool, assembler, self.queue, self.schedule, self.batch_size, self.metrics,
        )
        return self.scheduler

    async def run(self, total=None):
        scheduler = await self.build()
        return await scheduler.run(total)


class TestScenarios:
    """End-to-end runs."""

    def test_two_day_range(self, tmp_path):
        with ThreadPoolExecutor(max_workers=4) as executor:
            harness = Harness(two_day_schedule(), executor, tmp_path=tmp_path)
            summary = asyncio.run(harness.run()).unwrap()

        chain = harness.store.history(REF)
        run_start = harness.schedule.run_start.epoch_seconds

        assert summary.total_commits == 20
        assert summary.last_index == 20
        assert summary.batches == 4
        assert not summary.interrupted
        assert len(chain) == 20
        for position, (_, record) in enumerate(chain, start=1):
            assert record.request.message == f"feat: commit {position}"
            day = (record.request.timestamp.epoch_seconds - run_start) // C.SECONDS_PER_DAY
            assert day == (0 if position <= 10 else 1)

    def test_batch_five_workers_four(self, tmp_path):
        with ThreadPoolExecutor(max_workers=4) as executor:
            harness = Harness(two_day_schedule(), executor, workers=4, batch_size=5,
                              tmp_path=tmp_path)
            summary = asyncio.run(harness.run(5)).unwrap()

        chain = harness.store.history(REF)
        assert summary.batches == 1
        assert len(chain) == 5
        assert chain[0][1].parent is None
        for (parent_oid, _), (_, record) in zip(chain, chain[1:]):
            assert record.parent == parent_oid
        assert harness.store.calls["update_ref"] == 1

    def test_zero_total_produces_one_entry(self, tmp_path):
        with ThreadPoolExecutor(max_workers=2) as executor:
            harness = Harness(two_day_schedule(), executor, tmp_path=tmp_path)
            summary = asyncio.run(harness.run(0)).unwrap()

        assert summary.total_commits == 1
        assert len(harness.store.history(REF)) == 1

    def test_last_batch_clamped(self, tmp_path):
        with ThreadPoolExecutor(max_workers=2) as executor:
            harness = Harness(two_day_schedule(), executor, batch_size=7, tmp_path=tmp_path)
            summary = asyncio.run(harness.run(17)).unwrap()

        assert summary.batches == 3
        assert len(harness.store.history(REF)) == 17

    def test_degenerate_batch_size(self, tmp_path):
        with ThreadPoolExecutor(max_workers=2) as executor:
            harness = Harness(two_day_schedule(), executor, batch_size=0, tmp_path=tmp_path)
            summary = asyncio.run(harness.run(3)).unwrap()

        assert summary.batches == 3
        assert len(harness.store.history(REF)) == 3

    def test_publishes_drained_and_metrics(self, tmp_path):
        publisher = ScriptedPublisher(delay=0.02)
        with ThreadPoolExecutor(max_workers=4) as executor:
            harness = Harness(two_day_schedule(), executor, capacity=1,
                              publisher=publisher, tmp_path=tmp_path)
            summary = asyncio.run(harness.run()).unwrap()

        assert publisher.calls == 4
        assert publisher.active == 0
        assert publisher.peak == 1
        assert summary.publishes.succeeded == 4
        assert harness.metrics.counter("commits_total").get() == 20
        assert harness.metrics.counter("batches_total").get() == 4
        assert harness.metrics.histogram("batch_seconds").count() == 4
        assert "commits_total 20.0" in harness.metrics.export_prometheus()

    def test_spool_removed(self, tmp_path):
        with ThreadPoolExecutor(max_workers=2) as executor:
            harness = Harness(two_day_schedule(), executor, tmp_path=tmp_path)
            asyncio.run(harness.run(10)).unwrap()

        assert not harness.pool.spool_dir.exists()


class TestFailures:
    """Batch-level failures."""

    def test_worker_failure_stops_run(self, tmp_path):
        executor = FailingExecutor(failing_worker=2)
        try:
            harness = Harness(two_day_schedule(), executor, tmp_path=tmp_path)
            result = asyncio.run(harness.run())
        finally:
            executor.shutdown()

        assert result.is_err()
        assert result.error.code == ErrorCode.PARTITION_WORKER_FAILED
        assert REF not in harness.store.refs
        assert harness.store.calls["write_commit"] == 0
        assert harness.publisher.calls == 0
        assert not harness.pool.spool_dir.exists()

    def test_assembly_fault_keeps_previous_batch(self, tmp_path):
        with ThreadPoolExecutor(max_workers=4) as executor:
            harness = Harness(two_day_schedule(), executor, tmp_path=tmp_path)
            harness.store.fail_after("write_commit", 7)
            result = asyncio.run(harness.run())

        assert result.is_err()
        assert result.error.code == ErrorCode.ASSEMBLY_STORE_FAILED
        chain = harness.store.history(REF)
        assert len(chain) == 5
        assert harness.publisher.calls == 1
        assert harness.queue.in_flight == 0


class TestStop:
    """Graceful stop requests."""

    def test_stop_before_run(self, tmp_path):
        with ThreadPoolExecutor(max_workers=2) as executor:
            harness = Harness(two_day_schedule(), executor, tmp_path=tmp_path)

            async def run():
                scheduler = await harness.build()
                scheduler.request_stop()
                return await scheduler.run()

            summary = asyncio.run(run()).unwrap()

        assert summary.interrupted
        assert summary.last_index == 0
        assert REF not in harness.store.refs

    def test_stop_finishes_current_batch(self, tmp_path):
        class StoppingPublisher(ScriptedPublisher):
            scheduler = None

            async def publish(self, ref):
                self.scheduler.request_stop()
                return Ok(None)

        publisher = StoppingPublisher()
        with ThreadPoolExecutor(max_workers=2) as executor:
            harness = Harness(two_day_schedule(), executor, publisher=publisher,
                              tmp_path=tmp_path)

            async def run():
                publisher.scheduler = await harness.build()
                return await publisher.scheduler.run()

            summary = asyncio.run(run()).unwrap()

        chain = harness.store.history(REF)
        assert summary.interrupted
        assert 5 <= summary.last_index < 20
        assert summary.last_index % 5 == 0
        assert len(chain) == summary.last_index
