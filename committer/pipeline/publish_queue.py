"""
Publish Queue: Bounded-concurrency background publishing.

Decouples "extend the history" from "publish the history":

    submit(ref) ──► wait while in_flight >= capacity  (Condition, no polling)
                ──► launch background publish task
                ──► return immediately

Completed tasks remove themselves and wake blocked submitters. Outcomes
are logged and counted, never retried; the next publish carries the full
branch anyway.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from committer.core.errors import PublishError
from committer.core import constants as C
from committer.observability.metrics import MetricsCollector
from committer.pipeline.publisher import Publisher

logger = logging.getLogger(__name__)


@dataclass
class PublishStats:
    """Running publish counters."""
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    peak_in_flight: int = 0


class PublishQueue:
    """
    Admits at most `capacity` concurrent publishes.

    Usage:
        queue = PublishQueue(GitPushPublisher(repo), capacity=3)
        await queue.submit("refs/heads/main")   # blocks only at the cap
        ...
        await queue.drain_all()
    """

    __slots__ = (
        "_publisher", "_capacity", "_tasks", "_condition", "_stats",
        "_outcomes", "_in_flight_gauge",
    )

    def __init__(
        self,
        publisher: Publisher,
        capacity: int = C.DEFAULT_PUSH_QUEUE_SIZE,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self._publisher = publisher
        self._capacity = max(1, capacity)
        self._tasks: set[asyncio.Task] = set()
        self._condition = asyncio.Condition()
        self._stats = PublishStats()
        self._outcomes = None
        self._in_flight_gauge = None
        if metrics is not None:
            self._outcomes = metrics.counter(
                "publish_total", ["outcome"], "Publish attempts by outcome",
            )
            self._in_flight_gauge = metrics.gauge(
                "publish_in_flight", help_text="Publishes currently running",
            )

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def peak_in_flight(self) -> int:
        """Largest concurrency observed so far."""
        return self._stats.peak_in_flight

    @property
    def stats(self) -> PublishStats:
        return self._stats

    async def submit(self, ref: str) -> asyncio.Task:
        """Launch a background publish of `ref`, waiting for a free slot."""
        async with self._condition:
            await self._condition.wait_for(lambda: len(self._tasks) < self._capacity)
            task = asyncio.create_task(self._publish(ref), name=f"publish:{ref}")
            self._tasks.add(task)
            self._stats.submitted += 1
            self._stats.peak_in_flight = max(self._stats.peak_in_flight, len(self._tasks))
            self._update_gauge()
        logger.debug(f"Publish of {ref} launched ({len(self._tasks)}/{self._capacity} in flight)")
        return task

    async def _publish(self, ref: str) -> None:
        outcome = "failed"
        try:
            result = await self._publisher.publish(ref)
            if result.is_ok():
                outcome = "ok"
                self._stats.succeeded += 1
            else:
                self._stats.failed += 1
                logger.warning(f"Publish failed: {result.error}")
        except asyncio.CancelledError:
            outcome = "cancelled"
            self._stats.cancelled += 1
            logger.warning(str(PublishError.cancelled(ref)))
            raise
        except Exception as e:
            self._stats.failed += 1
            logger.error(f"Publish of {ref} raised: {e!r}")
        finally:
            if self._outcomes is not None:
                self._outcomes.inc(outcome=outcome)
            async with self._condition:
                self._tasks.discard(asyncio.current_task())
                self._update_gauge()
                self._condition.notify_all()

    def _update_gauge(self) -> None:
        if self._in_flight_gauge is not None:
            self._in_flight_gauge.set(len(self._tasks))

    async def _forget_finished(self) -> None:
        # Tasks cancelled before their first step never reach their own cleanup
        async with self._condition:
            self._tasks = {t for t in self._tasks if not t.done()}
            self._update_gauge()
            self._condition.notify_all()

    async def drain_all(self) -> None:
        """Wait for every outstanding publish to finish."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        await self._forget_finished()

    async def cancel_all(self) -> None:
        """Cancel outstanding publishes and wait for them to unwind."""
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            logger.warning(f"Cancelling {len(pending)} outstanding publishes")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        await self._forget_finished()
