"""
Pipeline module: Batch scheduling and bounded background publishing.
"""

from committer.pipeline.publisher import Publisher, GitPushPublisher
from committer.pipeline.publish_queue import PublishQueue, PublishStats
from committer.pipeline.scheduler import BatchScheduler, RunSummary

__all__ = [
    "Publisher",
    "GitPushPublisher",
    "PublishQueue",
    "PublishStats",
    "BatchScheduler",
    "RunSummary",
]
