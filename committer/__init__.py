"""
Git Committer: high-throughput synthetic commit history.

Generates a long, dated commit history in a local repository and
publishes it to a remote while it grows:
- Worker Pool: parallel per-index timestamp/content computation
- History Assembler: plumbing-only commit chain, one ref move per batch
- Batch Scheduler: partition -> assemble -> publish loop
- Publish Queue: bounded-concurrency background pushes with backpressure

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from committer.core.types import (
    Result,
    Ok,
    Err,
    ObjectId,
    Timestamp,
    IndexRange,
    EntrySpec,
    Identity,
)
from committer.core.errors import (
    CommitterError,
    SetupError,
    StorageError,
    PartitionError,
    AssemblyError,
    PublishError,
)
from committer.core.config import CommitterConfig, RunSchedule
from committer.store import ObjectStore, GitObjectStore, InMemoryObjectStore, ContentStore
from committer.history import WorkerPool, HistoryAssembler
from committer.pipeline import (
    Publisher,
    GitPushPublisher,
    PublishQueue,
    BatchScheduler,
    RunSummary,
)

__all__ = [
    # Version
    "__version__",
    # Result monad
    "Result",
    "Ok",
    "Err",
    # Types
    "ObjectId",
    "Timestamp",
    "IndexRange",
    "EntrySpec",
    "Identity",
    # Errors
    "CommitterError",
    "SetupError",
    "StorageError",
    "PartitionError",
    "AssemblyError",
    "PublishError",
    # Config
    "CommitterConfig",
    "RunSchedule",
    # Storage
    "ObjectStore",
    "GitObjectStore",
    "InMemoryObjectStore",
    "ContentStore",
    # History
    "WorkerPool",
    "HistoryAssembler",
    # Pipeline
    "Publisher",
    "GitPushPublisher",
    "PublishQueue",
    "BatchScheduler",
    "RunSummary",
]
