"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions:
- Result/Either monads for zero-exception control flow
- Error hierarchy with programmatic error codes
- Configuration management with validation
"""

from committer.core.types import (
    Result,
    Ok,
    Err,
    ObjectId,
    Timestamp,
    IndexRange,
    EntrySpec,
    TreeEntry,
    Identity,
    CommitRequest,
)
from committer.core.errors import (
    ErrorCode,
    CommitterError,
    SetupError,
    StorageError,
    PartitionError,
    AssemblyError,
    PublishError,
)
from committer.core.config import CommitterConfig, RunSchedule

__all__ = [
    "Result",
    "Ok",
    "Err",
    "ObjectId",
    "Timestamp",
    "IndexRange",
    "EntrySpec",
    "TreeEntry",
    "Identity",
    "CommitRequest",
    "ErrorCode",
    "CommitterError",
    "SetupError",
    "StorageError",
    "PartitionError",
    "AssemblyError",
    "PublishError",
    "CommitterConfig",
    "RunSchedule",
]
