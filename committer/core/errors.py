"""
Exhaustive Error Hierarchy for git-committer

Design Principles:
- Forbid exceptions for control flow (use Result types)
- Never swallow errors or use null for absence
- Carry full error context for debugging

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis

Severity by family:
- SetupError: fatal, aborts before any entry is created
- PartitionError / AssemblyError / StorageError: fatal to the batch
- PublishError: logged and counted, the run continues
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence
from uuid import uuid4


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes grouped by subsystem:
    - 1xxx: Setup and configuration
    - 2xxx: Partitioning
    - 3xxx: Storage and assembly
    - 4xxx: Publishing
    - 9xxx: Internal
    """

    # Setup errors (1xxx)
    SETUP_REPOSITORY_MISSING = 1001
    SETUP_IDENTITY_MISSING = 1002
    SETUP_INVALID_CONFIGURATION = 1003
    SETUP_CONFIG_NOT_FOUND = 1004
    SETUP_WORKTREE_DIRTY = 1005

    # Partition errors (2xxx)
    PARTITION_WORKER_FAILED = 2001
    PARTITION_SHORT_OUTPUT = 2002
    PARTITION_MALFORMED_OUTPUT = 2003

    # Storage / assembly errors (3xxx)
    STORAGE_COMMAND_FAILED = 3001
    STORAGE_OBJECT_MISSING = 3002
    STORAGE_MALFORMED_OUTPUT = 3003
    ASSEMBLY_OUT_OF_ORDER = 3101
    ASSEMBLY_STORE_FAILED = 3102
    ASSEMBLY_UNKNOWN_SELECTOR = 3103

    # Publish errors (4xxx)
    PUBLISH_REJECTED = 4001
    PUBLISH_CANCELLED = 4002

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class CommitterError(Exception):
    """
    Base class for all git-committer errors.

    Errors are returned inside Err(...) and only raised at the
    process boundary.
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: float = field(default_factory=time.time)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logs."""
        data = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# SETUP ERRORS
# =============================================================================
@dataclass
class SetupError(CommitterError):
    """Faults detected before any entry is created."""

    @classmethod
    def repository_missing(
        cls,
        path: str,
        cause: Optional[Exception] = None,
    ) -> SetupError:
        return cls(
            code=ErrorCode.SETUP_REPOSITORY_MISSING,
            message=f"No git repository at {path}",
            cause=cause,
            context={"path": path},
        )

    @classmethod
    def identity_missing(cls) -> SetupError:
        return cls(
            code=ErrorCode.SETUP_IDENTITY_MISSING,
            message="Author identity (name and email) must be configured",
        )

    @classmethod
    def invalid_configuration(cls, reason: str) -> SetupError:
        return cls(
            code=ErrorCode.SETUP_INVALID_CONFIGURATION,
            message=f"Invalid configuration: {reason}",
            context={"reason": reason},
        )

    @classmethod
    def worktree_dirty(cls, path: str) -> SetupError:
        return cls(
            code=ErrorCode.SETUP_WORKTREE_DIRTY,
            message=f"Uncommitted changes found in {path}; commit or stash them first",
            context={"path": path},
        )

    @classmethod
    def config_not_found(cls, path: str) -> SetupError:
        return cls(
            code=ErrorCode.SETUP_CONFIG_NOT_FOUND,
            message=f"Configuration file {path} not found",
            context={"path": path},
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================
@dataclass
class StorageError(CommitterError):
    """Errors from the object/versioning store."""

    @classmethod
    def command_failed(
        cls,
        args: Sequence[str],
        returncode: int,
        stderr: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        command = " ".join(args)
        return cls(
            code=ErrorCode.STORAGE_COMMAND_FAILED,
            message=f"'git {command}' exited with {returncode}: {stderr.strip()[:200]}",
            cause=cause,
            context={"command": command, "returncode": returncode},
        )

    @classmethod
    def object_missing(cls, kind: str, oid: str) -> StorageError:
        return cls(
            code=ErrorCode.STORAGE_OBJECT_MISSING,
            message=f"{kind} {oid[:10]} not found",
            context={"kind": kind, "oid": oid},
        )

    @classmethod
    def malformed_output(cls, command: str, output: str) -> StorageError:
        return cls(
            code=ErrorCode.STORAGE_MALFORMED_OUTPUT,
            message=f"Unexpected output from '{command}': {output[:100]!r}",
            context={"command": command},
        )


# =============================================================================
# PARTITION ERRORS
# =============================================================================
@dataclass
class PartitionError(CommitterError):
    """A worker failed to produce its sub-range."""

    @classmethod
    def worker_failed(
        cls,
        worker_id: int,
        index_range: str,
        cause: Optional[Exception] = None,
    ) -> PartitionError:
        return cls(
            code=ErrorCode.PARTITION_WORKER_FAILED,
            message=f"Worker {worker_id} failed on {index_range}: {cause}",
            cause=cause,
            context={"worker_id": worker_id, "range": index_range},
        )

    @classmethod
    def short_output(
        cls,
        worker_id: int,
        expected: int,
        actual: int,
    ) -> PartitionError:
        return cls(
            code=ErrorCode.PARTITION_SHORT_OUTPUT,
            message=f"Worker {worker_id} produced {actual}/{expected} entries",
            context={"worker_id": worker_id, "expected": expected, "actual": actual},
        )

    @classmethod
    def malformed_output(cls, worker_id: int, reason: str) -> PartitionError:
        return cls(
            code=ErrorCode.PARTITION_MALFORMED_OUTPUT,
            message=f"Worker {worker_id} output unreadable: {reason}",
            context={"worker_id": worker_id, "reason": reason},
        )


# =============================================================================
# ASSEMBLY ERRORS
# =============================================================================
@dataclass
class AssemblyError(CommitterError):
    """Faults while extending the history chain."""

    @classmethod
    def out_of_order(cls, previous: int, current: int) -> AssemblyError:
        return cls(
            code=ErrorCode.ASSEMBLY_OUT_OF_ORDER,
            message=f"Entry {current} does not follow entry {previous}",
            context={"previous": previous, "current": current},
        )

    @classmethod
    def store_failed(cls, index: int, cause: Exception) -> AssemblyError:
        return cls(
            code=ErrorCode.ASSEMBLY_STORE_FAILED,
            message=f"Store write failed at entry {index}: {cause}",
            cause=cause,
            context={"index": index},
        )

    @classmethod
    def unknown_selector(cls, index: int, selector: int) -> AssemblyError:
        return cls(
            code=ErrorCode.ASSEMBLY_UNKNOWN_SELECTOR,
            message=f"Entry {index} references unmaterialized content {selector}",
            context={"index": index, "selector": selector},
        )


# =============================================================================
# PUBLISH ERRORS
# =============================================================================
@dataclass
class PublishError(CommitterError):
    """Remote publish failures. Non-fatal."""

    @classmethod
    def rejected(cls, ref: str, returncode: int, stderr: str) -> PublishError:
        return cls(
            code=ErrorCode.PUBLISH_REJECTED,
            message=f"Push of {ref} failed ({returncode}): {stderr.strip()[:200]}",
            context={"ref": ref, "returncode": returncode},
        )

    @classmethod
    def cancelled(cls, ref: str) -> PublishError:
        return cls(
            code=ErrorCode.PUBLISH_CANCELLED,
            message=f"Push of {ref} cancelled",
            context={"ref": ref},
        )
