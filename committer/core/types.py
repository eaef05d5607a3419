"""
Core Type Definitions for git-committer

Implements Result/Either monads for zero-exception control flow, plus the
value types that flow between the partitioner, the assembler and the
object store.

Design Principles:
- Never use null for absence (use Optional or Result)
- Value types are frozen and hashable
- Validate invariants at construction time
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    Optional,
    TypeVar,
    Union,
)

from committer.core import constants as C

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD: ZERO-EXCEPTION CONTROL FLOW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries full error context for exhaustive handling.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        """No-op on error variant - propagates error unchanged."""
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# OBJECT IDENTITY
# =============================================================================
_HEX_RE = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")


@dataclass(frozen=True, slots=True, order=True)
class ObjectId:
    """
    Content identity of a stored object (blob, tree or commit).

    Lowercase hex digest: 40 chars for SHA-1 repositories,
    64 chars for SHA-256 repositories.
    """

    hex: str

    def __post_init__(self) -> None:
        if not _HEX_RE.match(self.hex):
            raise ValueError(f"Invalid object id: {self.hex!r}")

    @classmethod
    def parse(cls, s: str) -> Result[ObjectId, str]:
        """Parse object id from command output."""
        try:
            return Ok(cls(hex=s.strip().lower()))
        except ValueError as e:
            return Err(str(e))

    @property
    def short(self) -> str:
        return self.hex[:10]

    def __str__(self) -> str:
        return self.hex


# =============================================================================
# TIMESTAMP WITH SECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Absolute instant in whole seconds since the Unix epoch (UTC).

    Git records author and committer dates at second resolution,
    so nothing finer is carried.
    """

    epoch_seconds: int

    @classmethod
    def from_datetime(cls, dt: datetime) -> Timestamp:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return cls(epoch_seconds=int(dt.timestamp()))

    def to_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.epoch_seconds, tz=timezone.utc)

    def to_git_date(self) -> str:
        """Git raw date format: '<epoch> <tz offset>'."""
        return f"{self.epoch_seconds} +0000"

    def to_iso(self) -> str:
        return self.to_datetime().strftime("%Y-%m-%dT%H:%M:%SZ")

    def __add__(self, seconds: int) -> Timestamp:
        return Timestamp(epoch_seconds=self.epoch_seconds + seconds)

    def __sub__(self, other: Timestamp) -> int:
        """Difference in seconds."""
        return self.epoch_seconds - other.epoch_seconds

    def __repr__(self) -> str:
        return f"Timestamp({self.to_iso()})"


# =============================================================================
# INDEX RANGES AND ENTRY SPECS
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class IndexRange:
    """
    Inclusive range of commit indices.

    Invariant: 1 <= start <= end
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 1:
            raise ValueError(f"start must be >= 1, got {self.start}")
        if self.end < self.start:
            raise ValueError(f"end ({self.end}) must be >= start ({self.start})")

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def __iter__(self):
        return iter(range(self.start, self.end + 1))

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and self.start <= index <= self.end

    def __repr__(self) -> str:
        return f"IndexRange({self.start}-{self.end})"


@dataclass(frozen=True, slots=True)
class EntrySpec:
    """
    One planned history entry: where it sits, when it happened,
    and which content value it records.
    """

    index: int
    timestamp: Timestamp
    selector: int

    def to_record(self) -> str:
        """Serialize to a spool line: index|epoch|selector."""
        sep = C.SPOOL_FIELD_SEPARATOR
        return f"{self.index}{sep}{self.timestamp.epoch_seconds}{sep}{self.selector}"

    @classmethod
    def from_record(cls, line: str) -> Result[EntrySpec, str]:
        parts = line.strip().split(C.SPOOL_FIELD_SEPARATOR)
        if len(parts) != 3:
            return Err(f"Malformed spool record: {line!r}")
        try:
            index, epoch, selector = (int(p) for p in parts)
        except ValueError:
            return Err(f"Non-numeric spool record: {line!r}")
        return Ok(cls(
            index=index,
            timestamp=Timestamp(epoch_seconds=epoch),
            selector=selector,
        ))


# =============================================================================
# SNAPSHOT AND ENTRY PRIMITIVES
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class TreeEntry:
    """Single (path -> object) reference inside a snapshot."""

    path: str
    oid: ObjectId
    mode: str = C.BLOB_MODE
    kind: str = "blob"

    def to_mktree_line(self) -> str:
        """Format accepted by `git mktree` (same as `git ls-tree`)."""
        return f"{self.mode} {self.kind} {self.oid.hex}\t{self.path}"

    @classmethod
    def from_ls_tree_line(cls, line: str) -> Result[TreeEntry, str]:
        try:
            meta, path = line.split("\t", 1)
            mode, kind, oid_hex = meta.split()
        except ValueError:
            return Err(f"Malformed tree line: {line!r}")
        return ObjectId.parse(oid_hex).map(
            lambda oid: cls(path=path, oid=oid, mode=mode, kind=kind)
        )


@dataclass(frozen=True, slots=True)
class Identity:
    """Author/committer identity."""

    name: str
    email: str

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True, slots=True)
class CommitRequest:
    """
    Everything needed to write one history entry.

    Passed explicitly to the store so that identity and dates never
    travel through process-wide environment variables.
    """

    tree: ObjectId
    parent: Optional[ObjectId]
    timestamp: Timestamp
    author: Identity
    committer: Identity
    message: str
