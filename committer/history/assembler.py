"""
History Assembler: Sequential commit-chain construction from plumbing.

Builds one commit per entry spec without touching the working directory:

    parent tree listing (read once per batch)
        minus the tracked path
        plus  tracked path -> content blob for the entry's selector
    -> tree   (written once per selector per batch, then reused)
    -> commit (parent = current tip, dates = entry timestamp)

The branch ref moves once per batch, after every commit in the batch
has been written. A store fault mid-batch leaves the ref where it was.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from committer.core.types import (
    Result, Ok, Err,
    ObjectId, EntrySpec, TreeEntry, Identity, CommitRequest,
)
from committer.core.errors import AssemblyError, StorageError
from committer.core import constants as C
from committer.store.backends import ObjectStore
from committer.store.content import ContentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblyResult:
    """Outcome of extending the chain."""
    tip: Optional[ObjectId]
    count: int
    last_index: int = 0


class HistoryAssembler:
    """
    Single-writer chain extender.

    Usage:
        assembler = HistoryAssembler(store, content, identity, "refs/heads/main")
        result = await assembler.append_batch(specs)
    """

    __slots__ = (
        "_store", "_content", "_identity", "_ref", "_tracked_path",
        "_message_template", "_lock", "_last_index",
    )

    def __init__(
        self,
        store: ObjectStore,
        content: ContentStore,
        identity: Identity,
        ref: str,
        tracked_path: str = C.TRACKED_PATH,
        message_template: str = C.COMMIT_MESSAGE_TEMPLATE,
    ) -> None:
        self._store = store
        self._content = content
        self._identity = identity
        self._ref = ref
        self._tracked_path = tracked_path
        self._message_template = message_template
        self._lock = asyncio.Lock()
        self._last_index = 0

    @property
    def ref(self) -> str:
        return self._ref

    @property
    def last_index(self) -> int:
        """Highest entry index made visible through the ref."""
        return self._last_index

    async def _base_listing(
        self,
        tip: Optional[ObjectId],
    ) -> Result[list[TreeEntry], StorageError]:
        """Parent snapshot entries that every new snapshot keeps as-is."""
        if tip is None:
            return Ok([])
        result = await self._store.list_tree(tip)
        if result.is_err():
            return result
        return Ok([e for e in result.unwrap() if e.path != self._tracked_path])

    async def extend(
        self,
        tip: Optional[ObjectId],
        specs: Iterable[EntrySpec],
    ) -> Result[AssemblyResult, AssemblyError]:
        """
        Append one commit per spec on top of `tip`.

        Specs must arrive in strictly ascending index order. Does not
        move any ref.
        """
        base = await self._base_listing(tip)
        if base.is_err():
            return Err(AssemblyError.store_failed(0, base.error))
        base_entries = base.unwrap()

        trees: dict[int, ObjectId] = {}
        parent = tip
        count = 0
        previous: Optional[int] = None

        for spec in specs:
            if previous is not None and spec.index <= previous:
                return Err(AssemblyError.out_of_order(previous, spec.index))
            previous = spec.index

            tree = trees.get(spec.selector)
            if tree is None:
                blob = self._content.handle(spec.selector)
                if blob is None:
                    return Err(AssemblyError.unknown_selector(spec.index, spec.selector))
                written = await self._store.write_tree(
                    [*base_entries, TreeEntry(path=self._tracked_path, oid=blob)]
                )
                if written.is_err():
                    return Err(AssemblyError.store_failed(spec.index, written.error))
                tree = trees[spec.selector] = written.unwrap()

            commit = await self._store.write_commit(CommitRequest(
                tree=tree,
                parent=parent,
                timestamp=spec.timestamp,
                author=self._identity,
                committer=self._identity,
                message=self._message_template.format(index=spec.index),
            ))
            if commit.is_err():
                return Err(AssemblyError.store_failed(spec.index, commit.error))

            parent = commit.unwrap()
            count += 1

        return Ok(AssemblyResult(tip=parent, count=count, last_index=previous or 0))

    async def append_batch(
        self,
        specs: Iterable[EntrySpec],
    ) -> Result[AssemblyResult, AssemblyError]:
        """
        Extend the branch by one batch and publish the new tip to the ref.

        The ref is updated and the working directory refreshed exactly
        once, and only when the whole batch was written.
        """
        async with self._lock:
            current = await self._store.read_ref(self._ref)
            if current.is_err():
                return Err(AssemblyError.store_failed(0, current.error))

            result = await self.extend(current.unwrap(), specs)
            if result.is_err():
                logger.error(f"Batch aborted, {self._ref} left unchanged: {result.error}")
                return result

            assembled = result.unwrap()
            if assembled.count == 0:
                return result

            moved = await self._store.update_ref(self._ref, assembled.tip)
            if moved.is_err():
                return Err(AssemblyError.store_failed(assembled.last_index, moved.error))

            refreshed = await self._store.refresh_worktree()
            if refreshed.is_err():
                # Ref already moved; history is intact, only the checkout is stale
                logger.warning(f"Working directory refresh failed: {refreshed.error}")

            self._last_index = assembled.last_index
            return result
