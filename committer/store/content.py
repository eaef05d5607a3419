"""
Content Store: Precomputed blob cache for the tracked file.

The history only ever records K distinct values of the tracked file
("0\\n" .. "9\\n"), so every blob is written once at startup and the
assembler looks handles up instead of hashing content per entry.
"""

from __future__ import annotations

import logging
from typing import Optional

from committer.core.types import Result, Ok, Err, ObjectId
from committer.core.errors import StorageError
from committer.core import constants as C
from committer.store.backends import ObjectStore

logger = logging.getLogger(__name__)


def selector_for(index: int, modulus: int = C.CONTENT_MODULUS) -> int:
    """Content value recorded by entry `index`."""
    return index % modulus


def content_bytes(selector: int) -> bytes:
    """File body for a selector, matching `echo $selector`."""
    return f"{selector}\n".encode("ascii")


class ContentStore:
    """
    Write-once, read-many cache of content objects.

    Usage:
        content = ContentStore(store)
        await content.warm()
        oid = content.handle(7)
    """

    __slots__ = ("_store", "_modulus", "_handles")

    def __init__(self, store: ObjectStore, modulus: int = C.CONTENT_MODULUS) -> None:
        if modulus < 1:
            raise ValueError(f"modulus must be >= 1, got {modulus}")
        self._store = store
        self._modulus = modulus
        self._handles: dict[int, ObjectId] = {}

    @property
    def modulus(self) -> int:
        return self._modulus

    async def materialize(self, selector: int) -> Result[ObjectId, StorageError]:
        """
        Return the object for `selector`, writing it on first use.

        Idempotent: later calls return the cached handle without
        touching the store.
        """
        if not 0 <= selector < self._modulus:
            raise ValueError(f"selector {selector} outside [0, {self._modulus})")

        cached = self._handles.get(selector)
        if cached is not None:
            return Ok(cached)

        result = await self._store.write_blob(content_bytes(selector))
        if result.is_ok():
            self._handles[selector] = result.unwrap()
        return result

    async def warm(self) -> Result[dict[int, ObjectId], StorageError]:
        """Materialize every selector value."""
        for selector in range(self._modulus):
            result = await self.materialize(selector)
            if result.is_err():
                return Err(result.error)
        logger.info(f"Pre-calculated {len(self._handles)} content objects")
        return Ok(dict(self._handles))

    def handle(self, selector: int) -> Optional[ObjectId]:
        """Cached handle, or None if not materialized."""
        return self._handles.get(selector)

    def __len__(self) -> int:
        return len(self._handles)
