"""
Unit Tests: Object Store and Content Store

Tests:
    - Git-compatible object ids in the in-memory backend
    - Referential checks and fault injection
    - ContentStore materialization, caching and bounds
"""

import asyncio

import pytest

from committer.core.errors import ErrorCode
from committer.core.types import (
    ObjectId, TreeEntry, Timestamp, Identity, CommitRequest,
)
from committer.store.backends import InMemoryObjectStore
from committer.store.content import ContentStore, content_bytes, selector_for


EMPTY_BLOB = "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
IDENTITY = Identity(name="Test User", email="test@example.com")


class TestInMemoryObjectStore:
    """Tests for InMemoryObjectStore."""

    def test_blob_ids_match_git(self):
        store = InMemoryObjectStore()
        oid = asyncio.run(store.write_blob(b"")).unwrap()
        assert oid.hex == EMPTY_BLOB

    def test_empty_tree_matches_git(self):
        store = InMemoryObjectStore()
        oid = asyncio.run(store.write_tree([])).unwrap()
        assert oid.hex == EMPTY_TREE

    def test_tree_rejects_missing_blob(self):
        store = InMemoryObjectStore()
        entry = TreeEntry(path="a.txt", oid=ObjectId(EMPTY_BLOB))
        result = asyncio.run(store.write_tree([entry]))
        assert result.is_err()
        assert result.error.code == ErrorCode.STORAGE_OBJECT_MISSING

    def test_tree_order_independent(self):
        async def run():
            store = InMemoryObjectStore()
            a = (await store.write_blob(b"a\n")).unwrap()
            b = (await store.write_blob(b"b\n")).unwrap()
            first = await store.write_tree([TreeEntry("a.txt", a), TreeEntry("b.txt", b)])
            second = await store.write_tree([TreeEntry("b.txt", b), TreeEntry("a.txt", a)])
            return first.unwrap(), second.unwrap()

        first, second = asyncio.run(run())
        assert first == second

    def test_commit_chain_and_refs(self):
        async def run():
            store = InMemoryObjectStore()
            tree = (await store.write_tree([])).unwrap()
            root = (await store.write_commit(CommitRequest(
                tree=tree, parent=None, timestamp=Timestamp(1_000),
                author=IDENTITY, committer=IDENTITY, message="root",
            ))).unwrap()
            child = (await store.write_commit(CommitRequest(
                tree=tree, parent=root, timestamp=Timestamp(2_000),
                author=IDENTITY, committer=IDENTITY, message="child",
            ))).unwrap()
            (await store.update_ref("refs/heads/main", child)).unwrap()
            return store, root, child

        store, root, child = asyncio.run(run())
        assert [oid for oid, _ in store.history("refs/heads/main")] == [root, child]
        assert asyncio.run(store.read_ref("refs/heads/main")).unwrap() == child
        assert asyncio.run(store.read_ref("refs/heads/other")).unwrap() is None

    def test_commit_dates_change_id(self):
        """Same tree and parent with another date is another object."""
        async def run():
            store = InMemoryObjectStore()
            tree = (await store.write_tree([])).unwrap()
            ids = []
            for epoch in (1_000, 1_001):
                ids.append((await store.write_commit(CommitRequest(
                    tree=tree, parent=None, timestamp=Timestamp(epoch),
                    author=IDENTITY, committer=IDENTITY, message="same",
                ))).unwrap())
            return ids

        first, second = asyncio.run(run())
        assert first != second

    def test_update_ref_requires_commit(self):
        store = InMemoryObjectStore()
        result = asyncio.run(store.update_ref("refs/heads/main", ObjectId(EMPTY_BLOB)))
        assert result.is_err()

    def test_fault_injection(self):
        async def run():
            store = InMemoryObjectStore()
            store.fail_after("write_blob", 2)
            return [await store.write_blob(f"{i}".encode()) for i in range(4)]

        results = asyncio.run(run())
        assert [r.is_ok() for r in results] == [True, True, False, False]
        assert results[2].error.code == ErrorCode.STORAGE_COMMAND_FAILED


class TestContentStore:
    """Tests for ContentStore."""

    def test_content_bytes(self):
        assert content_bytes(0) == b"0\n"
        assert content_bytes(9) == b"9\n"

    def test_selector_for(self):
        assert [selector_for(i) for i in (1, 9, 10, 11, 100)] == [1, 9, 0, 1, 0]

    def test_warm_materializes_all(self):
        store = InMemoryObjectStore()
        content = ContentStore(store)
        handles = asyncio.run(content.warm()).unwrap()

        assert sorted(handles) == list(range(10))
        assert len(content) == 10
        for selector, oid in handles.items():
            assert store.blobs[oid] == f"{selector}\n".encode()
            assert content.handle(selector) == oid

    def test_materialize_idempotent(self):
        async def run():
            store = InMemoryObjectStore()
            content = ContentStore(store)
            first = (await content.materialize(4)).unwrap()
            second = (await content.materialize(4)).unwrap()
            await content.warm()
            await content.warm()
            return store, first, second

        store, first, second = asyncio.run(run())
        assert first == second
        assert store.calls["write_blob"] == 10

    def test_handle_before_materialize(self):
        content = ContentStore(InMemoryObjectStore())
        assert content.handle(3) is None

    @pytest.mark.parametrize("selector", [-1, 10, 42])
    def test_selector_out_of_range(self, selector):
        content = ContentStore(InMemoryObjectStore())
        with pytest.raises(ValueError):
            asyncio.run(content.materialize(selector))

    def test_warm_propagates_store_fault(self):
        store = InMemoryObjectStore()
        store.fail_after("write_blob", 5)
        content = ContentStore(store)

        result = asyncio.run(content.warm())
        assert result.is_err()
        assert len(content) == 5

    def test_invalid_modulus(self):
        with pytest.raises(ValueError):
            ContentStore(InMemoryObjectStore(), modulus=0)
