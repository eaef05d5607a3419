"""
Object Store Backends: git plumbing and in-memory versioning stores.

Provides abstract interface for:
- Write immutable blob / tree / commit objects
- Read and move named references
- List the snapshot of a commit
- Refresh the working directory once per batch
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from committer.core.types import (
    Result, Ok, Err,
    ObjectId, TreeEntry, CommitRequest,
)
from committer.core.errors import StorageError, SetupError
from committer.core import constants as C

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Abstract object/versioning store interface."""

    @abstractmethod
    async def write_blob(self, data: bytes) -> Result[ObjectId, StorageError]:
        """Store immutable content."""
        pass

    @abstractmethod
    async def write_tree(
        self,
        entries: Sequence[TreeEntry],
    ) -> Result[ObjectId, StorageError]:
        """Store a snapshot listing."""
        pass

    @abstractmethod
    async def write_commit(
        self,
        request: CommitRequest,
    ) -> Result[ObjectId, StorageError]:
        """Store a history entry."""
        pass

    @abstractmethod
    async def update_ref(self, name: str, oid: ObjectId) -> Result[None, StorageError]:
        """Move a named reference."""
        pass

    @abstractmethod
    async def read_ref(self, name: str) -> Result[Optional[ObjectId], StorageError]:
        """Resolve a named reference; Ok(None) if it does not exist yet."""
        pass

    @abstractmethod
    async def list_tree(self, commit: ObjectId) -> Result[list[TreeEntry], StorageError]:
        """Top-level snapshot entries of a commit."""
        pass

    @abstractmethod
    async def refresh_worktree(self) -> Result[None, StorageError]:
        """Bring the working directory in line with HEAD."""
        pass

    @abstractmethod
    async def current_branch(self) -> Result[str, StorageError]:
        """Short name of the branch HEAD points at."""
        pass

    @abstractmethod
    async def is_clean(self) -> Result[bool, StorageError]:
        """True when tracked files have no staged or unstaged changes."""
        pass


# =============================================================================
# GIT PLUMBING BACKEND
# =============================================================================
class GitObjectStore(ObjectStore):
    """
    Object store backed by a local git repository.

    Every operation is one plumbing command run as a child process:
        write_blob      git hash-object -w --stdin
        write_tree      git mktree -z
        write_commit    git commit-tree
        update_ref      git update-ref
        read_ref        git rev-parse --verify --quiet
        list_tree       git ls-tree -z
        is_clean        git status --porcelain
    """

    def __init__(self, repo_path: Path, git_binary: str = "git") -> None:
        self._repo_path = repo_path
        self._git = git_binary
        # Read once; per-commit identity is layered on a copy
        self._base_env = dict(os.environ)

    @classmethod
    async def open(
        cls,
        repo_path: Path,
        git_binary: str = "git",
    ) -> Result[GitObjectStore, SetupError]:
        """Open an existing repository, failing if none is present."""
        store = cls(repo_path, git_binary)
        result = await store._run("rev-parse", "--git-dir")
        if result.is_err():
            return Err(SetupError.repository_missing(str(repo_path), cause=result.error))
        return Ok(store)

    @property
    def repo_path(self) -> Path:
        return self._repo_path

    async def _exec(
        self,
        *args: str,
        stdin: Optional[bytes] = None,
        env: Optional[dict[str, str]] = None,
    ) -> tuple[int, bytes, bytes]:
        proc = await asyncio.create_subprocess_exec(
            self._git, *args,
            cwd=str(self._repo_path),
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env or self._base_env,
            # Own session: a terminal Ctrl-C reaches only the committer
            start_new_session=True,
        )
        try:
            out, err = await proc.communicate(stdin)
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise
        return proc.returncode, out, err

    async def _run(
        self,
        *args: str,
        stdin: Optional[bytes] = None,
        env: Optional[dict[str, str]] = None,
    ) -> Result[str, StorageError]:
        try:
            code, out, err = await self._exec(*args, stdin=stdin, env=env)
        except OSError as e:
            return Err(StorageError.command_failed(args, -1, str(e), cause=e))
        if code != 0:
            return Err(StorageError.command_failed(args, code, err.decode(errors="replace")))
        return Ok(out.decode("utf-8", errors="replace"))

    async def _run_oid(self, *args: str, stdin: Optional[bytes] = None,
                       env: Optional[dict[str, str]] = None) -> Result[ObjectId, StorageError]:
        result = await self._run(*args, stdin=stdin, env=env)
        if result.is_err():
            return result
        output = result.unwrap()
        parsed = ObjectId.parse(output)
        if parsed.is_err():
            return Err(StorageError.malformed_output(args[0], output))
        return parsed

    async def write_blob(self, data: bytes) -> Result[ObjectId, StorageError]:
        return await self._run_oid("hash-object", "-w", "--stdin", stdin=data)

    async def write_tree(
        self,
        entries: Sequence[TreeEntry],
    ) -> Result[ObjectId, StorageError]:
        payload = "".join(f"{e.to_mktree_line()}\0" for e in entries)
        return await self._run_oid("mktree", "-z", stdin=payload.encode("utf-8"))

    async def write_commit(
        self,
        request: CommitRequest,
    ) -> Result[ObjectId, StorageError]:
        args = ["commit-tree", request.tree.hex]
        if request.parent is not None:
            args += ["-p", request.parent.hex]
        args += ["-m", request.message]

        date = request.timestamp.to_git_date()
        env = {
            **self._base_env,
            "GIT_AUTHOR_NAME": request.author.name,
            "GIT_AUTHOR_EMAIL": request.author.email,
            "GIT_AUTHOR_DATE": date,
            "GIT_COMMITTER_NAME": request.committer.name,
            "GIT_COMMITTER_EMAIL": request.committer.email,
            "GIT_COMMITTER_DATE": date,
        }
        return await self._run_oid(*args, env=env)

    async def update_ref(self, name: str, oid: ObjectId) -> Result[None, StorageError]:
        return (await self._run("update-ref", name, oid.hex)).map(lambda _: None)

    async def read_ref(self, name: str) -> Result[Optional[ObjectId], StorageError]:
        args = ("rev-parse", "--verify", "--quiet", f"{name}^{{commit}}")
        try:
            code, out, err = await self._exec(*args)
        except OSError as e:
            return Err(StorageError.command_failed(args, -1, str(e), cause=e))
        if code == 1 and not out.strip():
            return Ok(None)  # unborn branch
        if code != 0:
            return Err(StorageError.command_failed(args, code, err.decode(errors="replace")))
        parsed = ObjectId.parse(out.decode())
        if parsed.is_err():
            return Err(StorageError.malformed_output("rev-parse", out.decode()))
        return parsed

    async def list_tree(self, commit: ObjectId) -> Result[list[TreeEntry], StorageError]:
        result = await self._run("ls-tree", "-z", commit.hex)
        if result.is_err():
            return result

        entries: list[TreeEntry] = []
        for line in result.unwrap().split("\0"):
            if not line:
                continue
            parsed = TreeEntry.from_ls_tree_line(line)
            if parsed.is_err():
                return Err(StorageError.malformed_output("ls-tree", line))
            entries.append(parsed.unwrap())
        return Ok(entries)

    async def refresh_worktree(self) -> Result[None, StorageError]:
        return (await self._run("reset", "--hard", "--quiet", "HEAD")).map(lambda _: None)

    async def current_branch(self) -> Result[str, StorageError]:
        result = await self._run("branch", "--show-current")
        if result.is_err():
            return result
        # Detached HEAD prints nothing
        return Ok(result.unwrap().strip() or C.DEFAULT_BRANCH)

    async def is_clean(self) -> Result[bool, StorageError]:
        # Untracked files are left alone by reset --hard
        result = await self._run("status", "--porcelain", "--untracked-files=no")
        return result.map(lambda out: not out.strip())


# =============================================================================
# IN-MEMORY BACKEND
# =============================================================================
@dataclass(frozen=True)
class CommitRecord:
    """Stored history entry."""
    tree: ObjectId
    parent: Optional[ObjectId]
    request: CommitRequest


class InMemoryObjectStore(ObjectStore):
    """
    Dictionary-backed store with git-compatible SHA-1 object ids.

    Intended for tests and dry runs. Supports fault injection:

        store.fail_after("write_commit", 3)   # 4th commit write fails
    """

    def __init__(self, branch: str = C.DEFAULT_BRANCH) -> None:
        self._branch = branch
        self.clean = True
        self.blobs: dict[ObjectId, bytes] = {}
        self.trees: dict[ObjectId, tuple[TreeEntry, ...]] = {}
        self.commits: dict[ObjectId, CommitRecord] = {}
        self.refs: dict[str, ObjectId] = {}
        self.calls: Counter[str] = Counter()
        self._faults: dict[str, int] = {}

    def fail_after(self, operation: str, calls: int) -> None:
        """Make `operation` fail once it has succeeded `calls` times."""
        self._faults[operation] = calls

    def _check_fault(self, operation: str) -> Optional[StorageError]:
        self.calls[operation] += 1
        limit = self._faults.get(operation)
        if limit is not None and self.calls[operation] > limit:
            return StorageError.command_failed((operation,), 128, "injected fault")
        return None

    @staticmethod
    def _hash(kind: str, body: bytes) -> ObjectId:
        header = f"{kind} {len(body)}\0".encode()
        return ObjectId(hex=hashlib.sha1(header + body).hexdigest())

    async def write_blob(self, data: bytes) -> Result[ObjectId, StorageError]:
        fault = self._check_fault("write_blob")
        if fault is not None:
            return Err(fault)
        oid = self._hash("blob", data)
        self.blobs[oid] = data
        return Ok(oid)

    async def write_tree(
        self,
        entries: Sequence[TreeEntry],
    ) -> Result[ObjectId, StorageError]:
        fault = self._check_fault("write_tree")
        if fault is not None:
            return Err(fault)
        for entry in entries:
            if entry.kind == "blob" and entry.oid not in self.blobs:
                return Err(StorageError.object_missing("blob", entry.oid.hex))

        # Git orders tree entries by name, with subtrees compared as "name/"
        ordered = tuple(sorted(
            entries,
            key=lambda e: e.path + "/" if e.kind == "tree" else e.path,
        ))
        body = b"".join(
            f"{e.mode.lstrip('0')} {e.path}\0".encode() + bytes.fromhex(e.oid.hex)
            for e in ordered
        )
        oid = self._hash("tree", body)
        self.trees[oid] = ordered
        return Ok(oid)

    async def write_commit(
        self,
        request: CommitRequest,
    ) -> Result[ObjectId, StorageError]:
        fault = self._check_fault("write_commit")
        if fault is not None:
            return Err(fault)
        if request.tree not in self.trees:
            return Err(StorageError.object_missing("tree", request.tree.hex))
        if request.parent is not None and request.parent not in self.commits:
            return Err(StorageError.object_missing("commit", request.parent.hex))

        date = request.timestamp.to_git_date()
        lines = [f"tree {request.tree.hex}"]
        if request.parent is not None:
            lines.append(f"parent {request.parent.hex}")
        lines.append(f"author {request.author} {date}")
        lines.append(f"committer {request.committer} {date}")
        body = ("\n".join(lines) + f"\n\n{request.message}\n").encode()

        oid = self._hash("commit", body)
        self.commits[oid] = CommitRecord(tree=request.tree, parent=request.parent, request=request)
        return Ok(oid)

    async def update_ref(self, name: str, oid: ObjectId) -> Result[None, StorageError]:
        fault = self._check_fault("update_ref")
        if fault is not None:
            return Err(fault)
        if oid not in self.commits:
            return Err(StorageError.object_missing("commit", oid.hex))
        self.refs[name] = oid
        return Ok(None)

    async def read_ref(self, name: str) -> Result[Optional[ObjectId], StorageError]:
        self.calls["read_ref"] += 1
        return Ok(self.refs.get(name))

    async def list_tree(self, commit: ObjectId) -> Result[list[TreeEntry], StorageError]:
        self.calls["list_tree"] += 1
        record = self.commits.get(commit)
        if record is None:
            return Err(StorageError.object_missing("commit", commit.hex))
        return Ok(list(self.trees[record.tree]))

    async def refresh_worktree(self) -> Result[None, StorageError]:
        self.calls["refresh_worktree"] += 1
        return Ok(None)

    async def current_branch(self) -> Result[str, StorageError]:
        return Ok(self._branch)

    async def is_clean(self) -> Result[bool, StorageError]:
        return Ok(self.clean)

    def history(self, ref: str) -> list[tuple[ObjectId, CommitRecord]]:
        """Walk first-parent history from `ref`, oldest first."""
        chain: list[tuple[ObjectId, CommitRecord]] = []
        oid = self.refs.get(ref)
        while oid is not None:
            record = self.commits[oid]
            chain.append((oid, record))
            oid = record.parent
        chain.reverse()
        return chain
