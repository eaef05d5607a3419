"""
Publishers: push a named reference to a remote.

Every publish sends the full current state of the reference, so a later
publish supersedes (and implicitly retries) an earlier failed one.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from committer.core.types import Result, Ok, Err
from committer.core.errors import PublishError
from committer.core import constants as C

logger = logging.getLogger(__name__)


def branch_of(ref: str) -> str:
    """Short branch name for a ref: refs/heads/main -> main."""
    prefix = "refs/heads/"
    return ref[len(prefix):] if ref.startswith(prefix) else ref


class Publisher(ABC):
    """Abstract remote publish interface."""

    @abstractmethod
    async def publish(self, ref: str) -> Result[None, PublishError]:
        """Push the current state of `ref`."""
        pass


class GitPushPublisher(Publisher):
    """
    `git push <remote> <branch> --quiet` as a child process.

    Cancelling `publish` terminates the child.
    """

    __slots__ = ("_repo_path", "_remote", "_git")

    def __init__(
        self,
        repo_path: Path,
        remote: str = C.DEFAULT_REMOTE,
        git_binary: str = "git",
    ) -> None:
        self._repo_path = Path(repo_path)
        self._remote = remote
        self._git = git_binary

    @property
    def remote(self) -> str:
        return self._remote

    async def publish(self, ref: str) -> Result[None, PublishError]:
        branch = branch_of(ref)
        try:
            proc = await asyncio.create_subprocess_exec(
                self._git, "push", self._remote, branch, "--quiet",
                cwd=str(self._repo_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
                # Own session: a terminal Ctrl-C reaches only the committer
                start_new_session=True,
            )
        except OSError as e:
            return Err(PublishError.rejected(ref, -1, str(e)))

        try:
            _, err = await proc.communicate()
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if proc.returncode != 0:
            return Err(PublishError.rejected(ref, proc.returncode, err.decode(errors="replace")))
        logger.debug(f"Pushed {branch} to {self._remote}")
        return Ok(None)
