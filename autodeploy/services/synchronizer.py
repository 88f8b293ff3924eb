"""Bring a local working copy in line with a pushed branch.

A deployment on this host is a fixed sequence run against the working copy
at ``<repositories_dir>/<repository>``:

1. stage untracked files,
2. commit local edits (so they are never overwritten),
3. pull the branch from the remote,
4. push the merge result back if step 2 created a commit.

The synchronizer never switches branches. If the working copy has another
branch checked out, it reports a mismatch and does nothing; choosing which
branch a host serves is an operational decision made outside this service.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from autodeploy.schemas.outcomes import SyncResult, SyncStatus
from autodeploy.services.git_runner import GitRunner, render_command

logger = structlog.get_logger()

DEFAULT_COMMIT_MESSAGE = "Refreshing branch with updated files."

# Fragments of git's output when no author identity is configured
_IDENTITY_ERRORS = (
    "please tell me who you are",
    "author identity unknown",
    "unable to auto-detect email address",
)

# Characters git forbids in ref names (see git-check-ref-format)
_FORBIDDEN_REF_CHARS = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]")


class UnsafeRefError(ValueError):
    """Raised for branch names that are not valid git ref names."""


class GitCommandError(Exception):
    """A git command exited non-zero."""

    def __init__(self, args: Sequence[str], status: int, output: str) -> None:
        self.command = render_command(args)
        self.status = status
        self.output = output
        super().__init__(f"{self.command} exited with {status}")


def ensure_safe_ref(name: str) -> str:
    """Return ``name`` if it is a valid branch name, else raise ``UnsafeRefError``.

    Branch names arrive over the network. Beyond git's own rules, a leading
    ``-`` is rejected so a name can never be read as a command-line option.
    """
    if (
        not name
        or name.startswith(("-", "/", "."))
        or name.endswith(("/", ".", ".lock"))
        or name == "@"
        or ".." in name
        or "//" in name
        or "@{" in name
        or "/." in name
        or _FORBIDDEN_REF_CHARS.search(name)
    ):
        raise UnsafeRefError(f"refusing unsafe branch name {name!r}")
    return name


@dataclass(frozen=True)
class WorkingTreeStatus:
    """Summary of ``git status --porcelain``."""

    untracked: bool = False
    unstaged: bool = False
    staged: bool = False

    @property
    def has_changes(self) -> bool:
        return self.unstaged or self.staged

    @classmethod
    def parse(cls, porcelain: str) -> WorkingTreeStatus:
        untracked = unstaged = staged = False
        for line in porcelain.splitlines():
            if len(line) < 3:
                continue
            code = line[:2]
            if code == "??":
                untracked = True
            elif code != "!!":
                staged = staged or code[0] != " "
                unstaged = unstaged or code[1] != " "
        return cls(untracked=untracked, unstaged=unstaged, staged=staged)


@dataclass(frozen=True)
class RepositoryHandle:
    """A working copy and the branch it had checked out when opened."""

    path: str
    current_branch: str


class RepositorySynchronizer:
    """Runs the stage/commit/pull/push sequence for one working copy.

    Use ``await RepositorySynchronizer.open(...)`` to read the checked-out
    branch, then ``await sync.synchronize()``. Callers must hold the
    per-repository lock for the whole lifetime of the instance.
    """

    def __init__(
        self,
        runner: GitRunner,
        handle: RepositoryHandle,
        target_branch: str,
        *,
        remote: str = "origin",
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
        author_name: str = "www-data",
        author_email: str = "www-data@localhost",
    ) -> None:
        self._runner = runner
        self.handle = handle
        self.target_branch = ensure_safe_ref(target_branch)
        self._remote = remote
        self._commit_message = commit_message
        self._author_name = author_name
        self._author_email = author_email

    @classmethod
    async def open(
        cls,
        runner: GitRunner,
        repository_path: str,
        target_branch: str,
        **options: str,
    ) -> RepositorySynchronizer:
        """Read the checked-out branch and return a synchronizer for it.

        Raises:
            UnsafeRefError: if ``target_branch`` is not a valid branch name.
            GitCommandError: if the current branch cannot be read.
        """
        ensure_safe_ref(target_branch)
        args = ("rev-parse", "--abbrev-ref", "HEAD")
        status, output = await runner.run(args, repository_path)
        if status != 0:
            raise GitCommandError(args, status, output)
        handle = RepositoryHandle(path=repository_path, current_branch=output.strip())
        return cls(runner, handle, target_branch, **options)

    @property
    def is_valid_deployment(self) -> bool:
        """True when the working copy has the target branch checked out."""
        return self.handle.current_branch == self.target_branch

    async def synchronize(self) -> SyncResult:
        """Run the deployment sequence and report how it ended."""
        log = logger.bind(path=self.handle.path, branch=self.target_branch)
        if not self.is_valid_deployment:
            log.info("sync_branch_mismatch", checked_out=self.handle.current_branch)
            return SyncResult(
                status=SyncStatus.BRANCH_MISMATCH,
                output=f"{self.handle.current_branch} is checked out, not {self.target_branch}",
            )

        committed = pushed = False
        try:
            status = await self._status()
            commit_pending = False
            if status.untracked:
                log.info("sync_staging_untracked")
                await self._git("add", "-A")
                commit_pending = True
                status = await self._status()
            else:
                log.debug("sync_nothing_to_stage")

            if commit_pending or status.has_changes:
                log.info("sync_committing")
                await self._commit()
                committed = True
            else:
                log.debug("sync_nothing_to_commit")

            log.info("sync_pulling", remote=self._remote)
            await self._git("pull", self._remote, self.target_branch)

            if committed:
                log.info("sync_pushing", remote=self._remote)
                await self._git("push", self._remote, self.target_branch)
                pushed = True
        except GitCommandError as exc:
            log.error("sync_git_failed", command=exc.command, exit_status=exc.status, output=exc.output)
            return SyncResult(
                status=SyncStatus.SUBPROCESS_FAILURE,
                output=exc.output,
                command=exc.command,
                committed=committed,
                pushed=pushed,
            )

        log.info("sync_deployed", committed=committed, pushed=pushed)
        return SyncResult(status=SyncStatus.DEPLOYED, committed=committed, pushed=pushed)

    async def _run(self, args: Sequence[str]) -> tuple[int, str]:
        return await self._runner.run(list(args), self.handle.path)

    async def _git(self, *args: str) -> str:
        status, output = await self._run(args)
        if status != 0:
            raise GitCommandError(args, status, output)
        return output

    async def _status(self) -> WorkingTreeStatus:
        return WorkingTreeStatus.parse(await self._git("status", "--porcelain"))

    async def _commit(self) -> None:
        args = ("commit", "-a", "-m", self._commit_message)
        status, output = await self._run(args)
        if status != 0 and _identity_missing(output):
            logger.warning("sync_configuring_identity", path=self.handle.path, name=self._author_name)
            await self._git("config", "user.name", self._author_name)
            await self._git("config", "user.email", self._author_email)
            status, output = await self._run(args)
        if status != 0:
            raise GitCommandError(args, status, output)


def _identity_missing(output: str) -> bool:
    lowered = output.lower()
    return any(fragment in lowered for fragment in _IDENTITY_ERRORS)


async def synchronize(
    runner: GitRunner,
    repository_path: str,
    target_branch: str,
    **options: str,
) -> SyncResult:
    """Open a synchronizer for ``repository_path`` and run it.

    Failures to read the working copy or an invalid branch name are reported
    as ``subprocess_failure`` results rather than raised.
    """
    try:
        sync = await RepositorySynchronizer.open(runner, repository_path, target_branch, **options)
    except UnsafeRefError as exc:
        logger.warning("sync_unsafe_branch", path=repository_path, branch=target_branch)
        return SyncResult(status=SyncStatus.SUBPROCESS_FAILURE, output=str(exc))
    except GitCommandError as exc:
        logger.error("sync_open_failed", path=repository_path, command=exc.command, output=exc.output)
        return SyncResult(status=SyncStatus.SUBPROCESS_FAILURE, output=exc.output, command=exc.command)
    return await sync.synchronize()
