"""Git subprocess abstraction with protocol-based swappable implementations.

Production code uses ``SubprocessGitRunner`` which spawns ``git`` with
``asyncio.create_subprocess_exec`` (no shell), merges stderr into stdout and
enforces a timeout. Tests use ``InMemoryGitRunner`` which records every call
and replays scripted results, so the synchronizer state machine can be
exercised without a real working copy.
"""

from __future__ import annotations

import asyncio
import os
import shlex
from collections import defaultdict, deque
from collections.abc import Sequence
from typing import Protocol

import structlog

logger = structlog.get_logger()

# Exit statuses reported for calls that never produced one
TIMEOUT_STATUS = 124
NOT_RUNNABLE_STATUS = 127


def render_command(args: Sequence[str]) -> str:
    """Shell-quoted command line for logs and diagnostics."""
    return shlex.join(["git", *args])


class GitRunner(Protocol):
    """Protocol for running one git command against a working copy."""

    async def run(self, args: Sequence[str], cwd: str) -> tuple[int, str]:
        """Run ``git <args>`` inside ``cwd``.

        Returns the exit status and the combined stdout/stderr text.
        """
        ...


class SubprocessGitRunner:
    """Production runner spawning the git binary.

    Arguments are passed as a discrete argv, never through a shell. A call
    that exceeds ``timeout`` seconds is killed and reported as exit 124.
    """

    def __init__(self, git_bin: str = "git", timeout: float = 120.0) -> None:
        self._git_bin = git_bin
        self._timeout = timeout
        self._env = {**os.environ, "GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C"}

    async def run(self, args: Sequence[str], cwd: str) -> tuple[int, str]:
        """Run git and return ``(exit_status, combined_output)``."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self._git_bin,
                *args,
                cwd=cwd,
                env=self._env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            return NOT_RUNNABLE_STATUS, f"could not run {self._git_bin}: {exc}"

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("git_timeout", command=render_command(args), cwd=cwd, timeout=self._timeout)
            try:
                proc.kill()
                await proc.wait()
            except ProcessLookupError:
                pass
            return TIMEOUT_STATUS, f"timed out after {self._timeout}s"

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        return proc.returncode if proc.returncode is not None else NOT_RUNNABLE_STATUS, output


class InMemoryGitRunner:
    """Test double that records calls and replays scripted results.

    Results are queued per git subcommand (``"status"``, ``"commit"``...).
    Unscripted calls succeed with empty output, except ``rev-parse`` which
    reports ``current_branch``. Every call yields to the event loop once so
    concurrent callers can interleave.
    """

    def __init__(self, current_branch: str = "main") -> None:
        self.current_branch = current_branch
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self._scripted: dict[str, deque[tuple[int, str]]] = defaultdict(deque)

    def script(self, subcommand: str, *results: tuple[int, str]) -> None:
        """Queue results returned by the next calls of ``subcommand``."""
        self._scripted[subcommand].extend(results)

    def subcommands(self, cwd: str | None = None) -> list[str]:
        """Subcommands run so far, optionally for one working copy only."""
        return [args[0] for call_cwd, args in self.calls if cwd is None or call_cwd == cwd]

    async def run(self, args: Sequence[str], cwd: str) -> tuple[int, str]:
        """Record the call and return the next scripted result."""
        self.calls.append((cwd, tuple(args)))
        await asyncio.sleep(0)
        queue = self._scripted.get(args[0])
        if queue:
            return queue.popleft()
        if args[0] == "rev-parse":
            return 0, f"{self.current_branch}\n"
        return 0, ""
