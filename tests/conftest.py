"""Test configuration and fixtures."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from repo_replicator.planning.directives import ReplicationDirective
from repo_replicator.working_copy import GitResult


class RecordingGitRunner:
    """Stand-in for `run_git` that records calls instead of running git.

    `clone` creates the target directory, like the real command would, and a missing `cwd`
    fails the call the way `run_git` reports it. Failures are configured per git subcommand
    (`clone`, `remote`, `branch`, `push`).
    """

    def __init__(self, *, clone_delay: float = 0.0) -> None:
        self.clone_delay = clone_delay
        self.failures: dict[str, GitResult] = {}
        self.calls: list[tuple[tuple[str, ...], Path]] = []
        self.max_concurrent_clones = 0
        self._active_clones = 0
        self._lock = threading.Lock()

    def fail(self, subcommand: str, *, stderr: str = "boom", timed_out: bool = False) -> None:
        self.failures[subcommand] = GitResult(returncode=128, stderr=stderr, timed_out=timed_out)

    def commands(self, subcommand: str) -> list[tuple[str, ...]]:
        with self._lock:
            return [args for args, _ in self.calls if args[0] == subcommand]

    def __call__(self, args: Sequence[str], *, cwd: Path, timeout: float) -> GitResult:
        args = tuple(args)
        with self._lock:
            self.calls.append((args, cwd))
            if args[0] == "clone":
                self._active_clones += 1
                self.max_concurrent_clones = max(self.max_concurrent_clones, self._active_clones)

        try:
            if not cwd.is_dir():
                return GitResult(returncode=-1, stderr=f"No such file or directory: {cwd}")
            if args[0] == "clone":
                if self.clone_delay:
                    time.sleep(self.clone_delay)
                if "clone" not in self.failures:
                    # Like git, a relative target is resolved against cwd.
                    (cwd / args[-1]).mkdir(parents=True, exist_ok=True)
            return self.failures.get(args[0], GitResult(returncode=0))
        finally:
            if args[0] == "clone":
                with self._lock:
                    self._active_clones -= 1


@pytest.fixture
def git_runner() -> RecordingGitRunner:
    return RecordingGitRunner()


@pytest.fixture
def make_directive() -> Callable[..., ReplicationDirective]:
    """Build a directive with sensible defaults; override any field by keyword."""

    def _make(**overrides: object) -> ReplicationDirective:
        fields: dict[str, object] = {
            "url": "https://github.com/acme/widget",
            "organization": "org1",
            "name": "demo",
            "description": "Test copy",
            "is_private": True,
            "count": 1,
        }
        fields.update(overrides)
        return ReplicationDirective(**fields)

    return _make


@pytest.fixture
def make_git_runner() -> Callable[..., RecordingGitRunner]:
    return RecordingGitRunner
