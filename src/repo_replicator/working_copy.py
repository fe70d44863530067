"""Local source clones shared across provisioning tasks.

Each distinct source repository is cloned once per run into `<root>/<source_key>`. Tasks
that replicate the same source share that working copy: the first caller performs the
clone while later callers wait on the same future and see the same path or the same
`CloneError`.

Publishing a working copy into a new remote is a fixed pipeline of git steps:

1. `remove-origin`   git remote remove origin
2. `add-origin`      git remote add origin <new remote url>
3. `rename-branch`   git branch -M <primary branch>
4. `push`            git push --force -u origin <primary branch>

The first failing step stops the pipeline. Because the steps rewrite the shared clone's
`origin`, publishing holds a lock for that working copy (and only that one).
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GitResult:
    returncode: int
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class GitRunner(Protocol):
    def __call__(self, args: Sequence[str], *, cwd: Path, timeout: float) -> GitResult: ...


def run_git(args: Sequence[str], *, cwd: Path, timeout: float) -> GitResult:
    """Run `git <args>` in `cwd`, reporting the exit status instead of raising."""

    try:
        p = subprocess.run(
            ["git", *args],
            cwd=cwd,
            text=True,
            capture_output=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return GitResult(returncode=-1, stderr="Timeout", timed_out=True)
    except OSError as e:
        # Typically a missing cwd or git binary.
        return GitResult(returncode=-1, stderr=str(e))
    return GitResult(returncode=p.returncode, stderr=(p.stderr or "").strip())


@dataclass(frozen=True, slots=True)
class GitStep:
    name: str
    args: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class StepFailure:
    step: str
    cause: str


def run_pipeline(
    steps: Sequence[GitStep], *, cwd: Path, runner: GitRunner, timeout: float
) -> StepFailure | None:
    """Run steps in order; return the first failure, or None if every step succeeded."""

    for step in steps:
        result = runner(step.args, cwd=cwd, timeout=timeout)
        if result.ok:
            continue
        if result.timed_out:
            cause = "Timeout"
        else:
            cause = result.stderr or f"exit status {result.returncode}"
        return StepFailure(step=step.name, cause=cause)
    return None


class CloneError(RuntimeError):
    def __init__(self, source_key: str, cause: str) -> None:
        super().__init__(f"git clone failed for {source_key}: {cause}")
        self.source_key = source_key
        self.cause = cause


class PushError(RuntimeError):
    def __init__(self, step: str, cause: str, *, remote: str) -> None:
        super().__init__(f"git {step} failed for {remote}: {cause}")
        self.step = step
        self.cause = cause
        self.remote = remote


class WorkingCopyManager:
    """Clone-once cache of source repositories plus the publish pipeline."""

    def __init__(
        self,
        root: Path,
        *,
        runner: GitRunner = run_git,
        remote_url_template: str = "git@github.com:{organization}/{name}.git",
        primary_branch: str = "main",
        timeout_seconds: float = 600.0,
    ) -> None:
        # git resolves the clone target against its cwd, so the root must not be relative.
        self._root = root.absolute()
        self._runner = runner
        self._remote_url_template = remote_url_template
        self._primary_branch = primary_branch
        self._timeout = timeout_seconds

        self._lock = threading.Lock()
        self._clones: dict[str, Future[Path]] = {}
        self._publish_locks: dict[Path, threading.Lock] = {}

    @property
    def root(self) -> Path:
        return self._root

    def remote_url(self, *, organization: str, name: str) -> str:
        return self._remote_url_template.format(organization=organization, name=name)

    def ensure_cloned(self, source_key: str, source_url: str) -> Path:
        """Return the local clone for `source_key`, cloning it on first use.

        Raises:
            CloneError: If the clone failed (for this caller or the one that ran it).
        """

        with self._lock:
            future = self._clones.get(source_key)
            owner = future is None
            if future is None:
                future = Future()
                self._clones[source_key] = future

        if owner:
            self._populate(future, source_key, source_url)
        else:
            logger.debug("Waiting for shared clone", extra={"source_key": source_key})
        return future.result()

    def _populate(self, future: Future[Path], source_key: str, source_url: str) -> None:
        path = self._root / source_key
        try:
            if path.exists():
                # Left over from an earlier run or prepared by hand; used as-is.
                logger.info("Reusing existing local clone", extra={"path": str(path)})
                future.set_result(path)
                return

            self._root.mkdir(parents=True, exist_ok=True)
            logger.info(
                "Cloning source repository",
                extra={"source_key": source_key, "url": source_url},
            )
            failure = run_pipeline(
                [GitStep(name="clone", args=("clone", source_url, str(path)))],
                cwd=self._root,
                runner=self._runner,
                timeout=self._timeout,
            )
        except OSError as e:
            future.set_exception(CloneError(source_key, str(e)))
            return

        if failure is not None:
            logger.error(
                "Source clone failed",
                extra={"source_key": source_key, "url": source_url, "cause": failure.cause},
            )
            future.set_exception(CloneError(source_key, failure.cause))
            return
        future.set_result(path)

    def _publish_lock(self, path: Path) -> threading.Lock:
        with self._lock:
            lock = self._publish_locks.get(path)
            if lock is None:
                lock = threading.Lock()
                self._publish_locks[path] = lock
            return lock

    def publish(self, path: Path, *, organization: str, name: str) -> None:
        """Push the working copy at `path` into the new remote `organization/name`.

        Raises:
            PushError: Naming the first step that failed.
        """

        branch = self._primary_branch
        steps = [
            GitStep(name="remove-origin", args=("remote", "remove", "origin")),
            GitStep(
                name="add-origin",
                args=("remote", "add", "origin", self.remote_url(organization=organization, name=name)),
            ),
            GitStep(name="rename-branch", args=("branch", "-M", branch)),
            GitStep(name="push", args=("push", "--force", "-u", "origin", branch)),
        ]

        with self._publish_lock(path):
            failure = run_pipeline(steps, cwd=path, runner=self._runner, timeout=self._timeout)

        if failure is not None:
            raise PushError(failure.step, failure.cause, remote=f"{organization}/{name}")
        logger.info(
            "Mirrored source into new repository",
            extra={"organization": organization, "repository": name, "path": str(path)},
        )

    def teardown_all(self) -> None:
        """Delete every local clone. Failures are logged, never raised."""

        try:
            shutil.rmtree(self._root)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning(
                "Failed to delete local clone directory", extra={"path": str(self._root)}, exc_info=True
            )
        with self._lock:
            self._clones.clear()
            self._publish_locks.clear()
