"""Unit tests for shared local clones and the publish pipeline.

git itself is never run: `RecordingGitRunner` stands in for `run_git`.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import Mock

import pytest

from repo_replicator.working_copy import (
    CloneError,
    GitResult,
    GitStep,
    PushError,
    WorkingCopyManager,
    run_git,
    run_pipeline,
)

if TYPE_CHECKING:
    from conftest import RecordingGitRunner


def test_ensure_cloned_clones_once(tmp_path: Path, git_runner: RecordingGitRunner) -> None:
    manager = WorkingCopyManager(tmp_path / "localRepos", runner=git_runner)

    first = manager.ensure_cloned("widget", "https://github.com/acme/widget")
    second = manager.ensure_cloned("widget", "https://github.com/acme/widget")

    assert first == second == tmp_path / "localRepos" / "widget"
    assert git_runner.commands("clone") == [
        ("clone", "https://github.com/acme/widget", str(tmp_path / "localRepos" / "widget"))
    ]


def test_ensure_cloned_reuses_existing_directory(
    tmp_path: Path, git_runner: RecordingGitRunner
) -> None:
    root = tmp_path / "localRepos"
    (root / "widget").mkdir(parents=True)
    manager = WorkingCopyManager(root, runner=git_runner)

    assert manager.ensure_cloned("widget", "https://github.com/acme/widget") == root / "widget"
    assert git_runner.commands("clone") == []


def test_concurrent_requests_share_one_clone(
    tmp_path: Path, make_git_runner: Callable[..., RecordingGitRunner]
) -> None:
    runner = make_git_runner(clone_delay=0.2)
    manager = WorkingCopyManager(tmp_path / "localRepos", runner=runner)

    with ThreadPoolExecutor(max_workers=6) as pool:
        futures = [
            pool.submit(manager.ensure_cloned, "widget", "https://github.com/acme/widget")
            for _ in range(6)
        ]
        paths = {f.result() for f in futures}

    assert paths == {tmp_path / "localRepos" / "widget"}
    assert len(runner.commands("clone")) == 1
    assert runner.max_concurrent_clones == 1


def test_concurrent_requesters_observe_the_same_failure(
    tmp_path: Path, make_git_runner: Callable[..., RecordingGitRunner]
) -> None:
    runner = make_git_runner(clone_delay=0.1)
    runner.fail("clone", stderr="repository not found")
    manager = WorkingCopyManager(tmp_path / "localRepos", runner=runner)

    with ThreadPoolExecutor(max_workers=4) as pool:
        futures = [
            pool.submit(manager.ensure_cloned, "widget", "https://github.com/acme/widget")
            for _ in range(4)
        ]
        errors = []
        for f in futures:
            with pytest.raises(CloneError) as excinfo:
                f.result()
            errors.append(excinfo.value)

    assert len(runner.commands("clone")) == 1
    assert {e.cause for e in errors} == {"repository not found"}


def test_distinct_sources_clone_independently(
    tmp_path: Path, git_runner: RecordingGitRunner
) -> None:
    manager = WorkingCopyManager(tmp_path / "localRepos", runner=git_runner)

    manager.ensure_cloned("widget", "https://github.com/acme/widget")
    manager.ensure_cloned("gadget", "https://github.com/acme/gadget")

    assert len(git_runner.commands("clone")) == 2


def test_publish_runs_steps_in_order(tmp_path: Path, git_runner: RecordingGitRunner) -> None:
    manager = WorkingCopyManager(tmp_path / "localRepos", runner=git_runner, primary_branch="main")
    path = manager.ensure_cloned("widget", "https://github.com/acme/widget")

    manager.publish(path, organization="org1", name="demo-1")

    publish_calls = [(args, cwd) for args, cwd in git_runner.calls if args[0] != "clone"]
    assert publish_calls == [
        (("remote", "remove", "origin"), path),
        (("remote", "add", "origin", "git@github.com:org1/demo-1.git"), path),
        (("branch", "-M", "main"), path),
        (("push", "--force", "-u", "origin", "main"), path),
    ]


def test_publish_uses_remote_url_template(tmp_path: Path, git_runner: RecordingGitRunner) -> None:
    manager = WorkingCopyManager(
        tmp_path,
        runner=git_runner,
        remote_url_template="https://ghe.example.com/{organization}/{name}.git",
    )
    manager.publish(tmp_path, organization="org1", name="demo")

    assert ("remote", "add", "origin", "https://ghe.example.com/org1/demo.git") in [
        args for args, _ in git_runner.calls
    ]


def test_publish_stops_at_first_failed_step(
    tmp_path: Path, git_runner: RecordingGitRunner
) -> None:
    git_runner.fail("branch", stderr="not a valid branch name")
    manager = WorkingCopyManager(tmp_path, runner=git_runner)

    with pytest.raises(PushError) as excinfo:
        manager.publish(tmp_path, organization="org1", name="demo")

    assert excinfo.value.step == "rename-branch"
    assert excinfo.value.cause == "not a valid branch name"
    assert excinfo.value.remote == "org1/demo"
    assert git_runner.commands("push") == []


def test_run_pipeline_reports_timeout() -> None:
    runner = Mock(return_value=GitResult(returncode=-1, stderr="Timeout", timed_out=True))

    failure = run_pipeline(
        [GitStep(name="push", args=("push",)), GitStep(name="never", args=("status",))],
        cwd=Path("."),
        runner=runner,
        timeout=1.0,
    )

    assert failure is not None
    assert failure.step == "push"
    assert failure.cause == "Timeout"
    assert runner.call_count == 1


def test_run_pipeline_falls_back_to_exit_status() -> None:
    runner = Mock(return_value=GitResult(returncode=2, stderr=""))
    failure = run_pipeline(
        [GitStep(name="add-origin", args=("remote", "add"))], cwd=Path("."), runner=runner, timeout=1.0
    )
    assert failure is not None
    assert failure.cause == "exit status 2"


def test_run_git_converts_timeout(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _raise(*args: object, **kwargs: object) -> None:
        raise subprocess.TimeoutExpired(cmd="git", timeout=1.0)

    monkeypatch.setattr(subprocess, "run", _raise)
    result = run_git(["push"], cwd=tmp_path, timeout=1.0)

    assert result.timed_out
    assert not result.ok


def test_run_git_reports_exit_status(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    completed = subprocess.CompletedProcess(args=["git"], returncode=1, stdout="", stderr="fatal: x\n")
    run = Mock(return_value=completed)
    monkeypatch.setattr(subprocess, "run", run)

    result = run_git(["clone", "u", "p"], cwd=tmp_path, timeout=5.0)

    assert result == GitResult(returncode=1, stderr="fatal: x")
    assert run.call_args.args[0] == ["git", "clone", "u", "p"]
    assert run.call_args.kwargs["timeout"] == 5.0
    assert run.call_args.kwargs["check"] is False


def test_teardown_removes_root_and_forgets_clones(
    tmp_path: Path, git_runner: RecordingGitRunner
) -> None:
    root = tmp_path / "localRepos"
    manager = WorkingCopyManager(root, runner=git_runner)
    manager.ensure_cloned("widget", "https://github.com/acme/widget")
    assert root.exists()

    manager.teardown_all()

    assert not root.exists()
    manager.ensure_cloned("widget", "https://github.com/acme/widget")
    assert len(git_runner.commands("clone")) == 2


def test_teardown_failure_is_logged_not_raised(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    import repo_replicator.working_copy as working_copy

    def _fail(path: Path) -> None:
        raise PermissionError("denied")

    monkeypatch.setattr(working_copy.shutil, "rmtree", _fail)
    manager = WorkingCopyManager(tmp_path)

    manager.teardown_all()

    assert "Failed to delete local clone directory" in caplog.text


def test_teardown_of_missing_root_is_quiet(tmp_path: Path) -> None:
    WorkingCopyManager(tmp_path / "never-created").teardown_all()


def test_relative_root_clones_and_publishes_in_the_same_place(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, git_runner: RecordingGitRunner
) -> None:
    monkeypatch.chdir(tmp_path)
    manager = WorkingCopyManager(Path("localRepos"), runner=git_runner)

    path = manager.ensure_cloned("widget", "https://github.com/acme/widget")
    manager.publish(path, organization="org1", name="demo")

    assert path == tmp_path / "localRepos" / "widget"
    assert path.is_dir()
    assert not (tmp_path / "localRepos" / "localRepos").exists()
    assert len(git_runner.commands("push")) == 1


def test_run_git_reports_missing_cwd(tmp_path: Path) -> None:
    result = run_git(["status"], cwd=tmp_path / "missing", timeout=5.0)

    assert not result.ok
    assert result.returncode == -1
    assert not result.timed_out
    assert result.stderr


def test_run_git_reports_os_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def _raise(*args: object, **kwargs: object) -> None:
        raise PermissionError("Permission denied: 'git'")

    monkeypatch.setattr(subprocess, "run", _raise)

    assert run_git(["push"], cwd=tmp_path, timeout=1.0) == GitResult(
        returncode=-1, stderr="Permission denied: 'git'"
    )


def test_publish_into_missing_directory_fails_at_first_step(tmp_path: Path) -> None:
    manager = WorkingCopyManager(tmp_path, runner=run_git)

    with pytest.raises(PushError) as excinfo:
        manager.publish(tmp_path / "gone", organization="org1", name="demo")

    assert excinfo.value.step == "remove-origin"
    assert excinfo.value.cause
