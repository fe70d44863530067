"""Replication orchestrator.

Turns directives into provisioning tasks and runs them on a thread pool:

    PENDING -> THROTTLE_WAIT -> CREATING_REMOTE -> MIRRORING -> DONE
                     |                 |               |
                     v                 v               v
          ABORTED_BEFORE_START       FAILED          FAILED

Every task waits for a `ThrottleGate` permit before its single GitHub write. Ordinary
failures stay local to their task. A rate-limit failure sets the run-wide abort flag and
closes the gate: queued tasks end as aborted, tasks already mirroring run to completion.
Totals and the rollback manifest are produced only after every task has been joined.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from repo_replicator.github.client import HostingApiError, HostingClient, RateLimitSnapshot
from repo_replicator.manifest import RollbackManifest
from repo_replicator.planning.directives import (
    ProvisioningTask,
    ReplicationDirective,
    expand_directives,
)
from repo_replicator.planning.naming import generate_name
from repo_replicator.throttle import ThrottleGate
from repo_replicator.working_copy import CloneError, PushError, WorkingCopyManager
from repo_replicator.workflow.task_state import (
    Aborted,
    Created,
    Failed,
    FailureCause,
    TaskOutcome,
    TaskState,
    transition,
)

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[ProvisioningTask, TaskOutcome], None]


@dataclass(frozen=True, slots=True)
class RunReport:
    """Aggregate result of one run."""

    outcomes: tuple[TaskOutcome, ...]
    rate_limit: RateLimitSnapshot | None
    rate_limited: bool
    manifest_path: Path | None
    duration_seconds: float
    manifest_entries: int = 0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, Created))

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, Failed))

    @property
    def aborted(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, Aborted))


def classify_hosting_error(error: HostingApiError) -> FailureCause:
    if error.is_rate_limited:
        kind = "rate_limit"
    elif error.timed_out:
        kind = "timeout"
    elif error.status_code is None:
        kind = "network"
    else:
        kind = "api"
    return FailureCause(
        kind=kind,
        message=error.message,
        status_code=error.status_code,
        errors=tuple(error.errors),
    )


class Orchestrator:
    """Runs one batch of provisioning tasks. Use a fresh instance per run."""

    def __init__(
        self,
        *,
        hosting: HostingClient,
        working_copies: WorkingCopyManager,
        gate: ThrottleGate,
        manifest: RollbackManifest,
        manifest_dir: Path,
        max_workers: int = 8,
        name_generator: Callable[[], str] = generate_name,
        record_unmirrored_remotes: bool = False,
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        if max_workers < 2:
            raise ValueError("max_workers must be at least 2")

        self._hosting = hosting
        self._working_copies = working_copies
        self._gate = gate
        self._manifest = manifest
        self._manifest_dir = manifest_dir
        self._max_workers = max_workers
        self._name_generator = name_generator
        self._record_unmirrored = record_unmirrored_remotes
        self._on_outcome = on_outcome

        self._abort = threading.Event()
        self._abort_lock = threading.Lock()
        self._rate_limit: RateLimitSnapshot | None = None
        self._started = False

    @property
    def aborted(self) -> bool:
        return self._abort.is_set()

    def plan(self, directives: Iterable[ReplicationDirective]) -> list[ProvisioningTask]:
        """Expand directives into tasks without side effects.

        Raises:
            InvalidUrl: If any active directive's source URL is unusable.
        """

        return expand_directives(directives, name_generator=self._name_generator)

    def run(self, directives: Iterable[ReplicationDirective]) -> RunReport:
        return self.execute(self.plan(directives))

    def execute(self, tasks: Sequence[ProvisioningTask]) -> RunReport:
        if self._started:
            raise RuntimeError("Orchestrator instances are single-use")
        self._started = True

        started = time.monotonic()
        logger.info("Starting provisioning run", extra={"tasks": len(tasks)})

        try:
            with ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="provision"
            ) as pool:
                futures = [pool.submit(self._execute_task, task) for task in tasks]
                outcomes = tuple(f.result() for f in futures)
        finally:
            self._working_copies.teardown_all()

        manifest_path = self._manifest.flush(self._manifest_dir)
        report = RunReport(
            outcomes=outcomes,
            rate_limit=self._rate_limit,
            rate_limited=self._abort.is_set(),
            manifest_path=manifest_path,
            duration_seconds=time.monotonic() - started,
            manifest_entries=len(self._manifest),
        )
        logger.info(
            "Provisioning run finished",
            extra={
                "total": report.total,
                "succeeded": report.succeeded,
                "failed": report.failed,
                "aborted": report.aborted,
                "rate_limited": report.rate_limited,
            },
        )
        return report

    def _execute_task(self, task: ProvisioningTask) -> TaskOutcome:
        try:
            outcome = self._run_task(task)
        except Exception as e:
            logger.exception(
                "Unexpected error while provisioning",
                extra={"organization": task.organization, "repository": task.resolved_name},
            )
            outcome = Failed(
                organization=task.organization,
                name=task.resolved_name,
                cause=FailureCause(kind="error", message=str(e) or type(e).__name__),
            )

        if self._on_outcome is not None:
            try:
                self._on_outcome(task, outcome)
            except Exception:
                logger.exception("Outcome callback failed")
        return outcome

    def _trigger_abort(self, snapshot: RateLimitSnapshot | None) -> None:
        with self._abort_lock:
            if self._abort.is_set():
                return
            self._rate_limit = snapshot
            self._abort.set()
        self._gate.close()
        logger.error(
            "Rate limit exhausted; no further repositories will be created",
            extra={
                "limit": snapshot.limit if snapshot else None,
                "remaining": snapshot.remaining if snapshot else None,
                "reset": snapshot.reset_epoch_seconds if snapshot else None,
            },
        )

    def _run_task(self, task: ProvisioningTask) -> TaskOutcome:
        org = task.organization
        name = task.resolved_name
        directive = task.directive

        state = transition(current=TaskState.PENDING, to=TaskState.THROTTLE_WAIT)

        with self._gate.permit() as granted:
            if not granted or self._abort.is_set():
                transition(current=state, to=TaskState.ABORTED_BEFORE_START)
                logger.info(
                    "Skipped after abort", extra={"organization": org, "repository": name}
                )
                return Aborted(organization=org, name=name)

            state = transition(current=state, to=TaskState.CREATING_REMOTE)
            logger.info(
                "Creating target repository", extra={"organization": org, "repository": name}
            )
            try:
                self._hosting.create_repository(
                    organization=org,
                    name=name,
                    description=directive.description,
                    private=directive.is_private,
                )
            except HostingApiError as e:
                cause = classify_hosting_error(e)
                # Abort while still holding the permit so the next caller sees it.
                if cause.kind == "rate_limit":
                    self._trigger_abort(e.rate_limit)
                transition(current=state, to=TaskState.FAILED)
                logger.warning(
                    "Repository creation failed",
                    extra={
                        "organization": org,
                        "repository": name,
                        "kind": cause.kind,
                        "status_code": cause.status_code,
                        "cause": cause.message,
                    },
                )
                return Failed(organization=org, name=name, cause=cause)

        state = transition(current=state, to=TaskState.MIRRORING)
        try:
            path = self._working_copies.ensure_cloned(task.source_key, directive.url)
            self._working_copies.publish(path, organization=org, name=name)
        except (CloneError, PushError) as e:
            transition(current=state, to=TaskState.FAILED)
            if isinstance(e, CloneError):
                cause = FailureCause(kind="clone", message=e.cause, step="clone")
            else:
                cause = FailureCause(kind="push", message=e.cause, step=e.step)
            logger.warning(
                "Repository created but mirroring failed; remote left empty",
                extra={
                    "organization": org,
                    "repository": name,
                    "step": cause.step,
                    "cause": cause.message,
                },
            )
            if self._record_unmirrored:
                self._manifest.record(org, name)
            return Failed(organization=org, name=name, cause=cause)

        self._manifest.record(org, name)
        transition(current=state, to=TaskState.DONE)
        return Created(organization=org, name=name)
