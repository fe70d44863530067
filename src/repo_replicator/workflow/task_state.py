from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TaskState(str, Enum):
    PENDING = "pending"
    THROTTLE_WAIT = "throttle_wait"
    CREATING_REMOTE = "creating_remote"
    MIRRORING = "mirroring"
    DONE = "done"
    FAILED = "failed"
    ABORTED_BEFORE_START = "aborted_before_start"


ALLOWED_TRANSITIONS: dict[TaskState, set[TaskState]] = {
    TaskState.PENDING: {TaskState.THROTTLE_WAIT},
    TaskState.THROTTLE_WAIT: {TaskState.CREATING_REMOTE, TaskState.ABORTED_BEFORE_START},
    TaskState.CREATING_REMOTE: {TaskState.MIRRORING, TaskState.FAILED},
    TaskState.MIRRORING: {TaskState.DONE, TaskState.FAILED},
    TaskState.DONE: set(),
    TaskState.FAILED: set(),
    TaskState.ABORTED_BEFORE_START: set(),
}

TERMINAL_STATES: frozenset[TaskState] = frozenset(
    {TaskState.DONE, TaskState.FAILED, TaskState.ABORTED_BEFORE_START}
)


class IllegalTransitionError(ValueError):
    pass


def transition(*, current: TaskState, to: TaskState) -> TaskState:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


@dataclass(frozen=True, slots=True)
class FailureCause:
    """Why a task failed.

    `kind` is one of: api | timeout | network | rate_limit | clone | push | error.
    `error` covers anything unexpected raised while running the task.
    """

    kind: str
    message: str
    step: str | None = None
    status_code: int | None = None
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Created:
    organization: str
    name: str
    state: TaskState = TaskState.DONE


@dataclass(frozen=True, slots=True)
class Failed:
    organization: str
    name: str
    cause: FailureCause
    state: TaskState = TaskState.FAILED


@dataclass(frozen=True, slots=True)
class Aborted:
    organization: str
    name: str
    state: TaskState = TaskState.ABORTED_BEFORE_START


TaskOutcome = Created | Failed | Aborted
