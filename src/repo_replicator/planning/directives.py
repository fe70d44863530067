"""Replication directives and their expansion into provisioning tasks.

A directive is one entry of the JSON configuration file:

    [
      {
        "url": "https://github.com/acme/widget",
        "organization": "org1",
        "name": "demo",
        "description": "Widget demo copy",
        "isPrivate": true,
        "count": 3
      }
    ]

Expansion is where naming happens; it never touches the network or the filesystem.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from repo_replicator.planning.naming import generate_name, resolve_name, source_key


class DirectiveConfigError(ValueError):
    """Raised when the directive configuration file cannot be used."""


class ReplicationDirective(BaseModel):
    """One configured source-to-target replication instruction."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    url: str = Field(min_length=1)
    organization: str = Field(min_length=1)
    name: str | None = Field(default=None)
    description: str = Field(default="")
    is_private: bool = Field(default=True, alias="isPrivate")
    count: int = Field(default=1, ge=0)


@dataclass(frozen=True, slots=True)
class ProvisioningTask:
    """A single target repository to create, derived from a directive."""

    directive: ReplicationDirective
    index: int
    resolved_name: str
    source_key: str

    @property
    def organization(self) -> str:
        return self.directive.organization

    @property
    def full_name(self) -> str:
        return f"{self.directive.organization}/{self.resolved_name}"


def load_directives(path: Path) -> list[ReplicationDirective]:
    """Load and validate directives from a JSON file, preserving file order."""

    if not path.exists():
        raise DirectiveConfigError(f"Directive configuration file not found: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DirectiveConfigError(f"Directive configuration file is not valid JSON: {path}") from e

    if not isinstance(raw, list):
        raise DirectiveConfigError(f"Directive configuration must be a JSON array: {path}")

    directives: list[ReplicationDirective] = []
    for position, item in enumerate(raw, start=1):
        try:
            directives.append(ReplicationDirective.model_validate(item))
        except ValidationError as e:
            raise DirectiveConfigError(f"Invalid directive #{position} in {path}: {e}") from e
    return directives


def expand_directive(
    directive: ReplicationDirective,
    *,
    name_generator: Callable[[], str] = generate_name,
) -> list[ProvisioningTask]:
    """Expand a directive into `count` tasks (none when `count == 0`).

    Raises:
        InvalidUrl: If the directive's source URL has no usable final path segment.
    """

    if directive.count == 0:
        return []

    key = source_key(directive.url)
    return [
        ProvisioningTask(
            directive=directive,
            index=index,
            resolved_name=resolve_name(
                directive.name, index, directive.count, generator=name_generator
            ),
            source_key=key,
        )
        for index in range(1, directive.count + 1)
    ]


def expand_directives(
    directives: Iterable[ReplicationDirective],
    *,
    name_generator: Callable[[], str] = generate_name,
) -> list[ProvisioningTask]:
    tasks: list[ProvisioningTask] = []
    for directive in directives:
        tasks.extend(expand_directive(directive, name_generator=name_generator))
    return tasks
