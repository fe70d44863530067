"""CLI entrypoint for the repository replicator."""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path

from pydantic import ValidationError

from repo_replicator import __version__
from repo_replicator.config import ReplicatorSettings
from repo_replicator.github.client import (
    HostingClient,
    OrganizationNotAccessible,
    RateLimitSnapshot,
)
from repo_replicator.logging import configure_logging
from repo_replicator.manifest import RollbackManifest
from repo_replicator.orchestrator import Orchestrator, RunReport
from repo_replicator.planning.directives import (
    DirectiveConfigError,
    ProvisioningTask,
    ReplicationDirective,
    expand_directives,
    load_directives,
)
from repo_replicator.planning.naming import InvalidUrl
from repo_replicator.throttle import ThrottleGate
from repo_replicator.working_copy import WorkingCopyManager
from repo_replicator.workflow.task_state import Failed, TaskOutcome

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_RATE_LIMITED = 2
EXIT_PRECONDITION = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repo-replicator",
        description="Create many copies of source repositories in GitHub organizations",
    )
    parser.add_argument("--version", action="version", version=f"repo-replicator {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser(
        "create",
        help="Create and populate the configured repositories, then write a rollback manifest",
    )
    create.add_argument(
        "--config",
        default=None,
        help="Directive configuration file (defaults to REPO_GEN_CONFIG or repoConfig.json)",
    )
    create.add_argument(
        "--skip-preflight",
        action="store_true",
        help="Do not check that every target organization is accessible before starting",
    )

    plan = subparsers.add_parser(
        "plan",
        help="Show the repositories a `create` run would make, without calling GitHub or git",
    )
    plan.add_argument(
        "--config",
        default=None,
        help="Directive configuration file (defaults to REPO_GEN_CONFIG or repoConfig.json)",
    )

    return parser


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def format_summary(report: RunReport) -> str:
    return (
        f"Total repositories processed: {report.total}, "
        f"{report.succeeded} successful, {_plural(report.failed, 'failure')}"
    )


def format_rate_limit(snapshot: RateLimitSnapshot | None) -> list[str]:
    if snapshot is None:
        return ["    (no rate-limit headers in response)"]
    lines = [
        f"    x-ratelimit-limit: {snapshot.limit}   "
        "Maximum number of requests you're permitted to make per hour",
        f"    x-ratelimit-remaining: {snapshot.remaining}   "
        "Number of requests remaining in current rate limit window",
        f"    x-ratelimit-used: {snapshot.used}   "
        "Number of requests you've made in current rate limit window",
        f"    x-ratelimit-reset: {snapshot.reset_epoch_seconds}   "
        "Time at which the current rate limit resets in UTC epoch seconds",
    ]
    reset_at = snapshot.reset_at
    if reset_at is not None:
        lines.append(f"    local reset time: {reset_at.astimezone().isoformat()}")
    return lines


def format_failure(outcome: Failed) -> list[str]:
    cause = outcome.cause
    lines = [f"Error processing {outcome.organization}/{outcome.name}"]
    if cause.step is not None:
        lines.append(f"    git {cause.step} failed: {cause.message}")
    elif cause.status_code is not None:
        lines.append(f"    HTTP {cause.status_code}: {cause.message}")
    else:
        lines.append(f"    {cause.message}")
    lines.extend(f"    {err}" for err in cause.errors)
    return lines


def _print_outcome(_task: ProvisioningTask, outcome: TaskOutcome) -> None:
    if isinstance(outcome, Failed):
        # One write per failure keeps lines from concurrent workers intact.
        print("\n".join(format_failure(outcome)), flush=True)


def _load(config: str | None, settings: ReplicatorSettings) -> list[ReplicationDirective]:
    path = Path(config) if config else settings.config_path
    return load_directives(path)


def _run_plan(args: argparse.Namespace, settings: ReplicatorSettings) -> int:
    tasks = expand_directives(_load(args.config, settings))
    for task in tasks:
        print(f"{task.full_name} <- {task.directive.url}")
    print(f"{len(tasks)} repositories would be created")
    return EXIT_OK


def _run_create(args: argparse.Namespace, settings: ReplicatorSettings) -> int:
    if shutil.which("git") is None:
        print("repo-replicator requires git to be installed", file=sys.stderr)
        return EXIT_PRECONDITION
    if not settings.has_github_token:
        print("Missing environment variable REPO_GEN_GITHUB_TOKEN", file=sys.stderr)
        return EXIT_PRECONDITION

    directives = _load(args.config, settings)

    hosting = HostingClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )
    try:
        orchestrator = Orchestrator(
            hosting=hosting,
            working_copies=WorkingCopyManager(
                settings.local_repos_dir,
                remote_url_template=settings.remote_url_template,
                primary_branch=settings.primary_branch,
                timeout_seconds=settings.git_timeout_seconds,
            ),
            gate=ThrottleGate(settings.throttle_seconds),
            manifest=RollbackManifest(),
            manifest_dir=settings.manifest_dir,
            max_workers=settings.max_workers,
            record_unmirrored_remotes=settings.record_unmirrored_remotes,
            on_outcome=_print_outcome,
        )
        tasks = orchestrator.plan(directives)

        if not args.skip_preflight:
            for organization in sorted({t.organization for t in tasks}):
                hosting.verify_organization(organization)

        for directive in directives:
            if directive.count > 0:
                print(f"Processing source repository {directive.url} {directive.count} time(s)")
        print("Processing, please wait...\n", flush=True)

        report = orchestrator.execute(tasks)
    finally:
        hosting.close()

    if report.rate_limited:
        print("Rate limit exceeded while creating repositories:")
        print("\n".join(format_rate_limit(report.rate_limit)))
        print("*** Aborting: A fatal error occurred.")

    if report.manifest_path is not None:
        print(f"{report.manifest_path.name} created\n")
    elif report.manifest_entries:
        print(
            f"*** Rollback manifest could not be written; the {report.manifest_entries} "
            "created repositories are listed in the error log\n"
        )
    print(f"Duration in minutes: {report.duration_seconds / 60:.1f}")
    print(format_summary(report))
    if report.aborted:
        print(f"Not attempted after abort: {report.aborted}")

    return EXIT_RATE_LIMITED if report.rate_limited else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ReplicatorSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_PRECONDITION

    configure_logging(settings.log_level)

    try:
        if args.command == "plan":
            return _run_plan(args, settings)
        if args.command == "create":
            return _run_create(args, settings)

        logger.error("Unknown command", extra={"command": args.command})
        return EXIT_PRECONDITION

    except (DirectiveConfigError, InvalidUrl, OrganizationNotAccessible) as e:
        logger.warning(str(e))
        print(str(e), file=sys.stderr)
        return EXIT_PRECONDITION

    except Exception:
        logger.exception("Command failed")
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    raise SystemExit(main())
