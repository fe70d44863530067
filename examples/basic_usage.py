#!/usr/bin/env python3
"""Programmatic replication example.

This demonstrates using the replicator components directly:

* load settings from `.env`
* replicate one source repository twice into an organization
* write the rollback manifest to the current directory

The source URL and organization are passed as arguments (not read from `.env`).
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence

from repo_replicator.config import ReplicatorSettings
from repo_replicator.github.client import HostingClient
from repo_replicator.logging import configure_logging
from repo_replicator.manifest import RollbackManifest
from repo_replicator.orchestrator import Orchestrator
from repo_replicator.planning.directives import ReplicationDirective
from repo_replicator.throttle import ThrottleGate
from repo_replicator.working_copy import WorkingCopyManager


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replicate a repository (programmatic example).")
    parser.add_argument("--url", required=True, help="Source repository URL")
    parser.add_argument("--org", required=True, help="Target GitHub organization")
    parser.add_argument("--name", default="", help="Base name (random names when empty)")
    parser.add_argument("--count", type=int, default=2, help="Number of copies")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = ReplicatorSettings()
    configure_logging(settings.log_level)

    directive = ReplicationDirective(
        url=args.url,
        organization=args.org,
        name=args.name or None,
        description="Created by the basic_usage example",
        is_private=True,
        count=args.count,
    )

    hosting = HostingClient(token=settings.github_token, base_url=settings.github_base_url)
    try:
        orchestrator = Orchestrator(
            hosting=hosting,
            working_copies=WorkingCopyManager(settings.local_repos_dir),
            gate=ThrottleGate(settings.throttle_seconds),
            manifest=RollbackManifest(),
            manifest_dir=settings.manifest_dir,
        )
        report = orchestrator.run([directive])
    finally:
        hosting.close()

    print(f"{report.succeeded} successful, {report.failed} failed")
    if report.manifest_path is not None:
        print(f"Rollback manifest: {report.manifest_path}")
    return 2 if report.rate_limited else 0


if __name__ == "__main__":
    raise SystemExit(main())
