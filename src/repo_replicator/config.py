"""Configuration for the repository replicator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

The GitHub token uses a dedicated variable, `REPO_GEN_GITHUB_TOKEN`, so the tool does not
pick up a `GITHUB_TOKEN` meant for something else.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReplicatorSettings(BaseSettings):
    """Settings for a replication run.

    Environment variables:
    - REPO_GEN_GITHUB_TOKEN            (required for `create`)
    - GITHUB_BASE_URL                  (optional)
    - LOG_LEVEL                        (optional)
    - REPO_GEN_CONFIG                  (optional)
    - REPO_GEN_LOCAL_REPOS_DIR         (optional)
    - REPO_GEN_MANIFEST_DIR            (optional)
    - REPO_GEN_THROTTLE_SECONDS        (optional)
    - REPO_GEN_MAX_WORKERS             (optional)
    - REPO_GEN_REQUEST_TIMEOUT_SECONDS (optional)
    - REPO_GEN_GIT_TIMEOUT_SECONDS     (optional)
    - REPO_GEN_PRIMARY_BRANCH          (optional)
    - REPO_GEN_REMOTE_URL_TEMPLATE     (optional)
    - REPO_GEN_RECORD_UNMIRRORED       (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `ReplicatorSettings(_env_file=path_to_env)`.
    """

    # The token may legitimately be absent for commands that never call GitHub (`plan`);
    # `create` checks it explicitly before doing any work.
    github_token: str = Field(
        default="",
        validation_alias="REPO_GEN_GITHUB_TOKEN",
        description="GitHub token used for API authentication",
    )
    github_base_url: str = Field(
        default="https://api.github.com",
        validation_alias="GITHUB_BASE_URL",
        description="GitHub API base URL (useful for GitHub Enterprise)",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    config_path: Path = Field(
        default=Path("repoConfig.json"),
        validation_alias="REPO_GEN_CONFIG",
        description="JSON file listing the replication directives",
    )
    local_repos_dir: Path = Field(
        default=Path("localRepos"),
        validation_alias="REPO_GEN_LOCAL_REPOS_DIR",
        description="Scratch directory for local source clones (deleted after each run)",
    )
    manifest_dir: Path = Field(
        default=Path("."),
        validation_alias="REPO_GEN_MANIFEST_DIR",
        description="Directory where the rollback manifest is written",
    )

    throttle_seconds: float = Field(
        default=4.0,
        ge=0.0,
        validation_alias="REPO_GEN_THROTTLE_SECONDS",
        description="Minimum spacing between repository creation calls",
    )
    max_workers: int = Field(
        default=8,
        ge=2,
        validation_alias="REPO_GEN_MAX_WORKERS",
        description="Worker threads used to run provisioning tasks",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        validation_alias="REPO_GEN_REQUEST_TIMEOUT_SECONDS",
        description="Timeout applied to each GitHub API request",
    )
    git_timeout_seconds: float = Field(
        default=600.0,
        gt=0.0,
        validation_alias="REPO_GEN_GIT_TIMEOUT_SECONDS",
        description="Timeout applied to each git subprocess",
    )

    primary_branch: str = Field(
        default="main",
        min_length=1,
        validation_alias="REPO_GEN_PRIMARY_BRANCH",
        description="Branch name pushed to every new repository",
    )
    remote_url_template: str = Field(
        default="git@github.com:{organization}/{name}.git",
        validation_alias="REPO_GEN_REMOTE_URL_TEMPLATE",
        description="Push URL for a new repository; may use {organization} and {name}",
    )
    record_unmirrored_remotes: bool = Field(
        default=False,
        validation_alias="REPO_GEN_RECORD_UNMIRRORED",
        description=(
            "Also add repositories whose mirror push failed to the rollback manifest, "
            "so a later bulk delete removes the empty remotes too."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def has_github_token(self) -> bool:
        return bool(self.github_token.strip())
