"""GitHub API client for repository provisioning.

Repository creation goes through a plain `requests.Session` so failures keep their status
code, message and rate-limit headers. PyGithub is only used for the read-only organization
preflight.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import requests
from github import Auth, Github, GithubException

logger = logging.getLogger(__name__)

_RATE_LIMIT_STATUSES = frozenset({403, 429})


@dataclass(frozen=True, slots=True)
class RateLimitSnapshot:
    """Rate-limit headers captured from a rejected request."""

    limit: int | None
    remaining: int | None
    used: int | None
    reset_epoch_seconds: int | None

    @property
    def reset_at(self) -> datetime | None:
        if self.reset_epoch_seconds is None:
            return None
        return datetime.fromtimestamp(self.reset_epoch_seconds, tz=UTC)

    @classmethod
    def from_headers(cls, headers: Any) -> RateLimitSnapshot | None:
        """Parse `x-ratelimit-*` headers; None when none of them are present."""

        def _int(key: str) -> int | None:
            value = headers.get(key)
            if value is None:
                return None
            try:
                return int(str(value).strip())
            except ValueError:
                return None

        snapshot = cls(
            limit=_int("x-ratelimit-limit"),
            remaining=_int("x-ratelimit-remaining"),
            used=_int("x-ratelimit-used"),
            reset_epoch_seconds=_int("x-ratelimit-reset"),
        )
        if all(
            v is None
            for v in (snapshot.limit, snapshot.remaining, snapshot.used, snapshot.reset_epoch_seconds)
        ):
            return None
        return snapshot


@dataclass(frozen=True, slots=True)
class CreatedRepository:
    """Minimal repository metadata returned from GitHub."""

    organization: str
    name: str
    full_name: str
    html_url: str | None
    private: bool


class HostingApiError(RuntimeError):
    """A repository creation request that did not succeed.

    `status_code` is None for transport failures (connection errors, timeouts).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: list[str] | None = None,
        rate_limit: RateLimitSnapshot | None = None,
        retry_after: str | None = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []
        self.rate_limit = rate_limit
        self.retry_after = retry_after
        self.timed_out = timed_out

    @property
    def is_rate_limited(self) -> bool:
        """Whether this failure means the token has exhausted a rate limit.

        GitHub answers both primary and secondary rate limits with 403 (sometimes 429).
        A plain permission 403 also carries rate-limit headers, so the headers alone are not
        enough: the remaining budget must be zero, or GitHub must have asked us to back off.
        """

        if self.status_code not in _RATE_LIMIT_STATUSES:
            return False
        if self.rate_limit is not None and self.rate_limit.remaining == 0:
            return True
        if self.retry_after is not None:
            return True
        return "rate limit" in self.message.lower()


class OrganizationNotAccessible(ValueError):
    """Raised by the preflight check when a target organization cannot be used."""


class HostingClient:
    """Small wrapper around the GitHub REST API for creating organization repositories."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = "https://api.github.com",
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
        github_api: Github | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token is required")

        self._rest_base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "repo-replicator",
            }
        )
        # Constructing the PyGithub client does not touch the network.
        self._github = github_api or Github(auth=Auth.Token(token), base_url=self._rest_base_url)

    def _org_repos_url(self, organization: str) -> str:
        org = organization.strip().strip("/")
        if not org:
            raise ValueError("organization is required")
        return f"{self._rest_base_url}/orgs/{org}/repos"

    def create_repository(
        self,
        *,
        organization: str,
        name: str,
        description: str = "",
        private: bool = True,
    ) -> CreatedRepository:
        """Create an empty repository in `organization`.

        Raises:
            HostingApiError: On any non-2xx response or transport failure.
        """

        if not name.strip():
            raise ValueError("Repository name is required")

        url = self._org_repos_url(organization)
        body = {"name": name, "description": description, "private": private}

        try:
            resp = self._session.post(url, json=body, timeout=self._timeout_seconds)
        except requests.Timeout as e:
            raise HostingApiError(
                f"Timeout after {self._timeout_seconds:g}s creating {organization}/{name}",
                timed_out=True,
            ) from e
        except requests.RequestException as e:
            raise HostingApiError(f"Request failed creating {organization}/{name}: {e}") from e

        if resp.status_code >= 400:
            raise self._error_from_response(resp)

        data: dict[str, Any] = resp.json() if resp.content else {}
        full_name = data.get("full_name")
        if not isinstance(full_name, str) or not full_name.strip():
            full_name = f"{organization}/{name}"
        html_url = data.get("html_url")
        if not isinstance(html_url, str) or not html_url.strip():
            html_url = None

        logger.info(
            "Repository created", extra={"organization": organization, "repository": name}
        )
        return CreatedRepository(
            organization=organization,
            name=name,
            full_name=full_name,
            html_url=html_url,
            private=bool(data.get("private", private)),
        )

    @staticmethod
    def _error_from_response(resp: requests.Response) -> HostingApiError:
        message = f"HTTP {resp.status_code}"
        errors: list[str] = []
        try:
            data = resp.json()
        except ValueError:
            data = None

        if isinstance(data, dict):
            raw_message = data.get("message")
            if isinstance(raw_message, str) and raw_message.strip():
                message = raw_message.strip()
            raw_errors = data.get("errors")
            if isinstance(raw_errors, list):
                for item in raw_errors:
                    if isinstance(item, dict):
                        msg = item.get("message") or item.get("code")
                        if isinstance(msg, str) and msg.strip():
                            errors.append(msg.strip())
                    elif isinstance(item, str) and item.strip():
                        errors.append(item.strip())

        rate_limit = None
        retry_after = None
        if resp.status_code in _RATE_LIMIT_STATUSES:
            rate_limit = RateLimitSnapshot.from_headers(resp.headers)
            retry_after = resp.headers.get("retry-after")

        return HostingApiError(
            message,
            status_code=resp.status_code,
            errors=errors,
            rate_limit=rate_limit,
            retry_after=retry_after,
        )

    def verify_organization(self, organization: str) -> None:
        """Fail early if the token cannot see `organization`.

        Raises:
            OrganizationNotAccessible: If the organization is unknown or not accessible.
        """

        try:
            org = self._github.get_organization(organization)
            login = org.login
        except GithubException as e:
            raise OrganizationNotAccessible(
                f"GitHub organization {organization!r} is not accessible (HTTP {e.status})"
            ) from e
        logger.debug("Organization verified", extra={"organization": login})

    def close(self) -> None:
        """Close the underlying HTTP connections."""

        self._session.close()
        self._github.close()
        logger.debug("GitHub client closed")
