"""Target repository naming and source identification.

Both helpers are pure: no network and no disk access.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable
from urllib.parse import urlparse

# GitHub accepts ASCII letters, digits, '.', '-' and '_' in repository names.
_ILLEGAL_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

_WORDS: tuple[str, ...] = (
    "amber", "anchor", "arcade", "aspen", "atlas", "autumn", "bamboo", "basil",
    "beacon", "birch", "bloom", "bolt", "breeze", "bridge", "brook", "cactus",
    "canyon", "cedar", "cinder", "clover", "cobalt", "comet", "coral", "cotton",
    "crane", "crystal", "dawn", "delta", "drift", "dune", "ember", "falcon",
    "fern", "fjord", "flint", "frost", "garnet", "glacier", "granite", "harbor",
    "hazel", "heron", "horizon", "indigo", "iris", "ivory", "jade", "juniper",
    "kelp", "lagoon", "lantern", "lark", "lemon", "lilac", "maple", "marble",
    "meadow", "mesa", "mint", "moss", "nebula", "nectar", "oak", "onyx",
    "orchid", "otter", "pebble", "pepper", "pine", "plume", "prairie", "quartz",
    "quill", "raven", "reef", "ridge", "river", "saffron", "sage", "sequoia",
    "shadow", "sierra", "slate", "sparrow", "spruce", "summit", "thistle", "thunder",
    "tide", "timber", "topaz", "tundra", "velvet", "violet", "willow", "zephyr",
)

_SURNAMES: tuple[str, ...] = (
    "Abbott", "Bailey", "Becker", "Carroll", "Collins", "D'Amore", "Dietrich", "Ernser",
    "Fisher", "Gleason", "Grant", "Hahn", "Hansen", "Jacobs", "Kemmer", "Kuhn",
    "Larson", "Lowe", "Mayer", "McKenzie", "Nolan", "O'Conner", "O'Hara", "O'Keefe",
    "Parker", "Quigley", "Reilly", "Rowe", "Schmidt", "Stark", "Thiel", "Upton",
    "Vandervort", "Walsh", "Weber", "Yost", "Zboncak", "Ziemann",
)


class InvalidUrl(ValueError):
    """Raised when a source repository URL cannot be turned into a source key."""


def generate_name() -> str:
    """Return a random `word-word-surname` placeholder.

    The result is not sanitized; callers go through `resolve_name`.
    """

    return f"{secrets.choice(_WORDS)}-{secrets.choice(_WORDS)}-{secrets.choice(_SURNAMES)}"


def sanitize_name(name: str) -> str:
    """Replace characters GitHub rejects in repository names with '-'."""

    return _ILLEGAL_NAME_CHARS.sub("-", name)


def resolve_name(
    base_name: str | None,
    index: int,
    count: int,
    *,
    generator: Callable[[], str] = generate_name,
) -> str:
    """Resolve the target name of copy `index` (1-based) out of `count`.

    Rules:
    - No base name: a freshly generated placeholder, sanitized. Every copy calls the
      generator again, so unnamed copies get unrelated names rather than `<generated>-<i>`.
    - Base name and `count > 1`: `<base>-<index>`.
    - Base name and `count == 1`: the base name unchanged.
    """

    if base_name is None or not base_name.strip():
        return sanitize_name(generator())
    if count > 1:
        return f"{base_name}-{index}"
    return base_name


def source_key(url: str) -> str:
    """Return the stable local cache key for a source repository URL.

    The key is the final path segment, e.g. `widget` for
    `https://github.com/acme/widget` or `https://github.com/acme/widget.git`.
    """

    try:
        parsed = urlparse(url.strip())
    except ValueError as e:
        raise InvalidUrl(f"Cannot parse source repository URL: {url!r}") from e

    if not parsed.scheme:
        raise InvalidUrl(f"Source repository URL has no scheme: {url!r}")
    if not parsed.netloc and parsed.scheme != "file":
        raise InvalidUrl(f"Source repository URL has no host: {url!r}")

    path = parsed.path.rstrip("/")
    key = path[path.rfind("/") + 1 :]
    key = key.removesuffix(".git")
    if not key:
        raise InvalidUrl(f"Source repository URL has an empty path: {url!r}")
    if key in {".", ".."}:
        raise InvalidUrl(f"Source repository URL does not name a repository: {url!r}")
    return key
