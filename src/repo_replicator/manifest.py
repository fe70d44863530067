"""Rollback manifest: the record of every repository a run created.

The manifest is the input of the bulk-delete tool, so it is written as a plain JSON array
of `{"organization", "name"}` objects. Nothing is written when a run created nothing.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

MANIFEST_PREFIX = "deleteRepos"
_MAX_NAME_ATTEMPTS = 100


class ManifestEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization: str
    name: str


def manifest_filename(now: datetime, attempt: int = 0) -> str:
    stamp = now.strftime("%Y%m%d-%H%M%S")
    if attempt:
        stamp = f"{stamp}-{attempt}"
    return f"{MANIFEST_PREFIX}-{stamp}.json"


class RollbackManifest:
    """Append-only, thread-safe list of created repositories."""

    def __init__(self, *, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: list[ManifestEntry] = []
        self._seen: set[tuple[str, str]] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def entries(self) -> list[ManifestEntry]:
        with self._lock:
            return list(self._entries)

    def record(self, organization: str, name: str) -> None:
        key = (organization, name)
        with self._lock:
            if key in self._seen:
                raise ValueError(f"Repository already recorded: {organization}/{name}")
            self._seen.add(key)
            self._entries.append(ManifestEntry(organization=organization, name=name))

    def flush(self, directory: Path) -> Path | None:
        """Write the manifest into `directory` and return its path.

        Returns None when nothing was recorded, or when the file could not be written. In the
        latter case the entries are logged at error level so the rollback list can be rebuilt
        from the log. An existing manifest is never overwritten: a clash on the timestamped
        name gets a numeric suffix instead.
        """

        entries = self.entries
        if not entries:
            logger.info("No repositories created; rollback manifest not written")
            return None

        payload = [entry.model_dump(mode="json") for entry in entries]
        text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path = _write_new_file(directory, self._clock(), text)
        except OSError:
            logger.error(
                "Failed to write rollback manifest",
                extra={"directory": str(directory), "entries": payload},
                exc_info=True,
            )
            return None

        logger.info("Rollback manifest written", extra={"path": str(path), "entries": len(entries)})
        return path


def _write_new_file(directory: Path, now: datetime, text: str) -> Path:
    for attempt in range(_MAX_NAME_ATTEMPTS):
        path = directory / manifest_filename(now, attempt)
        try:
            with path.open("x", encoding="utf-8") as f:
                f.write(text)
        except FileExistsError:
            continue
        return path
    raise FileExistsError(f"No free rollback manifest name in {directory}")
