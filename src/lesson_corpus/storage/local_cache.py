from __future__ import annotations

import hashlib
import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

from lesson_corpus.errors import LocalCacheError

LESSON_DATA_LEGACY_KEY = "lesson-data-{collection}"
LESSON_DATA_KEY = "lesson-data-{collection}-{academic_year}"
HALF_TERMS_KEY = "half-terms-{collection}-{academic_year}"
UNITS_KEY = "units-{collection}"
ACTIVITIES_KEY = "library-activities"
STACKS_KEY = "activity-stacks"
LESSON_PLANS_KEY = "user-created-lesson-plans"
STANDARDS_KEY = "eyfs-statements-{collection}"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LocalCache(ABC):
    """Synchronous key/value store of JSON documents; the durable source of truth offline."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded JSON stored under ``key`` or ``None`` when absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key``, replacing any previous document."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing key is not an error."""

    def set_many(self, items: Iterable[Tuple[str, Any]]) -> None:
        """
        Write several keys as one unit.

        When a write fails, the keys already written in this batch get their previous
        documents back (or are removed if they had none) before the error propagates.
        """
        batch = list(items)
        previous = [(key, self.get(key)) for key, _ in batch]
        written = 0
        try:
            for key, value in batch:
                self.set(key, value)
                written += 1
        except LocalCacheError:
            for key, value in reversed(previous[:written]):
                if value is None:
                    self.delete(key)
                else:
                    self.set(key, value)
            raise


class JsonFileCache(LocalCache):
    """
    One JSON file per cache key inside a directory.

    Writes go to a temporary file in the same directory and are moved into place with
    ``os.replace`` so a crash mid-write leaves the previous document intact. Any I/O or
    decoding failure is raised as ``LocalCacheError``: there is nothing below the local
    cache to fall back to.
    """

    def __init__(self, directory: Path):
        """Ensure the backing directory exists and remember it."""
        self.directory = Path(directory)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalCacheError(f"Cannot create cache directory {self.directory}: {exc}") from exc

    def path_for(self, key: str) -> Path:
        """Return the JSON file path for a cache key."""
        if not key:
            raise LocalCacheError("cache key must not be empty")
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]
        return self.directory / f"{_UNSAFE_CHARS.sub('_', key)}-{digest}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as handle:
                envelope = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise LocalCacheError(f"Cannot read cache key {key!r}: {exc}") from exc
        if not isinstance(envelope, dict) or "key" not in envelope or "value" not in envelope:
            raise LocalCacheError(f"Cache file for {key!r} is not a cache envelope")
        if envelope["key"] != key:
            return None
        return envelope["value"]

    def set(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump({"key": key, "value": value}, handle, indent=2)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise LocalCacheError(f"Cannot write cache key {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise LocalCacheError(f"Cannot delete cache key {key!r}: {exc}") from exc
