from __future__ import annotations

from typing import Optional


class CorpusError(Exception):
    """Base class for every error raised by the lesson corpus engine."""


class ValidationError(CorpusError, ValueError):
    """Raised when an Activity, LessonPlan or partition key has a malformed shape."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(CorpusError, KeyError):
    """Raised when an operation targets a lesson, stack or record that does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier

    def __str__(self) -> str:
        return self.args[0]


class RemoteSyncError(CorpusError):
    """Wraps any failure talking to the remote store. Never fatal to the caller."""

    def __init__(self, operation: str, cause: BaseException | None = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Remote sync failed for {operation}{detail}")
        self.operation = operation
        self.cause = cause


class StaleReferenceError(CorpusError):
    """A half-term or stack references a lesson or activity id that no longer exists."""

    def __init__(self, container: str, reference: str):
        super().__init__(f"{container} references missing id {reference}")
        self.container = container
        self.reference = reference


class LocalCacheError(CorpusError):
    """Reading or writing the local cache failed. There is no fallback beneath it."""


class ConcurrentModificationError(CorpusError):
    """A partition update was computed against an outdated snapshot version."""

    def __init__(self, partition: str, expected: int, actual: int):
        super().__init__(
            f"Partition {partition} changed underneath the update "
            f"(expected version {expected}, found {actual})"
        )
        self.expected = expected
        self.actual = actual
