from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Payload = Dict[str, Any]


class RemoteStore(ABC):
    """
    Abstract interface for the tenant-scoped remote mirror.

    Every method speaks the same camelCase payloads the local cache stores, so stores never
    see table rows. Implementations raise on failure; the sync gateway is the only place that
    decides a remote failure is harmless.
    """

    @property
    def is_configured(self) -> bool:
        """False for stores that never talk to a server; the gateway skips their writes."""
        return True

    @abstractmethod
    async def fetch_lessons(self, collection: str, academic_year: str) -> Optional[Payload]:
        """Return ``{allLessonsData, lessonNumbers, teachingUnits, lessonStandards}`` or None."""

    @abstractmethod
    async def save_lessons(self, collection: str, academic_year: str, payload: Payload) -> None:
        """Upsert the whole lesson map of one partition."""

    @abstractmethod
    async def fetch_half_terms(self, collection: str, academic_year: str) -> List[Payload]:
        """Return the stored half-term payloads of one partition."""

    @abstractmethod
    async def save_half_term(self, collection: str, academic_year: str, half_term: Payload) -> None:
        """Upsert one half-term bucket."""

    @abstractmethod
    async def fetch_activities(self) -> List[Payload]:
        """Return every library activity of the tenant."""

    @abstractmethod
    async def save_activities(self, activities: List[Payload]) -> None:
        """Upsert activities on their natural key."""

    @abstractmethod
    async def delete_activity(self, activity_id: str) -> None:
        """Remove one library activity."""

    @abstractmethod
    async def fetch_stacks(self) -> List[Payload]:
        """Return every activity stack of the tenant."""

    @abstractmethod
    async def save_stack(self, stack: Payload) -> None:
        """Insert or update one activity stack."""

    @abstractmethod
    async def delete_stack(self, stack_id: str) -> None:
        """Remove one activity stack."""

    @abstractmethod
    async def fetch_lesson_plans(self) -> List[Payload]:
        """Return every user-created lesson plan of the tenant."""

    @abstractmethod
    async def save_lesson_plans(self, plans: List[Payload]) -> None:
        """Upsert lesson plans by id."""

    @abstractmethod
    async def delete_lesson_plan(self, plan_id: str) -> None:
        """Remove one lesson plan."""

    @abstractmethod
    async def fetch_standards(self, collection: str) -> Optional[Payload]:
        """Return the nested standards catalogue of a collection, or None."""

    @abstractmethod
    async def save_standards(self, collection: str, catalogue: Payload) -> None:
        """Upsert the nested standards catalogue of a collection."""


class OfflineRemoteStore(RemoteStore):
    """Remote store used when no server is configured: reads are empty, writes do nothing."""

    @property
    def is_configured(self) -> bool:
        return False

    async def fetch_lessons(self, collection: str, academic_year: str) -> Optional[Payload]:
        return None

    async def save_lessons(self, collection: str, academic_year: str, payload: Payload) -> None:
        return None

    async def fetch_half_terms(self, collection: str, academic_year: str) -> List[Payload]:
        return []

    async def save_half_term(self, collection: str, academic_year: str, half_term: Payload) -> None:
        return None

    async def fetch_activities(self) -> List[Payload]:
        return []

    async def save_activities(self, activities: List[Payload]) -> None:
        return None

    async def delete_activity(self, activity_id: str) -> None:
        return None

    async def fetch_stacks(self) -> List[Payload]:
        return []

    async def save_stack(self, stack: Payload) -> None:
        return None

    async def delete_stack(self, stack_id: str) -> None:
        return None

    async def fetch_lesson_plans(self) -> List[Payload]:
        return []

    async def save_lesson_plans(self, plans: List[Payload]) -> None:
        return None

    async def delete_lesson_plan(self, plan_id: str) -> None:
        return None

    async def fetch_standards(self, collection: str) -> Optional[Payload]:
        return None

    async def save_standards(self, collection: str, catalogue: Payload) -> None:
        return None
