from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from lesson_corpus.data_models import Activity, parse_activity
from lesson_corpus.errors import NotFoundError, ValidationError
from lesson_corpus.storage.local_cache import ACTIVITIES_KEY
from lesson_corpus.sync import SyncGateway
from lesson_corpus.utils.logging import get_logger

logger = get_logger(__name__)


class ActivityStore:
    """Flat library of reusable activities, keyed by id and deduplicated on their natural key."""

    def __init__(self, gateway: SyncGateway):
        self.gateway = gateway
        self._activities: Dict[str, Activity] = {}
        self._loaded = False

    def load(self) -> List[Activity]:
        payload = self.gateway.load(
            "activities",
            fetch=lambda remote: remote.fetch_activities(),
            read_local=lambda cache: cache.get(ACTIVITIES_KEY),
            write_local=lambda cache, value: cache.set(ACTIVITIES_KEY, value),
            default=list,
            push=lambda value: (lambda remote: remote.save_activities(value)),
        )
        activities: Dict[str, Activity] = {}
        for item in payload or []:
            try:
                activity = parse_activity(item)
            except ValidationError as exc:
                logger.warning("activity_skipped", error=str(exc))
                continue
            activities[activity.id] = activity
        self._activities = activities
        self._loaded = True
        return self.list()

    def _ensure(self) -> None:
        if not self._loaded:
            self.load()

    def get(self, activity_id: str) -> Optional[Activity]:
        self._ensure()
        activity = self._activities.get(activity_id)
        return activity.model_copy(deep=True) if activity else None

    def list(self, category: Optional[str] = None) -> List[Activity]:
        self._ensure()
        return [
            activity.model_copy(deep=True)
            for activity in self._activities.values()
            if category is None or activity.category == category
        ]

    def add(self, activity: Activity | Dict[str, Any]) -> Activity:
        return self.import_activities([activity])[0]

    def update(self, activity_id: str, changes: Dict[str, Any]) -> Activity:
        self._ensure()
        current = self._activities.get(activity_id)
        if current is None:
            raise NotFoundError("activity", activity_id)
        data = current.model_dump()
        data.update(changes)
        data["id"] = activity_id
        updated = parse_activity(data)
        self._commit({**self._activities, activity_id: updated}, [updated], "update_activity")
        return updated.model_copy(deep=True)

    def delete(self, activity_id: str) -> None:
        self._ensure()
        if activity_id not in self._activities:
            raise NotFoundError("activity", activity_id)
        remaining = {key: value for key, value in self._activities.items() if key != activity_id}
        payload = [activity.to_payload() for activity in remaining.values()]
        self.gateway.write(
            lambda cache: cache.set(ACTIVITIES_KEY, payload),
            lambda remote: remote.delete_activity(activity_id),
            operation="delete_activity",
        )
        self._activities = remaining

    def import_activities(self, activities: Iterable[Activity | Dict[str, Any]]) -> List[Activity]:
        """
        Add activities to the library, merging on ``(activity, category, lessonNumber)``.

        An incoming activity whose natural key already exists replaces that entry and keeps
        its id, which mirrors how the remote table upserts.
        """
        self._ensure()
        staged = dict(self._activities)
        by_key = {activity.natural_key(): activity_id for activity_id, activity in staged.items()}
        saved: List[Activity] = []
        for item in activities:
            activity = parse_activity(item).model_copy(deep=True)
            existing_id = by_key.get(activity.natural_key())
            if existing_id is not None:
                activity.id = existing_id
            staged[activity.id] = activity
            by_key[activity.natural_key()] = activity.id
            saved.append(activity)
        self._commit(staged, saved, "save_activities")
        logger.info("activities_imported", count=len(saved))
        return [activity.model_copy(deep=True) for activity in saved]

    def _commit(self, staged: Dict[str, Activity], changed: List[Activity], operation: str) -> None:
        payload = [activity.to_payload() for activity in staged.values()]
        rows = [activity.to_payload() for activity in changed]
        self.gateway.write(
            lambda cache: cache.set(ACTIVITIES_KEY, payload),
            lambda remote: remote.save_activities(rows),
            operation=operation,
        )
        self._activities = staged
