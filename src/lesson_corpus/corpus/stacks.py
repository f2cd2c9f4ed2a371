from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from lesson_corpus.data_models import Activity, ActivityStack, parse_activity, parse_record
from lesson_corpus.data_models.records import utcnow
from lesson_corpus.errors import NotFoundError, ValidationError
from lesson_corpus.storage.local_cache import STACKS_KEY
from lesson_corpus.sync import SyncGateway
from lesson_corpus.utils.logging import get_logger

logger = get_logger(__name__)

EDITABLE_FIELDS = ("name", "description", "category", "activities")


def _copies(activities: Iterable[Activity | Dict[str, Any]]) -> List[Activity]:
    return [parse_activity(activity).model_copy(deep=True) for activity in activities]


class ActivityStackStore:
    """
    Named bundles of activity copies.

    A stack owns copies, so later edits to library activities never reach into it. Stacks
    are referenced by id from half-term buckets; deleting one does not touch those buckets,
    whose reads simply stop returning the id.
    """

    def __init__(self, gateway: SyncGateway):
        self.gateway = gateway
        self._stacks: Dict[str, ActivityStack] = {}
        self._loaded = False

    def load(self) -> List[ActivityStack]:
        def push(stacks: List[Dict[str, Any]]):
            async def upload(remote) -> None:
                for stack in stacks:
                    await remote.save_stack(stack)

            return upload

        payload = self.gateway.load(
            "activity_stacks",
            fetch=lambda remote: remote.fetch_stacks(),
            read_local=lambda cache: cache.get(STACKS_KEY),
            write_local=lambda cache, value: cache.set(STACKS_KEY, value),
            default=list,
            push=push,
        )
        stacks: Dict[str, ActivityStack] = {}
        for item in payload or []:
            try:
                stack = parse_record(ActivityStack, item)
            except ValidationError as exc:
                logger.warning("stack_skipped", error=str(exc))
                continue
            stack.total_time = sum(activity.time for activity in stack.activities)
            stacks[stack.id] = stack
        self._stacks = stacks
        self._loaded = True
        return self.list()

    def _ensure(self) -> None:
        if not self._loaded:
            self.load()

    def _require(self, stack_id: str) -> ActivityStack:
        self._ensure()
        stack = self._stacks.get(stack_id)
        if stack is None:
            raise NotFoundError("stack", stack_id)
        return stack

    def exists(self, stack_id: str) -> bool:
        self._ensure()
        return stack_id in self._stacks

    def get(self, stack_id: str) -> Optional[ActivityStack]:
        self._ensure()
        stack = self._stacks.get(stack_id)
        return stack.model_copy(deep=True) if stack else None

    def list(self) -> List[ActivityStack]:
        """Newest first."""
        self._ensure()
        stacks = sorted(self._stacks.values(), key=lambda stack: stack.created_at, reverse=True)
        return [stack.model_copy(deep=True) for stack in stacks]

    def create(
        self,
        name: str,
        activities: Iterable[Activity | Dict[str, Any]],
        description: Optional[str] = None,
        category: Optional[str] = None,
    ) -> ActivityStack:
        self._ensure()
        copies = _copies(activities)
        stack = parse_record(
            ActivityStack,
            {
                "name": name,
                "description": description,
                "activities": copies,
                "category": category or (copies[0].category if copies else None),
            },
        )
        return self._commit(stack, "create_stack")

    def update(self, stack_id: str, changes: Dict[str, Any]) -> ActivityStack:
        """Apply a partial update; ``id`` and timestamps cannot be changed this way."""
        current = self._require(stack_id)
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"cannot update stack fields: {', '.join(sorted(unknown))}")
        data = current.model_dump()
        data.update(changes)
        if "activities" in changes:
            data["activities"] = _copies(changes["activities"])
        return self._commit(parse_record(ActivityStack, data), "update_stack")

    def add_activities(self, stack_id: str, activities: Iterable[Activity | Dict[str, Any]]) -> ActivityStack:
        stack = self._require(stack_id).model_copy(deep=True)
        stack.activities.extend(_copies(activities))
        return self._commit(stack, "update_stack")

    def remove_activity(self, stack_id: str, activity_id: str) -> ActivityStack:
        stack = self._require(stack_id).model_copy(deep=True)
        stack.activities = [activity for activity in stack.activities if activity.id != activity_id]
        return self._commit(stack, "update_stack")

    def delete(self, stack_id: str) -> None:
        self._require(stack_id)
        remaining = {key: value for key, value in self._stacks.items() if key != stack_id}
        payload = self._payload(remaining)
        self.gateway.write(
            lambda cache: cache.set(STACKS_KEY, payload),
            lambda remote: remote.delete_stack(stack_id),
            operation="delete_stack",
        )
        self._stacks = remaining
        logger.info("stack_deleted", stack=stack_id)

    def unstack(self, stack_id: str) -> List[Activity]:
        """Delete the stack and hand its activities back to the caller."""
        activities = self._require(stack_id).model_copy(deep=True).activities
        self.delete(stack_id)
        return activities

    def _commit(self, stack: ActivityStack, operation: str) -> ActivityStack:
        stack.total_time = sum(activity.time for activity in stack.activities)
        stack.updated_at = utcnow()
        staged = {**self._stacks, stack.id: stack}
        payload = self._payload(staged)
        row = stack.to_payload()
        self.gateway.write(
            lambda cache: cache.set(STACKS_KEY, payload),
            lambda remote: remote.save_stack(row),
            operation=operation,
        )
        self._stacks = staged
        return stack.model_copy(deep=True)

    @staticmethod
    def _payload(stacks: Dict[str, ActivityStack]) -> List[Dict[str, Any]]:
        return [stack.to_payload() for stack in stacks.values()]
