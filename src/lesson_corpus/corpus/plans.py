from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from lesson_corpus.data_models import LessonPlan, parse_lesson_plan
from lesson_corpus.data_models.records import utcnow
from lesson_corpus.errors import NotFoundError, ValidationError
from lesson_corpus.storage.local_cache import LESSON_PLANS_KEY
from lesson_corpus.sync import StagedWrite, SyncGateway
from lesson_corpus.utils.logging import get_logger

logger = get_logger(__name__)


class LessonPlanStore:
    """User-created lesson plans across every collection, persisted as one list."""

    def __init__(self, gateway: SyncGateway, active_year: str):
        self.gateway = gateway
        self.active_year = active_year
        self._plans: Dict[str, LessonPlan] = {}
        self._loaded = False

    def load(self) -> List[LessonPlan]:
        payload = self.gateway.load(
            "lesson_plans",
            fetch=lambda remote: remote.fetch_lesson_plans(),
            read_local=lambda cache: cache.get(LESSON_PLANS_KEY),
            write_local=lambda cache, value: cache.set(LESSON_PLANS_KEY, value),
            default=list,
            push=lambda value: (lambda remote: remote.save_lesson_plans(value)),
        )
        plans: Dict[str, LessonPlan] = {}
        for item in payload or []:
            try:
                plan = parse_lesson_plan(item)
            except ValidationError as exc:
                logger.warning("lesson_plan_skipped", error=str(exc))
                continue
            plans[plan.id] = plan
        self._plans = plans
        self._loaded = True
        return self.list()

    def _ensure(self) -> None:
        if not self._loaded:
            self.load()

    def effective_year(self, plan: LessonPlan) -> str:
        return plan.academic_year or self.active_year

    def get(self, plan_id: str) -> Optional[LessonPlan]:
        self._ensure()
        plan = self._plans.get(plan_id)
        return plan.model_copy(deep=True) if plan else None

    def list(self, collection: Optional[str] = None, academic_year: Optional[str] = None) -> List[LessonPlan]:
        """Plans ordered by date, optionally limited to one collection and academic year."""
        self._ensure()
        plans = [
            plan
            for plan in self._plans.values()
            if (collection is None or plan.class_name == collection)
            and (academic_year is None or self.effective_year(plan) == academic_year)
        ]
        return [plan.model_copy(deep=True) for plan in sorted(plans, key=lambda plan: plan.date.isoformat())]

    def save(self, plan: LessonPlan | Dict[str, Any]) -> LessonPlan:
        """Add a new plan or update the one with the same id."""
        self._ensure()
        record = parse_lesson_plan(plan).model_copy(deep=True)
        previous = self._plans.get(record.id)
        if previous is not None:
            record.created_at = previous.created_at
        record.updated_at = utcnow()
        staged = {**self._plans, record.id: record}
        row = record.to_payload()
        self._commit(staged, lambda remote: remote.save_lesson_plans([row]), "save_lesson_plan")
        return record.model_copy(deep=True)

    def delete(self, plan_id: str) -> LessonPlan:
        self._ensure()
        plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError("lesson plan", plan_id)
        staged = {key: value for key, value in self._plans.items() if key != plan_id}
        self._commit(staged, lambda remote: remote.delete_lesson_plan(plan_id), "delete_lesson_plan")
        return plan.model_copy(deep=True)

    def replace_all(self, plans: Iterable[LessonPlan | Dict[str, Any]]) -> List[LessonPlan]:
        """Swap the whole stored list."""
        write, commit = self.stage_replace(plans)
        self.gateway.apply([write])
        commit()
        return self.list()

    def stage_replace(self, plans: Iterable[LessonPlan | Dict[str, Any]]) -> Tuple[StagedWrite, Callable[[], None]]:
        """
        Prepare a whole-list swap without touching storage or memory.

        Returns the write to hand to the gateway and a callback that swaps memory in once that
        write succeeded. Renumbering batches this with the partition's own writes.
        """
        self._ensure()
        records = [parse_lesson_plan(plan).model_copy(deep=True) for plan in plans]
        staged = {record.id: record for record in records}
        removed = [plan_id for plan_id in self._plans if plan_id not in staged]
        rows = [record.to_payload() for record in records]

        async def upload(remote) -> None:
            for plan_id in removed:
                await remote.delete_lesson_plan(plan_id)
            await remote.save_lesson_plans(rows)

        def commit() -> None:
            self._plans = staged

        return StagedWrite(LESSON_PLANS_KEY, rows, "replace_lesson_plans", upload), commit

    def _commit(self, staged: Dict[str, LessonPlan], remote: Callable, operation: str) -> None:
        payload = [plan.to_payload() for plan in staged.values()]
        self.gateway.write(lambda cache: cache.set(LESSON_PLANS_KEY, payload), remote, operation=operation)
        self._plans = staged
