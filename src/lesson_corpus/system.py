from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from lesson_corpus.config import Settings, load_settings
from lesson_corpus.corpus import (
    ActivityStackStore,
    ActivityStore,
    CorpusState,
    HalfTermIndex,
    LessonPlanStore,
    LessonStore,
    RenumberingEngine,
    StandardsCatalog,
    UnitStore,
)
from lesson_corpus.data_models import (
    Activity,
    LessonData,
    LessonPlan,
    Partition,
    is_lesson_key,
    lesson_key,
    parse_lesson_plan,
)
from lesson_corpus.errors import NotFoundError
from lesson_corpus.storage import JsonFileCache, LocalCache, RemoteStore, create_remote_store
from lesson_corpus.sync import SyncEventBus, SyncGateway
from lesson_corpus.utils.logging import configure_logging
from lesson_corpus.utils.years import current_academic_year

logger = logging.getLogger(__name__)


class PlannerSystem:
    """
    Facade wiring every store of the lesson corpus around one sync gateway.

    The system is built once per session from ``Settings``: the local cache lives under
    ``paths.cache_dir``, the remote mirror comes from the ``remote`` section (offline when
    disabled) and the active partition defaults to ``planner.default_collection`` in
    ``planner.academic_year`` (or the current calendar year's academic year).

    Attributes
    ----------
    settings : Settings
        Configuration the system was built from.
    gateway : SyncGateway
        Local-first writer shared by every store; ``gateway.events`` reports remote outcomes.
    state : CorpusState
        Versioned in-memory snapshots of every loaded partition.
    lessons, half_terms, renumbering
        Partitioned lesson corpus and its half-term references.
    activities, stacks, plans, units, standards
        Collections that live beside the partitions.
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[LocalCache] = None,
        remote: Optional[RemoteStore] = None,
        events: Optional[SyncEventBus] = None,
    ):
        self.settings = settings
        configure_logging(settings.logging)

        self.active_year = settings.planner.academic_year or current_academic_year()
        self.collection = settings.planner.default_collection
        cache = cache if cache is not None else JsonFileCache(settings.paths.cache_dir)
        remote = remote if remote is not None else create_remote_store(settings.remote)
        self.gateway = SyncGateway(cache, remote, events)
        self.state = CorpusState()

        self.activities = ActivityStore(self.gateway)
        self.stacks = ActivityStackStore(self.gateway)
        self.plans = LessonPlanStore(self.gateway, self.active_year)
        self.units = UnitStore(self.gateway, self.active_year)
        self.standards = StandardsCatalog(self.gateway)
        self.lessons = LessonStore(self.state, self.gateway, self.active_year)
        self.half_terms = HalfTermIndex(
            self.state,
            self.gateway,
            self.lessons,
            stack_exists=self.stacks.exists,
            capacity=settings.planner.half_term_capacity,
        )
        self.renumbering = RenumberingEngine(self.state, self.lessons, self.half_terms, self.plans, self.units)

    @classmethod
    def from_config(cls, config_path: Optional[Path] = None, **kwargs: Any) -> "PlannerSystem":
        """Load settings from YAML (plus env overrides) and build the system."""
        settings = load_settings(config_path)
        return cls(settings, **kwargs)

    @property
    def events(self) -> SyncEventBus:
        return self.gateway.events

    def partition(self, collection: Optional[str] = None, academic_year: Optional[str] = None) -> Partition:
        return Partition.of(collection or self.collection, academic_year or self.active_year)

    def load_partition(self, partition: Optional[Partition] = None) -> Partition:
        """Read lessons and half-terms of a partition from storage, replacing memory."""
        partition = partition or self.partition()
        self.lessons.load(partition)
        self.half_terms.load(partition)
        return partition

    def load_all(self, partition: Optional[Partition] = None) -> Partition:
        """Startup read of everything the planner shows for one partition."""
        self.activities.load()
        self.stacks.load()
        self.plans.load()
        self.units.load((partition or self.partition()).collection)
        return self.load_partition(partition)

    # Workflows ---------------------------------------------------------------------------

    def add_lesson(
        self,
        activities: Iterable[Activity | Dict[str, Any]],
        partition: Optional[Partition] = None,
        title: Optional[str] = None,
        term: Optional[str] = None,
    ) -> str:
        """Append a new lesson built from ``activities`` and auto-assign it to a half-term."""
        partition = partition or self.partition()
        number = self.lessons.next_number(partition)
        lesson = LessonStore.build_from_activities(activities, title=title)
        self.lessons.upsert(partition, number, lesson)
        self.half_terms.auto_assign(partition, number, term)
        return number

    def delete_lesson(self, number: str, partition: Optional[Partition] = None) -> Dict[str, str]:
        return self.renumbering.delete_and_renumber(partition or self.partition(), number)

    def save_lesson_plan(self, plan: LessonPlan | Dict[str, Any]) -> LessonPlan:
        """
        Store a plan; a plan with a lesson number also becomes that lesson of its partition and
        is auto-assigned to a half-term using the plan's term.
        """
        record = parse_lesson_plan(plan)
        target = None
        if record.lesson_number and is_lesson_key(record.lesson_number):
            partition = self.partition(record.class_name, self.plans.effective_year(record))
            lesson = LessonStore.build_from_activities(record.activities, title=record.title, notes=record.notes or None)
            target = (partition, lesson_key(record.lesson_number), lesson)
        saved = self.plans.save(record)
        if target is not None:
            partition, number, lesson = target
            self.lessons.upsert(partition, number, lesson)
            self.half_terms.auto_assign(partition, number, saved.term)
        return saved

    def delete_lesson_plan(self, plan_id: str) -> Optional[Dict[str, str]]:
        """Remove a plan; a plan tied to a lesson number also deletes and renumbers that lesson."""
        plan = self.plans.get(plan_id)
        if plan is None:
            raise NotFoundError("lesson plan", plan_id)
        partition = None
        if plan.lesson_number and is_lesson_key(plan.lesson_number):
            partition = self.partition(plan.class_name, self.plans.effective_year(plan))
        self.plans.delete(plan_id)
        if partition is not None:
            return self.renumbering.delete_and_renumber(partition, plan.lesson_number)
        return None

    def lesson_overview(self, partition: Optional[Partition] = None) -> List[Dict[str, Any]]:
        """Rows for listing: number, title, total time, categories and half-term."""
        partition = partition or self.partition()
        rows = []
        for number, lesson in self.lessons.lessons(partition).items():
            bucket = self.half_terms.bucket_for(partition, number)
            rows.append(
                {
                    "number": number,
                    "title": lesson.title,
                    "total_time": lesson.total_time,
                    "categories": lesson.category_order,
                    "half_term": bucket.value if bucket else None,
                }
            )
        return rows

    def lesson(self, number: str, partition: Optional[Partition] = None) -> LessonData:
        return self.lessons.require(partition or self.partition(), number)

    def sync(self) -> None:
        """Flush every remote write queued so far."""
        pending = self.gateway.pending
        self.gateway.drain_sync()
        logger.info("Flushed %d pending remote writes", pending)
