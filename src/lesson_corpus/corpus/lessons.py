from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from lesson_corpus.data_models import (
    Activity,
    LessonData,
    LessonRef,
    Partition,
    is_lesson_key,
    lesson_key,
    parse_activity,
    parse_record,
    sort_lesson_keys,
)
from lesson_corpus.errors import NotFoundError, ValidationError
from lesson_corpus.storage.local_cache import LESSON_DATA_KEY, LESSON_DATA_LEGACY_KEY, LocalCache
from lesson_corpus.sync import StagedWrite, SyncGateway
from lesson_corpus.utils.logging import get_logger

from .categories import generate_title, group_by_category, looks_like_uuid, sort_categories
from .state import CorpusState, PartitionState

logger = get_logger(__name__)

FACET = "lessons"


def empty_payload() -> Dict[str, Any]:
    return {"allLessonsData": {}, "lessonNumbers": [], "teachingUnits": [], "lessonStandards": {}}


def derive(number: str, lesson: LessonData) -> LessonData:
    """
    Recompute every field of a lesson that depends on its activities.

    ``totalTime`` becomes the sum of durations, ``categoryOrder`` the present non-empty
    categories in preference order, every activity is stamped with ``number`` and a missing
    title is synthesized.
    """
    grouped = {category: items for category, items in lesson.grouped.items() if items}
    for activities in grouped.values():
        for activity in activities:
            activity.lesson_number = number
    lesson.grouped = grouped
    lesson.category_order = sort_categories(grouped)
    lesson.total_time = sum(activity.time for activity in lesson.iter_activities())
    if not lesson.title or not lesson.title.strip():
        lesson.title = generate_title(grouped)
    return lesson


def build_payload(state: PartitionState) -> Dict[str, Any]:
    numbers = sort_lesson_keys(state.lessons)
    return {
        "allLessonsData": {number: state.lessons[number].to_payload() for number in numbers},
        "lessonNumbers": numbers,
        "teachingUnits": list(state.teaching_units),
        "lessonStandards": {number: list(items) for number, items in state.lesson_standards.items()},
    }


class LessonStore:
    """
    Sequentially numbered lessons of each ``(collection, academic year)`` partition.

    Keys are canonical lesson-number strings ("1", "2", ...). Every write recomputes the
    derived fields of the lesson and persists the whole partition through the sync gateway
    under ``lesson-data-{collection}-{academicYear}``.
    """

    def __init__(self, state: CorpusState, gateway: SyncGateway, active_year: str):
        self.state = state
        self.gateway = gateway
        self.active_year = active_year

    # Loading ---------------------------------------------------------------------------

    def load(self, partition: Partition) -> Dict[str, LessonData]:
        """Read a partition from the remote mirror, the local cache or an empty default."""
        collection, year = partition
        key = LESSON_DATA_KEY.format(collection=collection, academic_year=year)
        payload = self.gateway.load(
            f"lessons:{partition}",
            fetch=lambda remote: remote.fetch_lessons(collection, year),
            read_local=lambda cache: self._read_local(cache, partition),
            write_local=lambda cache, value: cache.set(key, value),
            default=empty_payload,
            push=lambda value: (lambda remote: remote.save_lessons(collection, year, value)),
        )
        repaired = self._apply_payload(partition, payload)
        self.state.mark_loaded(partition, FACET)
        if repaired:
            logger.info("lesson_titles_repaired", partition=str(partition), count=repaired)
            self.persist(partition)
        return self.lessons(partition)

    def _read_local(self, cache: LocalCache, partition: Partition) -> Optional[Dict[str, Any]]:
        collection, year = partition
        payload = cache.get(LESSON_DATA_KEY.format(collection=collection, academic_year=year))
        if payload is not None:
            return payload
        legacy = cache.get(LESSON_DATA_LEGACY_KEY.format(collection=collection))
        if not isinstance(legacy, dict):
            return None
        logger.info("legacy_lesson_blob_read", partition=str(partition))
        lessons = legacy.get("allLessonsData") or {}
        kept = {number: data for number, data in lessons.items() if self._in_legacy_partition(partition, data)}
        return {**legacy, "allLessonsData": kept}

    def _in_legacy_partition(self, partition: Partition, data: Any) -> bool:
        year = data.get("academicYear") if isinstance(data, dict) else None
        if year:
            return year == partition.academic_year
        return partition.academic_year == self.active_year

    @staticmethod
    def _belongs(partition: Partition, data: Any) -> bool:
        year = data.get("academicYear") if isinstance(data, dict) else None
        return not year or year == partition.academic_year

    def _apply_payload(self, partition: Partition, payload: Dict[str, Any]) -> int:
        raw_lessons = payload.get("allLessonsData") or {}
        lessons: Dict[str, LessonData] = {}
        repaired = 0
        for raw_key, data in raw_lessons.items():
            if not is_lesson_key(raw_key) or not self._belongs(partition, data):
                continue
            try:
                lesson = parse_record(LessonData, data)
            except ValidationError as exc:
                logger.warning("lesson_skipped", partition=str(partition), lesson=raw_key, error=str(exc))
                continue
            if looks_like_uuid(lesson.title):
                lesson.title = None
                repaired += 1
            number = lesson_key(raw_key)
            lessons[number] = derive(number, lesson)

        raw_standards = payload.get("lessonStandards") or {}
        standards: Dict[str, List[str]] = {}
        for number, lesson in lessons.items():
            merged = list(raw_standards.get(number) or lesson.lesson_standards)
            lesson.lesson_standards = merged
            if merged:
                standards[number] = list(merged)

        def replace_lessons(current: PartitionState) -> None:
            current.lessons.clear()
            current.lessons.update(lessons)
            current.lesson_standards.clear()
            current.lesson_standards.update(standards)
            current.teaching_units[:] = list(payload.get("teachingUnits") or [])

        self.state.update(partition, replace_lessons)
        return repaired

    def _ensure(self, partition: Partition) -> PartitionState:
        if not self.state.is_loaded(partition, FACET):
            self.load(partition)
        return self.state.snapshot(partition)

    # Reads -----------------------------------------------------------------------------

    def get(self, partition: Partition, number: LessonRef) -> Optional[LessonData]:
        lesson = self._ensure(partition).lessons.get(lesson_key(number))
        return lesson.model_copy(deep=True) if lesson is not None else None

    def require(self, partition: Partition, number: LessonRef) -> LessonData:
        lesson = self.get(partition, number)
        if lesson is None:
            raise NotFoundError("lesson", f"{partition}#{lesson_key(number)}")
        return lesson

    def list_numbers(self, partition: Partition) -> List[str]:
        """Lesson numbers of the partition in numeric order ("2" before "10")."""
        return sort_lesson_keys(self._ensure(partition).lessons)

    def lessons(self, partition: Partition) -> Dict[str, LessonData]:
        snapshot = self._ensure(partition)
        return {number: snapshot.lessons[number].model_copy(deep=True) for number in self.list_numbers(partition)}

    def teaching_units(self, partition: Partition) -> List[str]:
        return list(self._ensure(partition).teaching_units)

    def lesson_standards(self, partition: Partition) -> Dict[str, List[str]]:
        return {number: list(items) for number, items in self._ensure(partition).lesson_standards.items()}

    # Writes ----------------------------------------------------------------------------

    def upsert(
        self,
        partition: Partition,
        number: LessonRef,
        lesson: LessonData | Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> LessonData:
        """Insert or replace lesson ``number`` and persist the partition."""
        key = lesson_key(number)
        record = parse_record(LessonData, lesson).model_copy(deep=True)
        if record.academic_year and record.academic_year != partition.academic_year:
            raise ValidationError(
                f"lesson belongs to {record.academic_year}, not {partition.academic_year}", "academicYear"
            )
        derived = derive(key, record)
        self._ensure(partition)

        def put(current: PartitionState) -> None:
            current.lessons[key] = derived
            if derived.lesson_standards:
                current.lesson_standards[key] = list(derived.lesson_standards)
            else:
                current.lesson_standards.pop(key, None)

        staged = self.state.stage(partition, put, expected_version)
        self.persist(partition, staged)
        self.state.commit(partition, staged)
        logger.info("lesson_upserted", partition=str(partition), lesson=key, total_time=derived.total_time)
        return derived.model_copy(deep=True)

    def delete(self, partition: Partition, number: LessonRef) -> bool:
        """
        Remove one lesson without renumbering the others.

        Callers that need dense numbering go through ``RenumberingEngine``.
        """
        key = lesson_key(number)
        if key not in self._ensure(partition).lessons:
            return False

        def drop(current: PartitionState) -> None:
            current.lessons.pop(key, None)
            current.lesson_standards.pop(key, None)

        staged = self.state.stage(partition, drop)
        self.persist(partition, staged)
        self.state.commit(partition, staged)
        return True

    def set_title(self, partition: Partition, number: LessonRef, title: str) -> LessonData:
        lesson = self.require(partition, number)
        lesson.title = title.strip() or None
        return self.upsert(partition, number, lesson)

    def add_standard(self, partition: Partition, number: LessonRef, standard: str) -> List[str]:
        lesson = self.require(partition, number)
        if standard not in lesson.lesson_standards:
            lesson.lesson_standards.append(standard)
        return self.upsert(partition, number, lesson).lesson_standards

    def remove_standard(self, partition: Partition, number: LessonRef, standard: str) -> List[str]:
        lesson = self.require(partition, number)
        lesson.lesson_standards = [item for item in lesson.lesson_standards if item != standard]
        return self.upsert(partition, number, lesson).lesson_standards

    def next_number(self, partition: Partition) -> str:
        numbers = self.list_numbers(partition)
        return lesson_key(int(numbers[-1]) + 1) if numbers else "1"

    def staged_write(self, partition: Partition, snapshot: PartitionState) -> StagedWrite:
        """Cache document and remote upsert that persist the lessons of ``snapshot``."""
        collection, year = partition
        payload = build_payload(snapshot)
        return StagedWrite(
            key=LESSON_DATA_KEY.format(collection=collection, academic_year=year),
            value=payload,
            operation=f"save_lessons:{partition}",
            remote=lambda remote: remote.save_lessons(collection, year, payload),
        )

    def persist(self, partition: Partition, snapshot: Optional[PartitionState] = None) -> None:
        """Write a snapshot (the committed one by default) locally and schedule its remote upsert."""
        if snapshot is None:
            snapshot = self.state.snapshot(partition)
        self.gateway.apply([self.staged_write(partition, snapshot)])

    @staticmethod
    def build_from_activities(
        activities: Iterable[Activity | Dict[str, Any]],
        title: Optional[str] = None,
        academic_year: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> LessonData:
        """Group a flat activity list by category into a lesson aggregate (not yet numbered)."""
        records = [parse_activity(activity).model_copy(deep=True) for activity in activities]
        lesson = LessonData(
            grouped=group_by_category(records),
            title=title,
            academic_year=academic_year,
            notes=notes,
        )
        lesson.category_order = sort_categories(lesson.grouped)
        lesson.total_time = sum(activity.time for activity in records)
        if not title:
            lesson.title = generate_title(lesson.grouped)
        return lesson
