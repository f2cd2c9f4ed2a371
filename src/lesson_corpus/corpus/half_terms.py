from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from lesson_corpus.data_models import (
    HalfTerm,
    HalfTermId,
    LessonRef,
    Partition,
    is_lesson_key,
    lesson_key,
    parse_record,
)
from lesson_corpus.data_models.records import utcnow
from lesson_corpus.errors import StaleReferenceError, ValidationError
from lesson_corpus.storage.local_cache import HALF_TERMS_KEY
from lesson_corpus.sync import StagedWrite, SyncGateway
from lesson_corpus.utils.logging import get_logger

from .lessons import LessonStore
from .state import CorpusState, PartitionState

logger = get_logger(__name__)

FACET = "half_terms"

TERM_HINTS = {
    "autumn": HalfTermId.A1,
    "spring": HalfTermId.SP1,
    "summer": HalfTermId.SM1,
}


def default_half_terms() -> Dict[HalfTermId, HalfTerm]:
    return {half_term_id: HalfTerm.empty(half_term_id) for half_term_id in HalfTermId}


def parse_half_term_id(value: HalfTermId | str) -> HalfTermId:
    try:
        return HalfTermId(value)
    except ValueError as exc:
        raise ValidationError(f"unknown half-term {value!r}", "halfTermId") from exc


def _dedupe(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


class HalfTermIndex:
    """
    The six fixed half-term buckets of every partition.

    Buckets only hold references: lesson numbers into ``LessonStore`` and stack ids into the
    stack store. Assignments are sanitised before they are stored; reads additionally drop
    references that went stale since, without rewriting what is stored.
    """

    def __init__(
        self,
        state: CorpusState,
        gateway: SyncGateway,
        lessons: LessonStore,
        stack_exists: Optional[Callable[[str], bool]] = None,
        capacity: int = 10,
    ):
        self.state = state
        self.gateway = gateway
        self.lesson_store = lessons
        self.stack_exists = stack_exists
        self.capacity = capacity

    def load(self, partition: Partition) -> Dict[HalfTermId, HalfTerm]:
        collection, year = partition
        key = HALF_TERMS_KEY.format(collection=collection, academic_year=year)

        def push(half_terms: List[Dict[str, Any]]):
            async def upload(remote) -> None:
                for half_term in half_terms:
                    await remote.save_half_term(collection, year, half_term)

            return upload

        payload = self.gateway.load(
            f"half_terms:{partition}",
            fetch=lambda remote: remote.fetch_half_terms(collection, year),
            read_local=lambda cache: cache.get(key),
            write_local=lambda cache, value: cache.set(key, value),
            default=lambda: [half_term.to_payload() for half_term in default_half_terms().values()],
            push=push,
        )
        half_terms = default_half_terms()
        for item in payload or []:
            try:
                record = parse_record(HalfTerm, item)
            except ValidationError as exc:
                logger.warning("half_term_skipped", partition=str(partition), error=str(exc))
                continue
            half_terms[record.id] = record

        def replace_half_terms(current: PartitionState) -> None:
            current.half_terms.clear()
            current.half_terms.update(half_terms)

        self.state.update(partition, replace_half_terms)
        self.state.mark_loaded(partition, FACET)
        return self.half_terms(partition)

    def _ensure(self, partition: Partition) -> PartitionState:
        if not self.state.is_loaded(partition, FACET):
            self.load(partition)
        return self.state.snapshot(partition)

    def _stored(self, partition: Partition, half_term_id: HalfTermId) -> HalfTerm:
        snapshot = self._ensure(partition)
        return snapshot.half_terms.get(half_term_id) or HalfTerm.empty(half_term_id)

    def _visible(self, partition: Partition, half_term: HalfTerm) -> HalfTerm:
        known = set(self.lesson_store.list_numbers(partition))
        view = half_term.model_copy(deep=True)
        view.lessons = [number for number in half_term.lessons if number in known]
        if self.stack_exists is not None:
            view.stacks = [stack_id for stack_id in half_term.stacks if self.stack_exists(stack_id)]
        return view

    # Reads -----------------------------------------------------------------------------

    def half_terms(self, partition: Partition) -> Dict[HalfTermId, HalfTerm]:
        """All six buckets in calendar order with stale references filtered out."""
        return {half_term_id: self._visible(partition, self._stored(partition, half_term_id)) for half_term_id in HalfTermId}

    def half_term(self, partition: Partition, half_term_id: HalfTermId | str) -> HalfTerm:
        return self._visible(partition, self._stored(partition, parse_half_term_id(half_term_id)))

    def get(self, partition: Partition, half_term_id: HalfTermId | str, strict: bool = False) -> List[str]:
        """
        Lesson numbers of one bucket, in stored order, that still exist in the partition.

        With ``strict=True`` a stored number whose lesson is gone raises
        ``StaleReferenceError`` instead of being filtered out.
        """
        term_id = parse_half_term_id(half_term_id)
        if strict:
            known = set(self.lesson_store.list_numbers(partition))
            for number in self._stored(partition, term_id).lessons:
                if number not in known:
                    raise StaleReferenceError(f"half-term {term_id.value} of {partition}", number)
        return self.half_term(partition, term_id).lessons

    def get_stacks(self, partition: Partition, half_term_id: HalfTermId | str) -> List[str]:
        return self.half_term(partition, half_term_id).stacks

    def bucket_for(self, partition: Partition, number: LessonRef) -> Optional[HalfTermId]:
        key = lesson_key(number)
        for half_term_id in HalfTermId:
            if key in self._stored(partition, half_term_id).lessons:
                return half_term_id
        return None

    def term_position(self, partition: Partition, number: LessonRef, half_term_id: HalfTermId | str) -> int:
        """1-based position of a lesson inside a bucket, 0 when it is not there."""
        lessons = self.get(partition, half_term_id)
        key = lesson_key(number)
        return lessons.index(key) + 1 if key in lessons else 0

    def display_title(self, partition: Partition, number: LessonRef, half_term_id: HalfTermId | str) -> str:
        lesson = self.lesson_store.get(partition, number)
        if lesson is not None and lesson.title:
            return lesson.title
        position = self.term_position(partition, number, half_term_id)
        return f"Lesson {position or lesson_key(number)}"

    # Writes ----------------------------------------------------------------------------

    def assign(
        self,
        partition: Partition,
        half_term_id: HalfTermId | str,
        lesson_numbers: Iterable[LessonRef],
        is_complete: bool = False,
        stack_ids: Optional[Iterable[str]] = None,
    ) -> HalfTerm:
        """
        Replace the lessons (and optionally the stacks) of one bucket.

        Unknown lesson numbers and duplicates are dropped before storing. Passing
        ``stack_ids=None`` keeps the bucket's current stacks. ``updatedAt`` is bumped even
        when the content does not change.
        """
        term_id = parse_half_term_id(half_term_id)
        known = set(self.lesson_store.list_numbers(partition))
        keys = [lesson_key(number) for number in lesson_numbers if is_lesson_key(number)]
        dropped = [key for key in keys if key not in known]
        if dropped:
            logger.info("half_term_unknown_lessons_dropped", partition=str(partition), half_term=term_id.value, dropped=dropped)
        lessons = _dedupe(key for key in keys if key in known)
        stacks = _dedupe(stack_ids) if stack_ids is not None else None
        self._ensure(partition)

        def put(current: PartitionState) -> None:
            half_term = current.half_terms.get(term_id) or HalfTerm.empty(term_id)
            half_term.lessons = lessons
            if stacks is not None:
                half_term.stacks = stacks
            half_term.is_complete = is_complete
            half_term.updated_at = utcnow()
            current.half_terms[term_id] = half_term

        staged = self.state.stage(partition, put)
        self.gateway.apply([self.staged_write(partition, staged, term_id)])
        self.state.commit(partition, staged)
        return staged.half_terms[term_id].model_copy(deep=True)

    def auto_assign(self, partition: Partition, number: LessonRef, term: Optional[str] = None) -> HalfTermId:
        """
        Put a lesson into a bucket unless some bucket already holds it.

        The term hint (Autumn, Spring, Summer) picks the first half of that term. Without a
        hint the first bucket below capacity wins, falling back to Autumn 1.
        """
        key = lesson_key(number)
        existing = self.bucket_for(partition, key)
        if existing is not None:
            return existing
        target = TERM_HINTS.get((term or "").strip().lower())
        if target is None:
            target = next(
                (half_term_id for half_term_id in HalfTermId if len(self.get(partition, half_term_id)) < self.capacity),
                HalfTermId.A1,
            )
        current = self._stored(partition, target)
        self.assign(partition, target, [*current.lessons, key], current.is_complete)
        logger.info("lesson_auto_assigned", partition=str(partition), lesson=key, half_term=target.value)
        return target

    def copy_term(
        self,
        source: Partition,
        target: Partition,
        half_term_id: HalfTermId | str,
        target_half_term_id: HalfTermId | str | None = None,
    ) -> HalfTerm:
        """
        Copy the lessons of one bucket into another partition, keeping their numbers.

        Copied lessons are stamped with the target academic year and replace any lesson with
        the same number there.
        """
        source_id = parse_half_term_id(half_term_id)
        target_id = parse_half_term_id(target_half_term_id or source_id)
        numbers = self.get(source, source_id)
        for number in numbers:
            lesson = self.lesson_store.require(source, number)
            lesson.academic_year = target.academic_year
            self.lesson_store.upsert(target, number, lesson)
        current = self._stored(target, target_id)
        return self.assign(target, target_id, [*current.lessons, *numbers], current.is_complete)

    def rewrite(self, current: PartitionState, mapping: Dict[str, str]) -> None:
        """Apply an old-to-new lesson number mapping inside an update; unmapped numbers are dropped."""
        for half_term in current.half_terms.values():
            half_term.lessons = _dedupe(mapping[number] for number in half_term.lessons if number in mapping)
            half_term.updated_at = utcnow()

    def staged_write(self, partition: Partition, snapshot: PartitionState, *half_term_ids: HalfTermId) -> StagedWrite:
        """Cache document of all six buckets plus remote upserts for the named (or all) buckets."""
        collection, year = partition
        payload = [
            (snapshot.half_terms.get(half_term_id) or HalfTerm.empty(half_term_id)).to_payload()
            for half_term_id in HalfTermId
        ]
        targets = {half_term_id.value for half_term_id in (half_term_ids or tuple(HalfTermId))}
        changed = [item for item in payload if item["id"] in targets]

        async def upload(remote) -> None:
            for half_term in changed:
                await remote.save_half_term(collection, year, half_term)

        return StagedWrite(
            key=HALF_TERMS_KEY.format(collection=collection, academic_year=year),
            value=payload,
            operation=f"save_half_terms:{partition}",
            remote=upload,
        )
