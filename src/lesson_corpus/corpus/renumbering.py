from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from lesson_corpus.data_models import LessonRef, Partition, is_lesson_key, lesson_key
from lesson_corpus.sync import StagedWrite
from lesson_corpus.utils.logging import get_logger

from .half_terms import HalfTermIndex
from .lessons import LessonStore, derive
from .plans import LessonPlanStore
from .state import CorpusState, PartitionState
from .units import UnitStore

logger = get_logger(__name__)


class RenumberingEngine:
    """
    Deletes a lesson and compacts the numbering of its partition.

    The remaining lessons are sorted by their current number and renumbered ``1..N`` in that
    order. Lesson keys, embedded activity numbers, half-term lists and the standards map are
    rewritten in one staged snapshot; lesson plans and units of the same partition are staged
    beside it. Every cache document is written in a single batch and memory is committed only
    after that batch succeeds, so a failed write leaves both the cache and memory on the old
    numbering. Data of other partitions is never touched.
    """

    def __init__(
        self,
        state: CorpusState,
        lessons: LessonStore,
        half_terms: HalfTermIndex,
        plans: LessonPlanStore | None = None,
        units: UnitStore | None = None,
    ):
        self.state = state
        self.lessons = lessons
        self.half_terms = half_terms
        self.plans = plans
        self.units = units

    def delete_and_renumber(self, partition: Partition, number: LessonRef) -> Dict[str, str]:
        """Return the ``{old: new}`` mapping of every surviving lesson, identity entries included."""
        deleted = lesson_key(number)
        existing = self.lessons.list_numbers(partition)
        self.half_terms.half_terms(partition)
        if deleted not in existing:
            logger.info("renumber_missing_lesson", partition=str(partition), lesson=deleted)
        remaining = [key for key in existing if key != deleted]
        mapping = {old: str(position) for position, old in enumerate(remaining, start=1)}

        def rewrite(current: PartitionState) -> None:
            moved = {}
            for old, new in mapping.items():
                moved[new] = derive(new, current.lessons[old])
            current.lessons.clear()
            current.lessons.update(moved)
            standards = {mapping[old]: items for old, items in current.lesson_standards.items() if old in mapping}
            current.lesson_standards.clear()
            current.lesson_standards.update(standards)
            self.half_terms.rewrite(current, mapping)

        staged = self.state.stage(partition, rewrite)
        writes = [
            self.lessons.staged_write(partition, staged),
            self.half_terms.staged_write(partition, staged),
        ]
        commits: List[Callable[[], None]] = []
        plan_change = self._stage_plans(partition, deleted, mapping)
        if plan_change is not None:
            writes.append(plan_change[0])
            commits.append(plan_change[1])
        if self.units is not None:
            unit_write, unit_commit = self.units.stage_rewrite(partition, lambda numbers: _map_numbers(numbers, mapping))
            writes.append(unit_write)
            commits.append(unit_commit)

        self.lessons.gateway.apply(writes)
        self.state.commit(partition, staged)
        for commit in commits:
            commit()
        logger.info(
            "lesson_deleted_and_renumbered",
            partition=str(partition),
            lesson=deleted,
            remaining=len(mapping),
        )
        return mapping

    def _stage_plans(
        self, partition: Partition, deleted: str, mapping: Dict[str, str]
    ) -> Optional[Tuple[StagedWrite, Callable[[], None]]]:
        if self.plans is None:
            return None
        collection, year = partition
        changed = False
        kept = []
        for plan in self.plans.list():
            in_partition = plan.class_name == collection and self.plans.effective_year(plan) == year
            if in_partition and plan.lesson_number and is_lesson_key(plan.lesson_number):
                old = lesson_key(plan.lesson_number)
                if old == deleted:
                    changed = True
                    continue
                new = mapping.get(old)
                if new is not None and new != plan.lesson_number:
                    plan.lesson_number = new
                    for activity in plan.activities:
                        activity.lesson_number = new
                    changed = True
            kept.append(plan)
        return self.plans.stage_replace(kept) if changed else None


def _map_numbers(numbers: List[str], mapping: Dict[str, str]) -> List[str]:
    mapped = [mapping[key] for key in (lesson_key(n) for n in numbers if is_lesson_key(n)) if key in mapping]
    return list(dict.fromkeys(mapped))
