from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Set, Tuple

from lesson_corpus.data_models import HalfTerm, HalfTermId, LessonData, Partition
from lesson_corpus.errors import ConcurrentModificationError


@dataclass(frozen=True)
class PartitionState:
    """Committed snapshot of everything one ``(collection, academic year)`` partition holds."""

    lessons: Dict[str, LessonData] = field(default_factory=dict)
    lesson_standards: Dict[str, List[str]] = field(default_factory=dict)
    teaching_units: List[str] = field(default_factory=list)
    half_terms: Dict[HalfTermId, HalfTerm] = field(default_factory=dict)
    version: int = 0


Mutation = Callable[[PartitionState], Optional[PartitionState]]


class CorpusState:
    """
    In-memory snapshots of every partition the session has touched.

    ``update`` is the single way to change a partition. The mutation receives a private copy
    of the latest committed snapshot and either returns the new snapshot or edits the copy in
    place. Nothing is committed if it raises, so a failed update leaves readers on the
    previous version. Stores that persist a change split ``update`` into ``stage`` and
    ``commit`` around the local write.
    """

    def __init__(self) -> None:
        self._partitions: Dict[Partition, PartitionState] = {}
        self._loaded: Set[Tuple[Partition, str]] = set()

    def snapshot(self, partition: Partition) -> PartitionState:
        return self._partitions.get(partition) or PartitionState()

    def version(self, partition: Partition) -> int:
        return self.snapshot(partition).version

    def partitions(self) -> List[Partition]:
        return list(self._partitions)

    def stage(
        self,
        partition: Partition,
        mutation: Mutation,
        expected_version: Optional[int] = None,
    ) -> PartitionState:
        """Apply ``mutation`` to a copy and return the next snapshot without committing it."""
        current = self.snapshot(partition)
        if expected_version is not None and expected_version != current.version:
            raise ConcurrentModificationError(str(partition), expected_version, current.version)
        working = copy.deepcopy(current)
        result = mutation(working)
        candidate = working if result is None else result
        return replace(candidate, version=current.version + 1)

    def commit(self, partition: Partition, staged: PartitionState) -> PartitionState:
        """Publish a staged snapshot; fails if another commit landed since it was staged."""
        current = self.version(partition)
        if staged.version != current + 1:
            raise ConcurrentModificationError(str(partition), staged.version - 1, current)
        self._partitions[partition] = staged
        return staged

    def update(
        self,
        partition: Partition,
        mutation: Mutation,
        expected_version: Optional[int] = None,
    ) -> PartitionState:
        return self.commit(partition, self.stage(partition, mutation, expected_version))

    def is_loaded(self, partition: Partition, facet: str) -> bool:
        return (partition, facet) in self._loaded

    def mark_loaded(self, partition: Partition, facet: str) -> None:
        self._loaded.add((partition, facet))

    def forget(self, partition: Partition) -> None:
        """Drop a partition so the next read reloads it from storage."""
        self._partitions.pop(partition, None)
        self._loaded = {entry for entry in self._loaded if entry[0] != partition}
