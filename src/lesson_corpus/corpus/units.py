from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from lesson_corpus.data_models import LessonRef, Partition, Unit, lesson_key, parse_record
from lesson_corpus.data_models.records import utcnow
from lesson_corpus.errors import NotFoundError, ValidationError
from lesson_corpus.storage.local_cache import UNITS_KEY
from lesson_corpus.sync import StagedWrite, SyncGateway
from lesson_corpus.utils.logging import get_logger

logger = get_logger(__name__)

Transform = Callable[[List[str]], List[str]]


class UnitStore:
    """
    Teaching units of each collection. Units live in the local cache only; the remote mirror
    has no table for them.
    """

    def __init__(self, gateway: SyncGateway, active_year: str):
        self.gateway = gateway
        self.active_year = active_year
        self._units: Dict[str, List[Unit]] = {}

    def load(self, collection: str) -> List[Unit]:
        key = UNITS_KEY.format(collection=collection)
        units: List[Unit] = []
        for item in self.gateway.cache.get(key) or []:
            try:
                units.append(parse_record(Unit, item))
            except ValidationError as exc:
                logger.warning("unit_skipped", collection=collection, error=str(exc))
        self._units[collection] = units
        return [unit.model_copy(deep=True) for unit in units]

    def _all(self, collection: str) -> List[Unit]:
        if collection not in self._units:
            self.load(collection)
        return self._units[collection]

    def effective_year(self, unit: Unit) -> str:
        return unit.academic_year or self.active_year

    def list(self, collection: str, academic_year: Optional[str] = None) -> List[Unit]:
        return [
            unit.model_copy(deep=True)
            for unit in self._all(collection)
            if academic_year is None or self.effective_year(unit) == academic_year
        ]

    def save(self, collection: str, unit: Unit | Dict[str, Any]) -> Unit:
        record = parse_record(Unit, unit).model_copy(deep=True)
        record.lesson_numbers = list(dict.fromkeys(lesson_key(number) for number in record.lesson_numbers))
        record.updated_at = utcnow()
        units = [item for item in self._all(collection) if item.id != record.id]
        self.replace_all(collection, [*units, record])
        return record.model_copy(deep=True)

    def delete(self, collection: str, unit_id: str) -> None:
        units = self._all(collection)
        if not any(unit.id == unit_id for unit in units):
            raise NotFoundError("unit", unit_id)
        self.replace_all(collection, [unit for unit in units if unit.id != unit_id])

    def remove_lesson(self, partition: Partition, number: LessonRef) -> None:
        """Drop a lesson number from every unit of the partition."""
        key = lesson_key(number)
        self.rewrite(partition, lambda numbers: [item for item in numbers if item != key])

    def rewrite(self, partition: Partition, transform: Transform) -> None:
        """Apply ``transform`` to the lesson numbers of every unit in the partition's year."""
        write, commit = self.stage_rewrite(partition, transform)
        self.gateway.apply([write])
        commit()

    def stage_rewrite(self, partition: Partition, transform: Transform) -> Tuple[StagedWrite, Callable[[], None]]:
        """Like ``rewrite`` but returns the write and its memory commit instead of applying them."""
        collection, year = partition
        units = [unit.model_copy(deep=True) for unit in self._all(collection)]
        for unit in units:
            if self.effective_year(unit) != year:
                continue
            updated = transform(list(unit.lesson_numbers))
            if updated != unit.lesson_numbers:
                unit.lesson_numbers = updated
                unit.updated_at = utcnow()
        return self._stage(collection, units)

    def replace_all(self, collection: str, units: Iterable[Unit]) -> None:
        write, commit = self._stage(collection, units)
        self.gateway.apply([write])
        commit()

    def _stage(self, collection: str, units: Iterable[Unit]) -> Tuple[StagedWrite, Callable[[], None]]:
        staged = list(units)
        payload = [unit.to_payload() for unit in staged]

        def commit() -> None:
            self._units[collection] = staged

        return StagedWrite(UNITS_KEY.format(collection=collection), payload, f"save_units:{collection}"), commit
