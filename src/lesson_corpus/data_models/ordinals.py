from __future__ import annotations

from typing import Iterable, List, NamedTuple, Union

from lesson_corpus.errors import ValidationError
from lesson_corpus.utils.years import validate_academic_year


class LessonNumber(int):
    """
    Positive integer ordinal identifying a lesson inside one partition.

    Lesson numbers travel as strings in every persisted payload ("1", "2", "10"). Sorting
    those strings lexicographically puts "10" before "2", so every comparison in the engine
    goes through this type instead. ``str(LessonNumber(7))`` is ``"7"``, which is the key
    used in cache and remote payloads.
    """

    def __new__(cls, value: Union[int, str, "LessonNumber"]) -> "LessonNumber":
        if isinstance(value, bool):
            raise ValidationError(f"lesson number must be a positive integer, got {value!r}", "lessonNumber")
        if isinstance(value, str):
            text = value.strip()
            if not (text.isascii() and text.isdigit()):
                raise ValidationError(
                    f"lesson number must be a positive integer, got {value!r}", "lessonNumber"
                )
            value = int(text)
        if not isinstance(value, int) or value < 1:
            raise ValidationError(f"lesson number must be a positive integer, got {value!r}", "lessonNumber")
        return super().__new__(cls, value)

    def __str__(self) -> str:
        return str(int(self))

    def __repr__(self) -> str:
        return f"LessonNumber({int(self)})"


LessonRef = Union[int, str, LessonNumber]


def lesson_key(value: LessonRef) -> str:
    """Normalise any lesson reference to the canonical string key (``" 07"`` -> ``"7"``)."""
    return str(LessonNumber(value))


def is_lesson_key(value: object) -> bool:
    """True when ``value`` parses as a lesson number."""
    try:
        LessonNumber(value)  # type: ignore[arg-type]
    except ValidationError:
        return False
    return True


def sort_lesson_keys(keys: Iterable[str]) -> List[str]:
    """Sort lesson-number strings numerically; unparseable keys are dropped."""
    return [str(number) for number in sorted(LessonNumber(key) for key in keys if is_lesson_key(key))]


class Partition(NamedTuple):
    """The ``(collection, academic year)`` namespace that lessons and half-terms live in."""

    collection: str
    academic_year: str

    @classmethod
    def of(cls, collection: str, academic_year: str) -> "Partition":
        """Validate both halves of the key before building it."""
        if not collection or not collection.strip():
            raise ValidationError("collection name must not be empty", "collection")
        try:
            year = validate_academic_year(academic_year)
        except ValueError as exc:
            raise ValidationError(str(exc), "academicYear") from exc
        return cls(collection.strip(), year)

    def __str__(self) -> str:
        return f"{self.collection}/{self.academic_year}"
