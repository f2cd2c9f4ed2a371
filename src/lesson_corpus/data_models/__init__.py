from .ordinals import LessonNumber, LessonRef, Partition, is_lesson_key, lesson_key, sort_lesson_keys
from .records import (
    HALF_TERM_DETAILS,
    Activity,
    ActivityStack,
    HalfTerm,
    HalfTermId,
    LessonData,
    LessonPlan,
    Unit,
    parse_activity,
    parse_lesson_plan,
    parse_record,
)

__all__ = [
    "Activity",
    "ActivityStack",
    "HALF_TERM_DETAILS",
    "HalfTerm",
    "HalfTermId",
    "LessonData",
    "LessonNumber",
    "LessonPlan",
    "LessonRef",
    "Partition",
    "Unit",
    "is_lesson_key",
    "lesson_key",
    "parse_activity",
    "parse_lesson_plan",
    "parse_record",
    "sort_lesson_keys",
]
