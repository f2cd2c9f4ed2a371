from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Literal, Optional, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator
from pydantic.alias_generators import to_camel

from lesson_corpus.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class CorpusModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python, unknown keys ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using the cache's camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)


class Activity(CorpusModel):
    """Atomic content unit: a song, game or exercise with its resources and duration."""

    id: str = Field(default_factory=new_id)
    activity: str = Field(..., min_length=1, description="Display name.")
    description: str = ""
    html_description: Optional[str] = None
    time: int = Field(0, ge=0, description="Duration in minutes.")
    video_link: str = ""
    music_link: str = ""
    backing_link: str = ""
    resource_link: str = ""
    link: str = ""
    vocals_link: str = ""
    image_link: str = ""
    teaching_unit: str = ""
    category: str = Field(..., min_length=1)
    level: str = ""
    year_groups: List[str] = Field(default_factory=list)
    unit_name: str = ""
    standards: List[str] = Field(default_factory=list)
    lesson_number: str = ""

    @field_validator("activity", "category")
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    def natural_key(self) -> tuple[str, str, str]:
        """Identity used by the remote activities table for upserts."""
        return (self.activity, self.category, self.lesson_number)


class LessonData(CorpusModel):
    """Activities of one lesson grouped by category, plus the fields derived from them."""

    grouped: Dict[str, List[Activity]] = Field(default_factory=dict)
    category_order: List[str] = Field(default_factory=list)
    total_time: int = 0
    title: Optional[str] = None
    lesson_standards: List[str] = Field(default_factory=list)
    academic_year: Optional[str] = None
    notes: Optional[str] = None

    def iter_activities(self) -> Iterator[Activity]:
        for activities in self.grouped.values():
            yield from activities


class HalfTermId(str, Enum):
    A1 = "A1"
    A2 = "A2"
    SP1 = "SP1"
    SP2 = "SP2"
    SM1 = "SM1"
    SM2 = "SM2"


HALF_TERM_DETAILS: Dict[HalfTermId, Dict[str, str]] = {
    HalfTermId.A1: {"name": "Autumn 1", "months": "Sep-Oct"},
    HalfTermId.A2: {"name": "Autumn 2", "months": "Nov-Dec"},
    HalfTermId.SP1: {"name": "Spring 1", "months": "Jan-Feb"},
    HalfTermId.SP2: {"name": "Spring 2", "months": "Mar-Apr"},
    HalfTermId.SM1: {"name": "Summer 1", "months": "Apr-May"},
    HalfTermId.SM2: {"name": "Summer 2", "months": "Jun-Jul"},
}


class HalfTerm(CorpusModel):
    """One of the six fixed buckets of a partition."""

    id: HalfTermId
    name: str = ""
    months: str = ""
    lessons: List[str] = Field(default_factory=list)
    stacks: List[str] = Field(default_factory=list)
    is_complete: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("stacks", "lessons", mode="before")
    def none_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @classmethod
    def empty(cls, half_term_id: HalfTermId) -> "HalfTerm":
        details = HALF_TERM_DETAILS[half_term_id]
        return cls(id=half_term_id, name=details["name"], months=details["months"])


class ActivityStack(CorpusModel):
    """Named bundle of activity copies with an independent lifecycle."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    activities: List[Activity] = Field(default_factory=list)
    category: Optional[str] = None
    total_time: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LessonPlan(CorpusModel):
    """A lesson a teacher scheduled or built by hand."""

    id: str = Field(default_factory=new_id)
    date: datetime = Field(default_factory=utcnow)
    week: int = 0
    class_name: str = Field(..., min_length=1)
    activities: List[Activity] = Field(default_factory=list)
    duration: int = Field(0, ge=0)
    notes: str = ""
    status: Literal["planned", "completed", "cancelled", "draft"] = "planned"
    unit_id: Optional[str] = None
    unit_name: Optional[str] = None
    lesson_number: Optional[str] = None
    title: Optional[str] = None
    term: Optional[str] = None
    time: Optional[str] = None
    academic_year: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Unit(CorpusModel):
    """Teaching unit grouping lesson numbers of one collection."""

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    description: str = ""
    lesson_numbers: List[str] = Field(default_factory=list)
    color: str = "#3B82F6"
    term: Optional[str] = None
    academic_year: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


def parse_record(model: Type[ModelT], data: Any) -> ModelT:
    """
    Validate ``data`` into ``model``, translating pydantic errors into the package's
    ``ValidationError`` so callers only ever handle one exception type.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid {model.__name__}: {exc}", field) from exc


def parse_activity(data: Any) -> Activity:
    return parse_record(Activity, data)


def parse_lesson_plan(data: Any) -> LessonPlan:
    return parse_record(LessonPlan, data)
