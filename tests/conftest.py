"""Shared fixtures: temporary caches, fake remote stores and a planner wired to them."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from lesson_corpus.config.schema import PlannerConfig, Settings
from lesson_corpus.data_models import Activity, LessonData, Partition
from lesson_corpus.corpus import LessonStore
from lesson_corpus.errors import LocalCacheError
from lesson_corpus.storage import JsonFileCache, OfflineRemoteStore
from lesson_corpus.system import PlannerSystem


class RecordingRemoteStore(OfflineRemoteStore):
    """Configured remote that keeps every write in memory and serves reads from it."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.lessons: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.half_term_rows: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.stacks: Dict[str, Dict[str, Any]] = {}
        self.plans: Dict[str, Dict[str, Any]] = {}

    @property
    def is_configured(self) -> bool:
        return True

    async def fetch_lessons(self, collection: str, academic_year: str) -> Optional[Dict[str, Any]]:
        return self.lessons.get((collection, academic_year))

    async def save_lessons(self, collection: str, academic_year: str, payload: Dict[str, Any]) -> None:
        self.calls.append(("save_lessons", (collection, academic_year)))
        self.lessons[(collection, academic_year)] = payload

    async def fetch_half_terms(self, collection: str, academic_year: str) -> List[Dict[str, Any]]:
        return [row for key, row in self.half_term_rows.items() if key[:2] == (collection, academic_year)]

    async def save_half_term(self, collection: str, academic_year: str, half_term: Dict[str, Any]) -> None:
        self.calls.append(("save_half_term", (collection, academic_year, half_term["id"])))
        self.half_term_rows[(collection, academic_year, half_term["id"])] = half_term

    async def save_stack(self, stack: Dict[str, Any]) -> None:
        self.calls.append(("save_stack", stack["id"]))
        self.stacks[stack["id"]] = stack

    async def delete_stack(self, stack_id: str) -> None:
        self.calls.append(("delete_stack", stack_id))
        self.stacks.pop(stack_id, None)

    async def save_lesson_plans(self, plans: List[Dict[str, Any]]) -> None:
        self.calls.append(("save_lesson_plans", [plan["id"] for plan in plans]))
        for plan in plans:
            self.plans[plan["id"]] = plan

    async def delete_lesson_plan(self, plan_id: str) -> None:
        self.calls.append(("delete_lesson_plan", plan_id))
        self.plans.pop(plan_id, None)


class FailingRemoteStore(OfflineRemoteStore):
    """Configured remote whose every call raises, as if the network were down."""

    @property
    def is_configured(self) -> bool:
        return True

    async def _fail(self, *args: Any, **kwargs: Any) -> None:
        raise ConnectionError("remote unreachable")

    fetch_lessons = _fail
    save_lessons = _fail
    fetch_half_terms = _fail
    save_half_term = _fail
    fetch_stacks = _fail
    save_stack = _fail
    delete_stack = _fail
    fetch_activities = _fail
    save_activities = _fail
    fetch_lesson_plans = _fail
    save_lesson_plans = _fail
    delete_lesson_plan = _fail


class FlakyFileCache(JsonFileCache):
    """File cache whose writes to keys starting with ``fail_prefix`` raise, as on a full disk."""

    def __init__(self, directory: Path) -> None:
        super().__init__(directory)
        self.fail_prefix: Optional[str] = None

    def set(self, key: str, value: Any) -> None:
        if self.fail_prefix is not None and key.startswith(self.fail_prefix):
            raise LocalCacheError(f"Cannot write cache key {key!r}: disk full")
        super().set(key, value)


@pytest.fixture
def cache_dir():
    """Create a temporary directory for the local cache."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def cache(cache_dir):
    return JsonFileCache(cache_dir)


@pytest.fixture
def settings(cache_dir):
    """Settings pinned to the 2024-2025 academic year with a temporary cache."""
    settings = Settings(planner=PlannerConfig(default_collection="LKG", academic_year="2024-2025"))
    settings.paths.cache_dir = cache_dir
    return settings


@pytest.fixture
def system(settings, cache):
    """Planner running fully offline."""
    return PlannerSystem(settings, cache=cache)


@pytest.fixture
def recording_remote():
    return RecordingRemoteStore()


@pytest.fixture
def online_system(settings, cache, recording_remote):
    return PlannerSystem(settings, cache=cache, remote=recording_remote)


@pytest.fixture
def partition():
    return Partition.of("LKG", "2024-2025")


def make_activity(name: str, category: str, minutes: int = 5, **extra: Any) -> Activity:
    return Activity(activity=name, category=category, time=minutes, **extra)


def make_lesson(title: Optional[str] = None, *activities: Activity) -> LessonData:
    if not activities:
        activities = (make_activity("Hello Song", "Welcome", 3), make_activity("Goodbye Song", "Goodbye", 2))
    return LessonStore.build_from_activities(activities, title=title)
