"""A failed local write must reach the caller and leave memory, cache and remote untouched."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FlakyFileCache, make_activity, make_lesson
from lesson_corpus.data_models import LessonPlan, Unit
from lesson_corpus.errors import LocalCacheError
from lesson_corpus.storage import JsonFileCache
from lesson_corpus.system import PlannerSystem


@pytest.fixture
def flaky_cache(cache_dir):
    return FlakyFileCache(cache_dir)


@pytest.fixture
def flaky_system(settings, flaky_cache, partition):
    system = PlannerSystem(settings, cache=flaky_cache)
    for number in (1, 2, 3):
        system.lessons.upsert(
            partition,
            number,
            make_lesson(f"Lesson {number}", make_activity(f"Song {number}", "Core Songs", number)),
        )
    system.half_terms.assign(partition, "A1", ["2"])
    system.half_terms.assign(partition, "SP1", ["3"])
    return system


def _titles(system, partition):
    return {number: lesson.title for number, lesson in system.lessons.lessons(partition).items()}


@pytest.mark.parametrize("failing_key", ["lesson-data-", "half-terms-", "user-created-lesson-plans", "units-"])
def test_failed_renumbering_changes_nothing(flaky_system, flaky_cache, settings, cache_dir, partition, failing_key):
    plan = flaky_system.plans.save(LessonPlan(class_name="LKG", lesson_number="3"))
    unit = flaky_system.units.save("LKG", Unit(name="Songs", lesson_numbers=["2", "3"]))
    flaky_cache.fail_prefix = failing_key

    with pytest.raises(LocalCacheError):
        flaky_system.delete_lesson("1", partition)

    expected = {"1": "Lesson 1", "2": "Lesson 2", "3": "Lesson 3"}
    assert _titles(flaky_system, partition) == expected
    assert flaky_system.half_terms.get(partition, "A1") == ["2"]
    assert flaky_system.half_terms.get(partition, "SP1") == ["3"]
    assert flaky_system.plans.get(plan.id).lesson_number == "3"
    assert flaky_system.units.list("LKG")[0].lesson_numbers == ["2", "3"]

    restarted = PlannerSystem(settings, cache=JsonFileCache(cache_dir))
    assert _titles(restarted, partition) == expected
    assert restarted.half_terms.get(partition, "A1") == ["2"]
    assert restarted.half_terms.get(partition, "SP1") == ["3"]
    assert restarted.plans.get(plan.id).lesson_number == "3"
    assert [u.lesson_numbers for u in restarted.units.list("LKG") if u.id == unit.id] == [["2", "3"]]


def test_renumbering_succeeds_once_the_cache_recovers(flaky_system, flaky_cache, partition):
    flaky_cache.fail_prefix = "half-terms-"
    with pytest.raises(LocalCacheError):
        flaky_system.delete_lesson("1", partition)

    flaky_cache.fail_prefix = None
    mapping = flaky_system.delete_lesson("1", partition)

    assert mapping == {"2": "1", "3": "2"}
    assert flaky_system.half_terms.get(partition, "A1") == ["1"]
    assert flaky_system.half_terms.get(partition, "SP1") == ["2"]


def test_failed_assign_keeps_previous_bucket(flaky_system, flaky_cache, partition):
    version = flaky_system.state.version(partition)
    flaky_cache.fail_prefix = "half-terms-"

    with pytest.raises(LocalCacheError):
        flaky_system.half_terms.assign(partition, "A1", ["1", "2", "3"])

    assert flaky_system.half_terms.get(partition, "A1") == ["2"]
    assert flaky_system.state.version(partition) == version


def test_failed_upsert_is_not_sent_to_the_remote(settings, flaky_cache, recording_remote, partition):
    system = PlannerSystem(settings, cache=flaky_cache, remote=recording_remote)
    system.load_partition(partition)
    pending = system.gateway.pending
    flaky_cache.fail_prefix = "lesson-data-"

    with pytest.raises(LocalCacheError):
        system.lessons.upsert(partition, "1", make_lesson("Never stored"))

    assert system.lessons.list_numbers(partition) == []
    assert system.gateway.pending == pending
    asyncio.run(system.gateway.drain())
    assert ("save_lessons", ("LKG", "2024-2025")) not in recording_remote.calls


def test_failed_renumbering_schedules_no_remote_writes(settings, flaky_cache, recording_remote, partition):
    system = PlannerSystem(settings, cache=flaky_cache, remote=recording_remote)
    system.load_all(partition)
    system.lessons.upsert(partition, "1", make_lesson("One"))
    system.lessons.upsert(partition, "2", make_lesson("Two"))
    system.sync()
    recording_remote.calls.clear()
    flaky_cache.fail_prefix = "half-terms-"

    with pytest.raises(LocalCacheError):
        system.delete_lesson("1", partition)

    assert system.gateway.pending == 0
    system.sync()
    assert recording_remote.calls == []
