"""Tests for lesson numbering, derived fields and partition isolation."""

from __future__ import annotations

import pytest

from conftest import make_activity, make_lesson
from lesson_corpus.corpus import generate_title, sort_categories
from lesson_corpus.data_models import LessonNumber, Partition, is_lesson_key, sort_lesson_keys
from lesson_corpus.errors import NotFoundError, ValidationError
from lesson_corpus.storage import JsonFileCache
from lesson_corpus.system import PlannerSystem


def test_lesson_numbers_compare_numerically():
    assert LessonNumber("10") > LessonNumber("2")
    assert str(LessonNumber(" 07 ")) == "7"
    assert sort_lesson_keys(["10", "2", "1", "abc"]) == ["1", "2", "10"]


def test_non_ascii_digits_are_not_lesson_keys():
    assert is_lesson_key("²") is False
    assert sort_lesson_keys(["²", "3", "1"]) == ["1", "3"]


@pytest.mark.parametrize("value", ["0", "-1", "two", "", True, "²", "١٢"])
def test_invalid_lesson_numbers_are_rejected(value):
    with pytest.raises(ValidationError):
        LessonNumber(value)


def test_partition_validates_academic_year():
    with pytest.raises(ValidationError):
        Partition.of("LKG", "2024-2026")
    with pytest.raises(ValidationError):
        Partition.of(" ", "2024-2025")
    assert str(Partition.of("LKG", "2024-2025")) == "LKG/2024-2025"


def test_list_numbers_is_numeric_not_lexicographic(system, partition):
    for number in range(1, 12):
        system.lessons.upsert(partition, number, make_lesson(f"Lesson {number}"))

    numbers = system.lessons.list_numbers(partition)

    assert numbers == [str(number) for number in range(1, 12)]
    assert all(int(a) < int(b) for a, b in zip(numbers, numbers[1:]))


def test_upsert_recomputes_derived_fields(system, partition):
    lesson = make_lesson(
        None,
        make_activity("Parachute Up", "Parachute Games", 7),
        make_activity("Hello", "Welcome", 3),
        make_activity("Zebra Dance", "Zoo Moves", 4),
    )
    lesson.total_time = 999
    lesson.category_order = ["wrong"]

    stored = system.lessons.upsert(partition, "4", lesson)

    assert stored.total_time == 14
    assert stored.category_order == ["Welcome", "Parachute Games", "Zoo Moves"]
    assert {activity.lesson_number for activity in stored.iter_activities()} == {"4"}
    assert stored.title == "Parachute Activities"
    assert system.lessons.get(partition, 4).total_time == 14


def test_sort_categories_puts_unknown_categories_last_alphabetically():
    assert sort_categories(["Zumba", "Goodbye", "Art", "Welcome"]) == ["Welcome", "Goodbye", "Art", "Zumba"]


def test_generated_titles():
    def grouped(*categories):
        return {category: [make_activity(category, category)] for category in categories}

    assert generate_title({}) == "Untitled Lesson"
    assert generate_title(grouped("Welcome", "Goodbye")) == "Standard Lesson"
    assert generate_title(grouped("Welcome", "Goodbye", "Rhythm Sticks")) == "Rhythm Sticks Lesson"
    assert generate_title(grouped("Scarf Songs", "Core Songs")) == "Movement with Scarves"
    assert generate_title(grouped("IWB Games")) == "IWB Games Lesson"


def test_lessons_are_isolated_by_academic_year(system):
    older = Partition.of("LKG", "2024-2025")
    newer = Partition.of("LKG", "2025-2026")
    system.lessons.upsert(older, "1", make_lesson("Old lesson"))

    assert system.lessons.list_numbers(newer) == []
    assert system.lessons.get(newer, "1") is None
    assert system.lessons.list_numbers(older) == ["1"]


def test_collections_with_similar_names_stay_separate_after_restart(settings, cache_dir):
    spaced = Partition.of("Year 1", "2024-2025")
    underscored = Partition.of("Year_1", "2024-2025")
    first = PlannerSystem(settings, cache=JsonFileCache(cache_dir))
    first.lessons.upsert(spaced, "1", make_lesson("Only in Year 1"))
    first.half_terms.assign(spaced, "A1", ["1"])

    restarted = PlannerSystem(settings, cache=JsonFileCache(cache_dir))

    assert restarted.lessons.list_numbers(underscored) == []
    assert restarted.half_terms.get(underscored, "A1") == []
    assert restarted.lessons.require(spaced, "1").title == "Only in Year 1"
    assert restarted.half_terms.get(spaced, "A1") == ["1"]


def test_upsert_rejects_lesson_from_another_year(system, partition):
    lesson = make_lesson("Wrong year")
    lesson.academic_year = "2023-2024"
    with pytest.raises(ValidationError):
        system.lessons.upsert(partition, "1", lesson)


def test_lessons_persist_to_year_scoped_key(system, partition, cache):
    system.lessons.upsert(partition, "2", make_lesson("Second"))
    system.lessons.upsert(partition, "10", make_lesson("Tenth"))

    payload = cache.get("lesson-data-LKG-2024-2025")

    assert payload["lessonNumbers"] == ["2", "10"]
    assert payload["allLessonsData"]["10"]["title"] == "Tenth"
    assert payload["allLessonsData"]["2"]["totalTime"] == 5
    assert "academicYear" in payload["allLessonsData"]["2"]
    assert payload["allLessonsData"]["2"]["academicYear"] is None


def test_legacy_blob_is_split_by_academic_year(system, cache):
    lesson = make_lesson("Undated").to_payload()
    dated = dict(make_lesson("Dated").to_payload(), academicYear="2023-2024")
    cache.set("lesson-data-LKG", {"allLessonsData": {"1": lesson, "2": dated}, "lessonNumbers": ["1", "2"]})

    assert system.lessons.list_numbers(Partition.of("LKG", "2024-2025")) == ["1"]
    assert system.lessons.list_numbers(Partition.of("LKG", "2023-2024")) == ["2"]
    assert cache.get("lesson-data-LKG")["lessonNumbers"] == ["1", "2"]


def test_uuid_titles_are_repaired_on_load(system, partition, cache):
    broken = make_lesson("3f2b8c1e-6a4d-4e7b-9c2a-1d5e8f0a7b6c").to_payload()
    cache.set("lesson-data-LKG-2024-2025", {"allLessonsData": {"1": broken}, "lessonNumbers": ["1"]})

    lesson = system.lessons.get(partition, "1")

    assert lesson.title == "Standard Lesson"
    assert cache.get("lesson-data-LKG-2024-2025")["allLessonsData"]["1"]["title"] == "Standard Lesson"


def test_standards_are_kept_on_lesson_and_in_map(system, partition):
    system.lessons.upsert(partition, "1", make_lesson("With standards"))

    system.lessons.add_standard(partition, "1", "Speaking")
    system.lessons.add_standard(partition, "1", "Speaking")

    assert system.lessons.get(partition, "1").lesson_standards == ["Speaking"]
    assert system.lessons.lesson_standards(partition) == {"1": ["Speaking"]}

    system.lessons.remove_standard(partition, "1", "Speaking")
    assert system.lessons.lesson_standards(partition) == {}


def test_set_title_on_missing_lesson_raises(system, partition):
    with pytest.raises(NotFoundError):
        system.lessons.set_title(partition, "5", "Nope")


def test_build_from_activities_groups_by_category():
    lesson = make_lesson(
        None,
        make_activity("Hello", "Welcome", 2),
        make_activity("Tap Tap", "Rhythm Sticks", 6),
        make_activity("Click Clack", "Rhythm Sticks", 4),
    )

    assert [activity.activity for activity in lesson.grouped["Rhythm Sticks"]] == ["Tap Tap", "Click Clack"]
    assert lesson.category_order == ["Welcome", "Rhythm Sticks"]
    assert lesson.total_time == 12
    assert lesson.title == "Rhythm Sticks Lesson"
