"""Tests for delete-and-renumber across lessons, half-terms, standards, plans and units."""

from __future__ import annotations

import pytest

from conftest import make_activity, make_lesson
from lesson_corpus.data_models import HalfTermId, LessonPlan, Partition, Unit
from lesson_corpus.errors import ConcurrentModificationError


@pytest.fixture
def three_lessons(system, partition):
    for number in (1, 2, 3):
        system.lessons.upsert(
            partition,
            number,
            make_lesson(f"Lesson {number}", make_activity(f"Song {number}", "Core Songs", number)),
        )
    system.half_terms.assign(partition, "A1", ["1", "2", "3"])
    return system


def test_delete_middle_lesson_compacts_numbering(three_lessons, partition):
    mapping = three_lessons.renumbering.delete_and_renumber(partition, "2")

    assert mapping == {"1": "1", "3": "2"}
    assert three_lessons.lessons.list_numbers(partition) == ["1", "2"]
    assert three_lessons.lessons.get(partition, "2").title == "Lesson 3"
    assert three_lessons.half_terms.get(partition, HalfTermId.A1) == ["1", "2"]
    stored = three_lessons.state.snapshot(partition).half_terms[HalfTermId.A1]
    assert stored.lessons == ["1", "2"]


def test_embedded_activity_numbers_follow_their_lesson(three_lessons, partition):
    three_lessons.renumbering.delete_and_renumber(partition, "1")

    for number in three_lessons.lessons.list_numbers(partition):
        lesson = three_lessons.lessons.get(partition, number)
        assert {activity.lesson_number for activity in lesson.iter_activities()} == {number}


def test_renumbering_is_dense_and_order_preserving(system, partition):
    for number in (2, 5, 9, 10, 14):
        system.lessons.upsert(partition, number, make_lesson(f"Was {number}"))

    mapping = system.renumbering.delete_and_renumber(partition, "9")

    assert mapping == {"2": "1", "5": "2", "10": "3", "14": "4"}
    titles = [system.lessons.get(partition, n).title for n in system.lessons.list_numbers(partition)]
    assert titles == ["Was 2", "Was 5", "Was 10", "Was 14"]


def test_missing_lesson_still_compacts(system, partition):
    for number in (1, 3):
        system.lessons.upsert(partition, number, make_lesson())

    mapping = system.renumbering.delete_and_renumber(partition, "7")

    assert mapping == {"1": "1", "3": "2"}


def test_every_bucket_reference_exists_after_renumbering(three_lessons, partition):
    three_lessons.half_terms.assign(partition, "SP1", ["3"])
    three_lessons.half_terms.assign(partition, "SM1", ["2"])

    three_lessons.renumbering.delete_and_renumber(partition, "2")

    existing = set(three_lessons.lessons.list_numbers(partition))
    for half_term in three_lessons.state.snapshot(partition).half_terms.values():
        assert set(half_term.lessons) <= existing
    assert three_lessons.half_terms.get(partition, "SP1") == ["2"]
    assert three_lessons.half_terms.get(partition, "SM1") == []


def test_standards_map_is_rekeyed(three_lessons, partition):
    three_lessons.lessons.add_standard(partition, "3", "Speaking")
    three_lessons.lessons.add_standard(partition, "2", "Listening")

    three_lessons.renumbering.delete_and_renumber(partition, "2")

    assert three_lessons.lessons.lesson_standards(partition) == {"2": ["Speaking"]}


def test_plans_and_units_of_the_partition_are_rewritten(three_lessons, partition):
    doomed = three_lessons.plans.save(LessonPlan(class_name="LKG", lesson_number="2", academic_year="2024-2025"))
    moved = three_lessons.plans.save(LessonPlan(class_name="LKG", lesson_number="3"))
    other_class = three_lessons.plans.save(LessonPlan(class_name="UKG", lesson_number="3"))
    other_year = three_lessons.plans.save(LessonPlan(class_name="LKG", lesson_number="3", academic_year="2023-2024"))
    unit = three_lessons.units.save("LKG", Unit(name="Animals", lesson_numbers=["1", "2", "3"]))

    three_lessons.renumbering.delete_and_renumber(partition, "2")

    assert three_lessons.plans.get(doomed.id) is None
    assert three_lessons.plans.get(moved.id).lesson_number == "2"
    assert three_lessons.plans.get(other_class.id).lesson_number == "3"
    assert three_lessons.plans.get(other_year.id).lesson_number == "3"
    assert [u.lesson_numbers for u in three_lessons.units.list("LKG") if u.id == unit.id] == [["1", "2"]]


def test_other_partitions_are_untouched(three_lessons, partition):
    other = Partition.of("LKG", "2025-2026")
    for number in (1, 2, 3):
        three_lessons.lessons.upsert(other, number, make_lesson(f"Next year {number}"))
    three_lessons.half_terms.assign(other, "A1", ["1", "2", "3"])

    three_lessons.renumbering.delete_and_renumber(partition, "1")

    assert three_lessons.lessons.list_numbers(other) == ["1", "2", "3"]
    assert three_lessons.half_terms.get(other, "A1") == ["1", "2", "3"]


def test_renumbering_persists_locally(three_lessons, partition, cache):
    three_lessons.renumbering.delete_and_renumber(partition, "2")

    payload = cache.get("lesson-data-LKG-2024-2025")
    assert payload["lessonNumbers"] == ["1", "2"]
    assert payload["allLessonsData"]["2"]["title"] == "Lesson 3"
    a1 = next(item for item in cache.get("half-terms-LKG-2024-2025") if item["id"] == "A1")
    assert a1["lessons"] == ["1", "2"]


def test_stale_version_is_rejected(three_lessons, partition):
    version = three_lessons.state.version(partition)
    three_lessons.lessons.set_title(partition, "1", "Renamed")

    with pytest.raises(ConcurrentModificationError):
        three_lessons.lessons.upsert(partition, "1", make_lesson("Stale"), expected_version=version)
    assert three_lessons.lessons.get(partition, "1").title == "Renamed"


def test_removing_a_lesson_from_units_is_scoped_to_the_partition(system, partition):
    current = system.units.save("LKG", Unit(name="Farm", lesson_numbers=["1", "2"]))
    earlier = system.units.save("LKG", Unit(name="Sea", lesson_numbers=["2"], academic_year="2023-2024"))

    system.units.remove_lesson(partition, "2")

    units = {unit.id: unit.lesson_numbers for unit in system.units.list("LKG")}
    assert units == {current.id: ["1"], earlier.id: ["2"]}
