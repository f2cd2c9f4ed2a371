"""Tests for half-term buckets: sanitised assignment, lazy filtering and auto-assignment."""

from __future__ import annotations

import pytest

from conftest import make_activity, make_lesson
from lesson_corpus.config.schema import PlannerConfig, Settings
from lesson_corpus.data_models import HalfTermId, Partition
from lesson_corpus.errors import StaleReferenceError, ValidationError
from lesson_corpus.system import PlannerSystem


@pytest.fixture
def seeded(system, partition):
    for number in (1, 2, 3):
        system.lessons.upsert(partition, number, make_lesson(f"Lesson {number}"))
    return system


def test_default_partition_has_six_empty_buckets(system, partition):
    half_terms = system.half_terms.half_terms(partition)

    assert list(half_terms) == [HalfTermId.A1, HalfTermId.A2, HalfTermId.SP1, HalfTermId.SP2, HalfTermId.SM1, HalfTermId.SM2]
    assert half_terms[HalfTermId.SP2].name == "Spring 2"
    assert half_terms[HalfTermId.SM1].months == "Apr-May"
    assert all(not half_term.lessons for half_term in half_terms.values())


def test_assign_drops_unknown_and_duplicate_numbers(seeded, partition):
    result = seeded.half_terms.assign(partition, "A1", ["3", "1", "3", "9", "x"])

    assert result.lessons == ["3", "1"]
    assert seeded.half_terms.get(partition, HalfTermId.A1) == ["3", "1"]


def test_reassignment_bumps_updated_at(seeded, partition):
    first = seeded.half_terms.assign(partition, "A2", ["1"])
    second = seeded.half_terms.assign(partition, "A2", ["1"])

    assert second.lessons == first.lessons
    assert second.updated_at >= first.updated_at
    assert second.created_at == first.created_at


def test_assign_without_stack_ids_keeps_existing_stacks(seeded, partition):
    stack = seeded.stacks.create("Warm Up", [make_activity("Stretch", "Welcome", 2)])
    seeded.half_terms.assign(partition, "SP1", ["1"], stack_ids=[stack.id])

    seeded.half_terms.assign(partition, "SP1", ["1", "2"])

    assert seeded.half_terms.get_stacks(partition, "SP1") == [stack.id]


def test_unknown_half_term_is_rejected(seeded, partition):
    with pytest.raises(ValidationError):
        seeded.half_terms.assign(partition, "W1", ["1"])


def test_stale_lessons_are_filtered_on_read_without_mutating_storage(seeded, partition):
    seeded.half_terms.assign(partition, "A1", ["1", "2", "3"])

    seeded.lessons.delete(partition, "3")

    assert seeded.half_terms.get(partition, "A1") == ["1", "2"]
    stored = seeded.state.snapshot(partition).half_terms[HalfTermId.A1]
    assert stored.lessons == ["1", "2", "3"]


def test_strict_read_reports_stale_lesson(seeded, partition):
    seeded.half_terms.assign(partition, "SP2", ["2", "3"])
    assert seeded.half_terms.get(partition, "SP2", strict=True) == ["2", "3"]

    seeded.lessons.delete(partition, "2")

    with pytest.raises(StaleReferenceError) as excinfo:
        seeded.half_terms.get(partition, "SP2", strict=True)
    assert excinfo.value.reference == "2"
    assert seeded.half_terms.get(partition, "SP2") == ["3"]


def test_deleted_stack_disappears_from_bucket_reads(seeded, partition):
    stack = seeded.stacks.create("Cool Down", [make_activity("Breathe", "Goodbye", 1)])
    seeded.half_terms.assign(partition, "A1", ["1"], stack_ids=[stack.id, "missing"])

    seeded.stacks.delete(stack.id)

    assert seeded.half_terms.get_stacks(partition, "A1") == []
    assert seeded.state.snapshot(partition).half_terms[HalfTermId.A1].stacks == [stack.id, "missing"]


def test_auto_assign_uses_term_hint(seeded, partition):
    assert seeded.half_terms.auto_assign(partition, "2", "Spring") == HalfTermId.SP1
    assert seeded.half_terms.get(partition, "SP1") == ["2"]


def test_auto_assign_keeps_existing_bucket(seeded, partition):
    seeded.half_terms.assign(partition, "SM2", ["1"])

    assert seeded.half_terms.auto_assign(partition, "1", "Autumn") == HalfTermId.SM2
    assert seeded.half_terms.get(partition, "A1") == []


def test_auto_assign_fills_first_bucket_below_capacity(cache, cache_dir):
    settings = Settings(planner=PlannerConfig(academic_year="2024-2025", half_term_capacity=2))
    settings.paths.cache_dir = cache_dir
    system = PlannerSystem(settings, cache=cache)
    partition = Partition.of("LKG", "2024-2025")
    for number in range(1, 6):
        system.lessons.upsert(partition, number, make_lesson())

    placed = [system.half_terms.auto_assign(partition, number) for number in range(1, 6)]

    assert placed == [HalfTermId.A1, HalfTermId.A1, HalfTermId.A2, HalfTermId.A2, HalfTermId.SP1]


def test_term_position_and_display_title(seeded, partition):
    seeded.half_terms.assign(partition, "A2", ["3", "1"])

    assert seeded.half_terms.term_position(partition, "1", "A2") == 2
    assert seeded.half_terms.term_position(partition, "2", "A2") == 0
    assert seeded.half_terms.display_title(partition, "1", "A2") == "Lesson 1"


def test_half_terms_are_partitioned_by_year(seeded, partition):
    seeded.half_terms.assign(partition, "A1", ["1", "2"])
    other = Partition.of("LKG", "2025-2026")

    assert seeded.half_terms.get(other, "A1") == []


def test_copy_term_stamps_target_year(seeded, partition, cache):
    seeded.half_terms.assign(partition, "A1", ["2", "3"])
    target = Partition.of("LKG", "2025-2026")

    copied = seeded.half_terms.copy_term(partition, target, "A1")

    assert copied.lessons == ["2", "3"]
    assert seeded.lessons.get(target, "2").academic_year == "2025-2026"
    assert seeded.lessons.list_numbers(partition) == ["1", "2", "3"]
    assert cache.get("half-terms-LKG-2025-2026")[0]["lessons"] == ["2", "3"]


def test_half_terms_survive_restart(seeded, partition, settings, cache):
    seeded.half_terms.assign(partition, "SP2", ["2", "1"], is_complete=True)

    restarted = PlannerSystem(settings, cache=cache)
    half_term = restarted.half_terms.half_term(partition, "SP2")

    assert half_term.lessons == ["2", "1"]
    assert half_term.is_complete is True
