from __future__ import annotations

import datetime

import pytest

from conftest import PERIOD_START, staggered_seeds
from crewrota.constants import ARCHIVED, DRAFT, PENDING_APPROVAL, PUBLISHED
from crewrota.errors import InvalidRange, InvalidStateTransition, NotFound, OverlapConflict

CREW = 1
DAYS = 30
PERIOD_END = PERIOD_START + datetime.timedelta(days=DAYS - 1)
SEEDS = staggered_seeds([1, 2, 3])


def _states(service, period_id, worker_id):
    return [(slot.slot_date, slot.state) for slot in service.list_slots(period_id, worker_id=worker_id)]


@pytest.fixture
def published(service, four_two_pattern):
    period = service.create_period(CREW, PERIOD_START, PERIOD_END, four_two_pattern)
    service.generate_slots(period.id, SEEDS)
    return service.publish(period.id)


def test_create_period_starts_as_empty_draft(service, four_two_pattern):
    period = service.create_period(CREW, PERIOD_START, PERIOD_END, four_two_pattern, notes="Spring")
    assert (period.status, period.version, period.notes) == (DRAFT, 0, "Spring")
    assert period.frozen_through is None
    assert service.get_period(period.id).day_count == DAYS


def test_create_period_validates_range_pattern_and_overlap(service, four_two_pattern):
    with pytest.raises(InvalidRange):
        service.create_period(CREW, PERIOD_END, PERIOD_START, four_two_pattern)
    with pytest.raises(NotFound):
        service.create_period(CREW, PERIOD_START, PERIOD_END, 999)

    first = service.create_period(CREW, PERIOD_START, PERIOD_END, four_two_pattern)
    with pytest.raises(OverlapConflict) as excinfo:
        service.create_period(CREW, PERIOD_END, PERIOD_END + datetime.timedelta(days=10), four_two_pattern)
    assert excinfo.value.period_ids == [first.id]

    # Other crews and archived periods never conflict.
    service.create_period(CREW + 1, PERIOD_START, PERIOD_END, four_two_pattern)
    service.archive(first.id)
    service.create_period(CREW, PERIOD_START, PERIOD_END, four_two_pattern)


def test_get_period_unknown_id(service):
    with pytest.raises(NotFound):
        service.get_period(404)


def test_update_draft_retires_slots_outside_new_range(service, four_two_pattern):
    period = service.create_period(CREW, PERIOD_START, PERIOD_END, four_two_pattern)
    service.generate_slots(period.id, SEEDS)
    new_end = PERIOD_START + datetime.timedelta(days=13)
    updated = service.update_period(period.id, period_end=new_end, notes="Shortened")

    assert updated.period_end == new_end
    assert updated.notes == "Shortened"
    slots = service.list_slots(period.id)
    assert len(slots) == 14 * 3
    assert max(slot.slot_date for slot in slots) == new_end
    assert service.validate_composition(period.id) == []


def test_update_rechecks_overlap_and_range(service, four_two_pattern):
    first = service.create_period(CREW, PERIOD_START, PERIOD_END, four_two_pattern)
    later = service.create_period(
        CREW,
        PERIOD_END + datetime.timedelta(days=1),
        PERIOD_END + datetime.timedelta(days=30),
        four_two_pattern,
    )
    with pytest.raises(OverlapConflict):
        service.update_period(first.id, period_end=PERIOD_END + datetime.timedelta(days=5))
    with pytest.raises(InvalidRange):
        service.update_period(later.id, period_start=PERIOD_END + datetime.timedelta(days=31))


def test_only_drafts_are_editable(service, published, four_two_pattern):
    with pytest.raises(InvalidStateTransition, match="immutable"):
        service.update_period(published.id, notes="edited")

    pending = service.create_period(CREW + 1, PERIOD_START, PERIOD_END, four_two_pattern)
    service.submit_for_approval(pending.id)
    with pytest.raises(InvalidStateTransition):
        service.update_period(pending.id, notes="edited")

    service.archive(published.id)
    with pytest.raises(InvalidStateTransition):
        service.update_period(published.id, notes="edited")


def test_approval_round_trip_then_publish(service, four_two_pattern):
    period = service.create_period(CREW, PERIOD_START, PERIOD_END, four_two_pattern)
    service.generate_slots(period.id, SEEDS)
    assert service.submit_for_approval(period.id).status == PENDING_APPROVAL
    with pytest.raises(InvalidStateTransition):
        service.submit_for_approval(period.id)
    assert service.return_to_draft(period.id).status == DRAFT
    with pytest.raises(InvalidStateTransition):
        service.return_to_draft(period.id)

    service.submit_for_approval(period.id)
    published = service.publish(period.id)
    assert (published.status, published.version, published.frozen_through) == (PUBLISHED, 1, PERIOD_END)
    with pytest.raises(InvalidStateTransition):
        service.publish(period.id)


def test_archive_is_terminal(service, published):
    assert service.archive(published.id).status == ARCHIVED
    with pytest.raises(InvalidStateTransition):
        service.archive(published.id)
    with pytest.raises(InvalidStateTransition):
        service.publish(published.id)
    with pytest.raises(InvalidStateTransition):
        service.extend(published.id, PERIOD_END + datetime.timedelta(days=7))


def test_extend_continues_each_worker_rotation(service, published, four_two_pattern):
    # Reference rotation generated in one go for another crew.
    new_end = PERIOD_END + datetime.timedelta(days=12)
    reference = service.create_period(CREW + 1, PERIOD_START, new_end, four_two_pattern)
    service.generate_slots(reference.id, SEEDS)
    before = {worker: _states(service, published.id, worker) for worker in (1, 2, 3)}

    result = service.extend(published.id, new_end)

    period = service.get_period(published.id)
    assert (period.status, period.period_end, period.frozen_through) == (DRAFT, new_end, PERIOD_END)
    assert "[Extended from" in period.notes
    assert result.previous_end == PERIOD_END
    assert result.generation.generation_start == PERIOD_END + datetime.timedelta(days=1)
    assert result.generation.slots_written == 12 * 3
    for worker in (1, 2, 3):
        states = _states(service, published.id, worker)
        assert states[:DAYS] == before[worker]
        assert states == _states(service, reference.id, worker)
    assert service.validate_composition(published.id) == []

    republished = service.publish(published.id)
    assert (republished.version, republished.frozen_through) == (2, new_end)


def test_extend_guards(service, published, four_two_pattern):
    with pytest.raises(InvalidRange):
        service.extend(published.id, PERIOD_END)
    service.create_period(
        CREW,
        PERIOD_END + datetime.timedelta(days=5),
        PERIOD_END + datetime.timedelta(days=20),
        four_two_pattern,
    )
    with pytest.raises(OverlapConflict):
        service.extend(published.id, PERIOD_END + datetime.timedelta(days=10))

    draft = service.create_period(CREW + 1, PERIOD_START, PERIOD_END, four_two_pattern)
    with pytest.raises(InvalidStateTransition):
        service.extend(draft.id, PERIOD_END + datetime.timedelta(days=3))


def test_extended_draft_keeps_published_history(service, published):
    service.extend(published.id, PERIOD_END + datetime.timedelta(days=6))
    with pytest.raises(InvalidStateTransition):
        service.update_period(published.id, period_start=PERIOD_START + datetime.timedelta(days=1))
    with pytest.raises(InvalidRange):
        service.update_period(published.id, period_end=PERIOD_END - datetime.timedelta(days=1))
    result = service.generate_slots(published.id, [1, 2, 3])
    assert result.generation_start == PERIOD_END + datetime.timedelta(days=1)


def test_duplicate_period_generates_a_fresh_draft(service, published):
    start = PERIOD_END + datetime.timedelta(days=1)
    end = start + datetime.timedelta(days=13)
    result = service.duplicate_period(published.id, start, end, workers=SEEDS)

    copy = result.period
    assert copy.id != published.id
    assert (copy.crew_id, copy.pattern_id, copy.status) == (published.crew_id, published.pattern_id, DRAFT)
    assert copy.notes == f"Duplicated from period {published.id}"
    assert len(service.list_slots(copy.id)) == 14 * 3


def test_period_statistics(service, published):
    stats = service.period_statistics(published.id)
    assert stats["status"] == PUBLISHED
    assert stats["version"] == 1
    assert stats["total_slots"] == DAYS * 3
    assert stats["unique_workers"] == 3
    assert stats["work_slots"] == DAYS * 2
    assert stats["rest_slots"] == DAYS
    assert stats["absence_slots"] == 0
    assert stats["coverage_events"] == 0


def test_republish_after_extension_keeps_recorded_absences(service, published):
    absent_day = PERIOD_START + datetime.timedelta(days=3)
    service.record_absence(published.id, absent_day, 1)
    service.extend(published.id, PERIOD_END + datetime.timedelta(days=6))

    republished = service.publish(published.id)

    assert (republished.status, republished.version) == (PUBLISHED, 2)
    assert service.period_statistics(published.id)["absence_slots"] == 1
    # The whole-period report still shows the short-handed published day.
    issues = service.validate_composition(published.id)
    assert [(issue.date, issue.actual, issue.required) for issue in issues] == [(absent_day, 1, 2)]


def test_get_period_loads_pattern_and_slots(service, published):
    period = service.get_period(published.id)
    assert period.pattern.name == "4x2"
    assert period.pattern.to_rule().cycle_length == 6
    assert len(period.slots) == DAYS * 3
