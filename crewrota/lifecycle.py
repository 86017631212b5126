"""Status transitions for schedule periods.

DRAFT periods are freely editable. PUBLISHED periods are frozen: only
``archive`` and ``extend`` may touch them, and slot state changes go through
the deviation functions. ARCHIVED is terminal.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from .constants import (
    ABSENCE,
    ARCHIVED,
    DRAFT,
    PENDING_APPROVAL,
    PUBLISHABLE_STATUSES,
    PUBLISHED,
    REST,
    WORK,
)
from .database import SchedulePeriod
from .errors import InvalidRange, InvalidStateTransition, OverlapConflict
from .generator.engine import FROM_DATE, GenerationResult, SlotGenerator
from .store import PeriodStore
from .validation import ensure_valid_composition

logger = logging.getLogger(__name__)

PUBLISHED_IMMUTABLE = "Published periods are immutable; archive or extend instead."
ARCHIVED_READ_ONLY = "Archived periods are read-only history."
ONE_DAY = datetime.timedelta(days=1)


@dataclass
class ExtensionResult:
    period: SchedulePeriod
    previous_end: datetime.date
    generation: GenerationResult


def _check_range(start: datetime.date, end: datetime.date) -> None:
    if end < start:
        raise InvalidRange(f"Period end {end.isoformat()} is before its start {start.isoformat()}.")


def _check_overlap(
    store: PeriodStore,
    crew_id: int,
    start: datetime.date,
    end: datetime.date,
    exclude_period_id: Optional[int] = None,
) -> None:
    conflicts = store.find_overlapping(crew_id, start, end, exclude_period_id)
    if conflicts:
        ids = [period.id for period in conflicts]
        raise OverlapConflict(
            f"Crew {crew_id} already has an active period overlapping "
            f"{start.isoformat()}..{end.isoformat()} (period {', '.join(str(i) for i in ids)}).",
            ids,
        )


def create_period(
    session,
    crew_id: int,
    period_start: datetime.date,
    period_end: datetime.date,
    pattern_id: int,
    *,
    notes: str = "",
) -> SchedulePeriod:
    store = PeriodStore(session)
    _check_range(period_start, period_end)
    store.get_pattern(pattern_id)
    _check_overlap(store, crew_id, period_start, period_end)
    period = store.add_period(
        SchedulePeriod(
            crew_id=crew_id,
            period_start=period_start,
            period_end=period_end,
            pattern_id=pattern_id,
            status=DRAFT,
            version=0,
            notes=notes or "",
        )
    )
    logger.info("Created draft period %s for crew %s (%s..%s).", period.id, crew_id, period_start, period_end)
    return period


def update_period(
    session,
    period_id: int,
    *,
    crew_id: Optional[int] = None,
    pattern_id: Optional[int] = None,
    period_start: Optional[datetime.date] = None,
    period_end: Optional[datetime.date] = None,
    notes: Optional[str] = None,
) -> SchedulePeriod:
    store = PeriodStore(session)
    period = store.get_period(period_id)
    if period.status == PUBLISHED:
        raise InvalidStateTransition(PUBLISHED_IMMUTABLE)
    if period.status == ARCHIVED:
        raise InvalidStateTransition(ARCHIVED_READ_ONLY)
    if period.status == PENDING_APPROVAL:
        raise InvalidStateTransition("Return the period to draft before editing it.")

    new_crew = period.crew_id if crew_id is None else crew_id
    new_pattern = period.pattern_id if pattern_id is None else pattern_id
    new_start = period.period_start if period_start is None else period_start
    new_end = period.period_end if period_end is None else period_end
    _check_range(new_start, new_end)
    if period.frozen_through is not None:
        if (new_crew, new_pattern, new_start) != (period.crew_id, period.pattern_id, period.period_start):
            raise InvalidStateTransition("Previously published days of this period cannot be edited.")
        if new_end <= period.frozen_through:
            raise InvalidRange(
                f"The period is published through {period.frozen_through.isoformat()}; its end cannot move before that."
            )
    if new_pattern != period.pattern_id:
        store.get_pattern(new_pattern)
    _check_overlap(store, new_crew, new_start, new_end, exclude_period_id=period.id)

    outside = [slot for slot in store.list_slots(period.id) if not new_start <= slot.slot_date <= new_end]
    if outside:
        store.retire_slots(outside, "Retired: outside the period range after an edit.")

    period.crew_id = new_crew
    period.pattern_id = new_pattern
    period.period_start = new_start
    period.period_end = new_end
    if notes is not None:
        period.notes = notes
    session.flush()
    return period


def submit_for_approval(session, period_id: int) -> SchedulePeriod:
    period = PeriodStore(session).get_period(period_id)
    if period.status != DRAFT:
        raise InvalidStateTransition(f"Only draft periods can be submitted for approval (period is {period.status}).")
    period.status = PENDING_APPROVAL
    session.flush()
    logger.info("Period %s submitted for approval.", period.id)
    return period


def return_to_draft(session, period_id: int) -> SchedulePeriod:
    period = PeriodStore(session).get_period(period_id)
    if period.status != PENDING_APPROVAL:
        raise InvalidStateTransition(f"Only periods pending approval can return to draft (period is {period.status}).")
    period.status = DRAFT
    session.flush()
    return period


def publish(session, period_id: int, *, validate_composition: bool = True) -> SchedulePeriod:
    store = PeriodStore(session)
    period = store.get_period(period_id)
    if period.status not in PUBLISHABLE_STATUSES:
        raise InvalidStateTransition(f"Period {period.id} is {period.status} and cannot be published.")
    # Only the unpublished tail is gated; published days may carry recorded absences.
    if store.count_slots_in_state(period.id, ABSENCE, after=period.frozen_through):
        raise InvalidStateTransition(
            "Cannot publish a period with ABSENCE slots; absences are only recorded after publishing."
        )
    if validate_composition:
        ensure_valid_composition(session, period.id, after=period.frozen_through)
    else:
        logger.warning("Publishing period %s without composition validation.", period.id)
    period.status = PUBLISHED
    period.version = (period.version or 0) + 1
    period.frozen_through = period.period_end
    session.flush()
    logger.info("Published period %s as version %s.", period.id, period.version)
    return period


def archive(session, period_id: int) -> SchedulePeriod:
    period = PeriodStore(session).get_period(period_id)
    if period.status == ARCHIVED:
        raise InvalidStateTransition(ARCHIVED_READ_ONLY)
    period.status = ARCHIVED
    session.flush()
    logger.info("Archived period %s.", period.id)
    return period


def extend(
    session,
    period_id: int,
    new_end: datetime.date,
    *,
    working_hours,
    today: Optional[datetime.date] = None,
) -> ExtensionResult:
    """Widen a published period and generate its tail from the existing crew.

    The period drops back to DRAFT and must be published again.
    """
    store = PeriodStore(session)
    period = store.get_period(period_id)
    if period.status != PUBLISHED:
        raise InvalidStateTransition("Only published periods can be extended.")
    if new_end <= period.period_end:
        raise InvalidRange(
            f"The new end {new_end.isoformat()} must be after the current end {period.period_end.isoformat()}."
        )
    previous_end = period.period_end
    tail_start = previous_end + ONE_DAY
    _check_overlap(store, period.crew_id, tail_start, new_end, exclude_period_id=period.id)
    # Workers rostered on the last published day; anyone transferred out is gone by then.
    worker_ids = store.worker_ids(period.id, on_day=previous_end)
    if not worker_ids:
        raise InvalidStateTransition(f"The period has no slots on {previous_end.isoformat()} to extend from.")

    stamp = (today or datetime.date.today()).isoformat()
    period.period_end = new_end
    period.status = DRAFT
    period.notes = f"{period.notes}\n[Extended from {previous_end.isoformat()} to {new_end.isoformat()} on {stamp}]".strip()
    session.flush()

    generation = SlotGenerator(store, working_hours).generate(
        period,
        worker_ids,
        mode=FROM_DATE,
        from_date=tail_start,
    )
    logger.info("Extended period %s from %s to %s.", period.id, previous_end, new_end)
    return ExtensionResult(period=period, previous_end=previous_end, generation=generation)


def duplicate_period(
    session,
    period_id: int,
    new_start: datetime.date,
    new_end: datetime.date,
    *,
    working_hours,
    roster,
    workers: Optional[Iterable[Any]] = None,
) -> ExtensionResult:
    store = PeriodStore(session)
    source = store.get_period(period_id)
    period = create_period(
        session,
        source.crew_id,
        new_start,
        new_end,
        source.pattern_id,
        notes=f"Duplicated from period {source.id}",
    )
    generation = SlotGenerator(store, working_hours, roster).generate(period, workers)
    return ExtensionResult(period=period, previous_end=source.period_end, generation=generation)


def period_statistics(session, period_id: int) -> Dict[str, Any]:
    store = PeriodStore(session)
    period = store.get_period(period_id)
    counts = store.state_counts(period.id)
    return {
        "period_id": period.id,
        "status": period.status,
        "version": period.version,
        "days": period.day_count,
        "total_slots": sum(counts.values()),
        "unique_workers": len(store.worker_ids(period.id)),
        "work_slots": counts.get(WORK, 0),
        "rest_slots": counts.get(REST, 0),
        "absence_slots": counts.get(ABSENCE, 0),
        "coverage_events": store.count_events(period.id),
    }
