"""Recorded departures from a published rotation.

Absences and swaps never move a slot to another worker; they only append
coverage events (and, for absences, flip the slot to ABSENCE). Transfers
hand a worker's remaining slots to someone else, retiring whatever the
receiving worker already held on those days.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .constants import (
    ABSENCE,
    COVERED,
    EVENT_ABSENCE,
    EVENT_SWAP,
    EVENT_TRANSFER,
    PUBLISHED,
    REASSIGNED,
    UNCOVERED_GAP,
)
from .database import CoverageEvent, SchedulePeriod, ScheduleSlot
from .errors import IllegalDeviation, InvalidRange, NotFound
from .store import PeriodStore

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    slots_transferred: int
    slots_released: int


def _published_period(store: PeriodStore, period_id: int) -> SchedulePeriod:
    period = store.get_period(period_id)
    if period.status != PUBLISHED:
        raise IllegalDeviation("Deviations require a published period.")
    return period


def _require_slot(store: PeriodStore, period: SchedulePeriod, day: datetime.date, worker_id: int) -> ScheduleSlot:
    slot = store.find_slot(period.id, day, worker_id)
    if slot is None:
        raise NotFound(f"Worker {worker_id} has no slot on {day.isoformat()} in period {period.id}.")
    return slot


def record_absence(
    session,
    period_id: int,
    day: datetime.date,
    worker_id: int,
    substitute_worker_id: Optional[int] = None,
    justification: Optional[str] = None,
) -> CoverageEvent:
    store = PeriodStore(session)
    period = _published_period(store, period_id)
    slot = _require_slot(store, period, day, worker_id)
    if slot.state == ABSENCE:
        raise IllegalDeviation(f"Worker {worker_id} is already absent on {day.isoformat()}.")
    if substitute_worker_id is not None and substitute_worker_id == worker_id:
        raise IllegalDeviation("A worker cannot substitute for themselves.")

    slot.state = ABSENCE
    resolution = COVERED if substitute_worker_id is not None else UNCOVERED_GAP
    event = store.append_event(
        CoverageEvent(
            slot_id=slot.id,
            event_type=EVENT_ABSENCE,
            resolution=resolution,
            covering_worker_id=substitute_worker_id,
            justification=justification or "",
        )
    )
    logger.info(
        "Absence of worker %s on %s in period %s recorded (%s).",
        worker_id,
        day.isoformat(),
        period.id,
        resolution,
    )
    return event


def record_swap(
    session,
    period_id: int,
    day: datetime.date,
    titular_id: int,
    executor_id: int,
    justification: Optional[str] = None,
) -> CoverageEvent:
    """Note that ``executor_id`` covers ``titular_id``'s turn on ``day``.

    The titular's slot keeps its worker and state so the roster still shows
    who was originally scheduled.
    """
    store = PeriodStore(session)
    period = _published_period(store, period_id)
    if titular_id == executor_id:
        raise IllegalDeviation("A swap needs two different workers.")
    titular_slot = _require_slot(store, period, day, titular_id)
    _require_slot(store, period, day, executor_id)

    event = store.append_event(
        CoverageEvent(
            slot_id=titular_slot.id,
            event_type=EVENT_SWAP,
            resolution=COVERED,
            covering_worker_id=executor_id,
            justification=justification or "",
        )
    )
    logger.info(
        "Swap on %s in period %s: worker %s covers worker %s.",
        day.isoformat(),
        period.id,
        executor_id,
        titular_id,
    )
    return event


def transfer(
    session,
    period_id: int,
    from_worker_id: int,
    to_worker_id: int,
    effective_from: datetime.date,
    *,
    clock: Callable[[], datetime.date] = datetime.date.today,
) -> TransferResult:
    store = PeriodStore(session)
    period = _published_period(store, period_id)
    today = clock()
    if effective_from <= today:
        raise IllegalDeviation(
            f"Transfers must start after today ({today.isoformat()}); got {effective_from.isoformat()}."
        )
    if not period.covers(effective_from):
        raise InvalidRange(
            f"{effective_from.isoformat()} is outside period {period.id} "
            f"({period.period_start.isoformat()}..{period.period_end.isoformat()})."
        )
    if from_worker_id == to_worker_id:
        raise IllegalDeviation("Cannot transfer slots to the same worker.")

    moving = store.list_slots_by_worker_from(period.id, from_worker_id, effective_from)
    if not moving:
        raise NotFound(
            f"Worker {from_worker_id} has no slots in period {period.id} from {effective_from.isoformat()}."
        )

    released = 0
    for slot in moving:
        displaced = store.find_slot(period.id, slot.slot_date, to_worker_id)
        if displaced is not None:
            released += store.retire_slots(
                [displaced],
                f"Released: worker {to_worker_id} takes over worker {from_worker_id}'s slot.",
            )
        foreign = store.find_active_slot_elsewhere(to_worker_id, slot.slot_date, period.id)
        if foreign:
            released += store.retire_slots(
                foreign,
                f"Released: worker {to_worker_id} transferred into period {period.id}.",
            )

    note = f"Transferred from worker {from_worker_id} effective {effective_from.isoformat()}."
    for slot in moving:
        slot.worker_id = to_worker_id
        slot.origin = REASSIGNED
        slot.notes = note
        store.append_event(
            CoverageEvent(
                slot_id=slot.id,
                event_type=EVENT_TRANSFER,
                resolution=None,
                covering_worker_id=to_worker_id,
                justification=note,
            )
        )
    session.flush()

    logger.info(
        "Transferred %d slot(s) in period %s from worker %s to worker %s; %d slot(s) released.",
        len(moving),
        period.id,
        from_worker_id,
        to_worker_id,
        released,
    )
    return TransferResult(slots_transferred=len(moving), slots_released=released)
