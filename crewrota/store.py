"""Typed queries and natural-key upserts over one SQLAlchemy session.

The store never commits; the caller owns the transaction so a batch of
upserts or a transfer's retire-then-reassign sequence lands all at once.
"""

from __future__ import annotations

import datetime
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from .constants import ARCHIVED, GENERATED, WORK
from .database import CoverageEvent, SchedulePattern, SchedulePeriod, ScheduleSlot
from .errors import NotFound


@dataclass
class SlotDraft:
    """Target state for one (date, worker) cell produced by the generator."""

    slot_date: datetime.date
    worker_id: int
    state: str
    predicted_start: Optional[datetime.time] = None
    predicted_end: Optional[datetime.time] = None
    origin: str = GENERATED


class PeriodStore:
    def __init__(self, session) -> None:
        self.session = session

    # Periods and patterns

    def get_period(self, period_id: int) -> SchedulePeriod:
        period = self.session.get(SchedulePeriod, period_id)
        if period is None:
            raise NotFound(f"Schedule period {period_id} was not found.")
        return period

    def load_period(self, period_id: int) -> SchedulePeriod:
        """Period with its pattern and every slot row, retired history included, loaded up front."""
        stmt = (
            select(SchedulePeriod)
            .options(
                selectinload(SchedulePeriod.pattern).selectinload(SchedulePattern.cycle_positions),
                selectinload(SchedulePeriod.pattern).selectinload(SchedulePattern.week_mask),
                selectinload(SchedulePeriod.slots),
            )
            .where(SchedulePeriod.id == period_id)
        )
        period = self.session.scalars(stmt).first()
        if period is None:
            raise NotFound(f"Schedule period {period_id} was not found.")
        return period

    def get_pattern(self, pattern_id: int) -> SchedulePattern:
        stmt = (
            select(SchedulePattern)
            .options(selectinload(SchedulePattern.cycle_positions), selectinload(SchedulePattern.week_mask))
            .where(SchedulePattern.id == pattern_id)
        )
        pattern = self.session.scalars(stmt).first()
        if pattern is None:
            raise NotFound(f"Schedule pattern {pattern_id} was not found.")
        return pattern

    def find_overlapping(
        self,
        crew_id: int,
        start: datetime.date,
        end: datetime.date,
        exclude_period_id: Optional[int] = None,
    ) -> List[SchedulePeriod]:
        stmt = select(SchedulePeriod).where(
            SchedulePeriod.crew_id == crew_id,
            SchedulePeriod.status != ARCHIVED,
            SchedulePeriod.period_start <= end,
            SchedulePeriod.period_end >= start,
        )
        if exclude_period_id is not None:
            stmt = stmt.where(SchedulePeriod.id != exclude_period_id)
        return list(self.session.scalars(stmt.order_by(SchedulePeriod.period_start)))

    def add_period(self, period: SchedulePeriod) -> SchedulePeriod:
        self.session.add(period)
        self.session.flush()
        return period

    # Slots

    def _active_slots(self):
        return select(ScheduleSlot).where(ScheduleSlot.retired_at.is_(None))

    def list_slots(
        self,
        period_id: int,
        *,
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
        worker_id: Optional[int] = None,
        state: Optional[str] = None,
    ) -> List[ScheduleSlot]:
        stmt = self._active_slots().where(ScheduleSlot.period_id == period_id)
        if start is not None:
            stmt = stmt.where(ScheduleSlot.slot_date >= start)
        if end is not None:
            stmt = stmt.where(ScheduleSlot.slot_date <= end)
        if worker_id is not None:
            stmt = stmt.where(ScheduleSlot.worker_id == worker_id)
        if state:
            stmt = stmt.where(ScheduleSlot.state == state)
        stmt = stmt.order_by(ScheduleSlot.slot_date, ScheduleSlot.worker_id)
        return list(self.session.scalars(stmt))

    def find_slot(self, period_id: int, day: datetime.date, worker_id: int) -> Optional[ScheduleSlot]:
        stmt = self._active_slots().where(
            ScheduleSlot.period_id == period_id,
            ScheduleSlot.slot_date == day,
            ScheduleSlot.worker_id == worker_id,
        )
        return self.session.scalars(stmt).first()

    def list_slots_by_worker_from(
        self,
        period_id: int,
        worker_id: int,
        from_day: datetime.date,
    ) -> List[ScheduleSlot]:
        return self.list_slots(period_id, start=from_day, worker_id=worker_id)

    def find_active_slot_elsewhere(
        self,
        worker_id: int,
        day: datetime.date,
        exclude_period_id: int,
    ) -> List[ScheduleSlot]:
        """Live slots of ``worker_id`` on ``day`` in other non-archived periods."""
        stmt = (
            self._active_slots()
            .join(SchedulePeriod, SchedulePeriod.id == ScheduleSlot.period_id)
            .where(
                ScheduleSlot.worker_id == worker_id,
                ScheduleSlot.slot_date == day,
                ScheduleSlot.period_id != exclude_period_id,
                SchedulePeriod.status != ARCHIVED,
            )
            .order_by(ScheduleSlot.period_id)
        )
        return list(self.session.scalars(stmt))

    def worker_ids(self, period_id: int, on_day: Optional[datetime.date] = None) -> List[int]:
        """Workers with live slots in the period, or on ``on_day`` only when given."""
        stmt = select(ScheduleSlot.worker_id).where(
            ScheduleSlot.period_id == period_id,
            ScheduleSlot.retired_at.is_(None),
        )
        if on_day is not None:
            stmt = stmt.where(ScheduleSlot.slot_date == on_day)
        stmt = stmt.distinct().order_by(ScheduleSlot.worker_id)
        return [row for row in self.session.scalars(stmt)]

    def prior_slots(
        self,
        period_id: int,
        worker_ids: Iterable[int],
        before: datetime.date,
    ) -> Dict[int, List[Tuple[datetime.date, str]]]:
        """(date, state) history per worker strictly before ``before``, oldest first."""
        ids = list(worker_ids)
        history: Dict[int, List[Tuple[datetime.date, str]]] = defaultdict(list)
        if not ids:
            return history
        stmt = (
            select(ScheduleSlot.worker_id, ScheduleSlot.slot_date, ScheduleSlot.state)
            .where(
                ScheduleSlot.period_id == period_id,
                ScheduleSlot.worker_id.in_(ids),
                ScheduleSlot.slot_date < before,
                ScheduleSlot.retired_at.is_(None),
            )
            .order_by(ScheduleSlot.worker_id, ScheduleSlot.slot_date)
        )
        for worker_id, slot_date, state in self.session.execute(stmt):
            history[worker_id].append((slot_date, state))
        return history

    def count_slots_in_state(self, period_id: int, state: str, after: Optional[datetime.date] = None) -> int:
        stmt = select(func.count(ScheduleSlot.id)).where(
            ScheduleSlot.period_id == period_id,
            ScheduleSlot.state == state,
            ScheduleSlot.retired_at.is_(None),
        )
        if after is not None:
            stmt = stmt.where(ScheduleSlot.slot_date > after)
        return int(self.session.scalar(stmt) or 0)

    def work_counts_by_day(self, period_id: int, after: Optional[datetime.date] = None) -> Dict[datetime.date, int]:
        stmt = select(ScheduleSlot.slot_date, func.count(ScheduleSlot.id)).where(
            ScheduleSlot.period_id == period_id,
            ScheduleSlot.state == WORK,
            ScheduleSlot.retired_at.is_(None),
        )
        if after is not None:
            stmt = stmt.where(ScheduleSlot.slot_date > after)
        stmt = stmt.group_by(ScheduleSlot.slot_date)
        return {slot_date: int(count) for slot_date, count in self.session.execute(stmt)}

    def state_counts(self, period_id: int) -> Dict[str, int]:
        stmt = (
            select(ScheduleSlot.state, func.count(ScheduleSlot.id))
            .where(ScheduleSlot.period_id == period_id, ScheduleSlot.retired_at.is_(None))
            .group_by(ScheduleSlot.state)
        )
        return {state: int(count) for state, count in self.session.execute(stmt)}

    def upsert_slots(self, period_id: int, slots: Sequence[SlotDraft]) -> int:
        """Insert or update live slots by (period, date, worker); returns rows touched.

        Existing rows only get state and predicted hours rewritten, so origin
        markers and notes left by a reassignment survive regeneration.
        """
        if not slots:
            return 0
        days = [slot.slot_date for slot in slots]
        existing = {
            (row.slot_date, row.worker_id): row
            for row in self.list_slots(period_id, start=min(days), end=max(days))
        }
        for draft in slots:
            row = existing.get((draft.slot_date, draft.worker_id))
            if row is None:
                row = ScheduleSlot(
                    period_id=period_id,
                    slot_date=draft.slot_date,
                    worker_id=draft.worker_id,
                    origin=draft.origin,
                )
                self.session.add(row)
                existing[(draft.slot_date, draft.worker_id)] = row
            row.state = draft.state
            row.predicted_start = draft.predicted_start
            row.predicted_end = draft.predicted_end
        self.session.flush()
        return len(slots)

    def retire_slots(self, slots: Iterable[ScheduleSlot], note: str, *, when: Optional[datetime.datetime] = None) -> int:
        moment = when or datetime.datetime.now(datetime.timezone.utc)
        count = 0
        for slot in slots:
            slot.retired_at = moment
            slot.notes = note
            count += 1
        self.session.flush()
        return count

    # Coverage events

    def append_event(self, event: CoverageEvent) -> CoverageEvent:
        self.session.add(event)
        self.session.flush()
        return event

    def list_events(self, period_id: int) -> List[CoverageEvent]:
        stmt = (
            select(CoverageEvent)
            .join(ScheduleSlot, ScheduleSlot.id == CoverageEvent.slot_id)
            .where(ScheduleSlot.period_id == period_id)
            .order_by(CoverageEvent.recorded_at, CoverageEvent.id)
        )
        return list(self.session.scalars(stmt))

    def count_events(self, period_id: int) -> int:
        stmt = (
            select(func.count(CoverageEvent.id))
            .join(ScheduleSlot, ScheduleSlot.id == CoverageEvent.slot_id)
            .where(ScheduleSlot.period_id == period_id)
        )
        return int(self.session.scalar(stmt) or 0)
