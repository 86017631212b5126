from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from sqlalchemy import or_, select

from .database import CrewShiftHours
from .errors import InvalidRange, OverlapConflict


@dataclass(frozen=True)
class ShiftWindow:
    start: datetime.time
    end: datetime.time


def shift_end(start: datetime.time, duration_hours: float) -> datetime.time:
    """Clock time a shift ends, wrapping past midnight."""
    minutes = start.hour * 60 + start.minute + int(round(float(duration_hours) * 60))
    minutes %= 24 * 60
    return datetime.time(minutes // 60, minutes % 60, start.second)


def _validity_overlaps(session, crew_id: int, valid_from, valid_to, exclude_id: Optional[int] = None) -> bool:
    stmt = select(CrewShiftHours.id).where(
        CrewShiftHours.crew_id == crew_id,
        or_(CrewShiftHours.valid_to.is_(None), CrewShiftHours.valid_to >= valid_from),
    )
    if valid_to is not None:
        stmt = stmt.where(CrewShiftHours.valid_from <= valid_to)
    if exclude_id is not None:
        stmt = stmt.where(CrewShiftHours.id != exclude_id)
    return session.scalars(stmt).first() is not None


def add_crew_shift_hours(
    session,
    crew_id: int,
    shift_start: datetime.time,
    duration_hours: float,
    valid_from: datetime.date,
    valid_to: Optional[datetime.date] = None,
) -> CrewShiftHours:
    if valid_to is not None and valid_to < valid_from:
        raise InvalidRange("Working-hours validity must end on or after it starts.")
    if not 0 < float(duration_hours) <= 24:
        raise InvalidRange("Shift duration must be between 0 and 24 hours.")
    if _validity_overlaps(session, crew_id, valid_from, valid_to):
        raise OverlapConflict(f"Crew {crew_id} already has working hours in effect for that range.")
    record = CrewShiftHours(
        crew_id=crew_id,
        shift_start=shift_start,
        duration_hours=float(duration_hours),
        valid_from=valid_from,
        valid_to=valid_to,
    )
    session.add(record)
    session.flush()
    return record


def resolve_shift_hours(session, crew_id: int, day: datetime.date) -> Optional[ShiftWindow]:
    stmt = (
        select(CrewShiftHours)
        .where(
            CrewShiftHours.crew_id == crew_id,
            CrewShiftHours.valid_from <= day,
            or_(CrewShiftHours.valid_to.is_(None), CrewShiftHours.valid_to >= day),
        )
        .order_by(CrewShiftHours.valid_from.desc())
    )
    record = session.scalars(stmt).first()
    if record is None:
        return None
    return ShiftWindow(start=record.shift_start, end=shift_end(record.shift_start, record.duration_hours))


class StoredWorkingHours:
    """Effective working-hours lookup backed by ``crew_shift_hours``.

    Results are memoised per instance, which lives for one operation.
    """

    def __init__(self, session) -> None:
        self.session = session
        self._cache: Dict[Tuple[int, datetime.date], Optional[ShiftWindow]] = {}

    def resolve(self, crew_id: int, day: datetime.date) -> Optional[ShiftWindow]:
        key = (crew_id, day)
        if key not in self._cache:
            self._cache[key] = resolve_shift_hours(self.session, crew_id, day)
        return self._cache[key]
