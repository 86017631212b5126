from __future__ import annotations

import datetime
from typing import List, Optional

from sqlalchemy import or_, select

from .database import CrewMembership
from .errors import InvalidRange, NotFound


def add_membership(
    session,
    crew_id: int,
    worker_id: int,
    valid_from: datetime.date,
    valid_to: Optional[datetime.date] = None,
) -> CrewMembership:
    if valid_to is not None and valid_to < valid_from:
        raise InvalidRange("Membership must end on or after it starts.")
    membership = CrewMembership(crew_id=crew_id, worker_id=worker_id, valid_from=valid_from, valid_to=valid_to)
    session.add(membership)
    session.flush()
    return membership


def end_membership(session, membership_id: int, valid_to: datetime.date) -> CrewMembership:
    membership = session.get(CrewMembership, membership_id)
    if membership is None:
        raise NotFound(f"Crew membership {membership_id} was not found.")
    if valid_to < membership.valid_from:
        raise InvalidRange("Membership must end on or after it starts.")
    membership.valid_to = valid_to
    session.flush()
    return membership


def current_members(session, crew_id: int, start: datetime.date, end: datetime.date) -> List[int]:
    """Worker ids whose membership overlaps [start, end], ascending."""
    stmt = (
        select(CrewMembership.worker_id)
        .where(
            CrewMembership.crew_id == crew_id,
            CrewMembership.valid_from <= end,
            or_(CrewMembership.valid_to.is_(None), CrewMembership.valid_to >= start),
        )
        .distinct()
        .order_by(CrewMembership.worker_id)
    )
    return list(session.scalars(stmt))


class StoredRoster:
    def __init__(self, session) -> None:
        self.session = session

    def current_members(self, crew_id: int, start: datetime.date, end: datetime.date) -> List[int]:
        return current_members(self.session, crew_id, start, end)
