from __future__ import annotations

import datetime
from typing import Any, Callable, Iterable, Optional

from ..hours import StoredWorkingHours
from ..roster import StoredRoster
from ..store import PeriodStore
from .engine import FULL, GenerationResult, SlotGenerator


def generate_slots_for_period(
    session_factory: Callable,
    period_id: int,
    workers: Optional[Iterable[Any]] = None,
    *,
    mode: str = FULL,
    from_date: Optional[datetime.date] = None,
    working_hours_factory: Callable = StoredWorkingHours,
    roster_factory: Callable = StoredRoster,
) -> GenerationResult:
    """Generate slots for one period in a single all-or-nothing transaction."""
    with session_factory() as session, session.begin():
        store = PeriodStore(session)
        period = store.get_period(period_id)
        generator = SlotGenerator(
            store,
            working_hours_factory(session),
            roster_factory(session),
        )
        return generator.generate(period, workers, mode=mode, from_date=from_date)
