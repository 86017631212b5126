from __future__ import annotations

import datetime
from typing import Callable, List

import pytest
from sqlalchemy.pool import StaticPool

from crewrota.api import SchedulingService
from crewrota.constants import REST, WORK
from crewrota.database import Base, build_engine, build_session_factory
from crewrota.patterns import create_fixed_cycle_pattern, create_week_indexed_pattern

# Monday.
PERIOD_START = datetime.date(2025, 3, 3)
TODAY = datetime.date(2025, 3, 1)


class FixedClock:
    def __init__(self, today: datetime.date) -> None:
        self.today = today

    def __call__(self) -> datetime.date:
        return self.today


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def service(session_factory, clock) -> SchedulingService:
    return SchedulingService(session_factory, clock=clock)


def _make_pattern(session_factory: Callable, builder: Callable) -> int:
    with session_factory() as session, session.begin():
        return builder(session).id


@pytest.fixture
def four_two_pattern(session_factory) -> int:
    """Four on, two off; three staggered workers keep two on duty daily."""
    return _make_pattern(
        session_factory,
        lambda session: create_fixed_cycle_pattern(
            session,
            "4x2",
            [WORK, WORK, WORK, WORK, REST, REST],
            required_workers_per_day=2,
        ),
    )


@pytest.fixture
def six_one_pattern(session_factory) -> int:
    return _make_pattern(
        session_factory,
        lambda session: create_fixed_cycle_pattern(
            session,
            "6x1",
            [WORK, WORK, WORK, WORK, WORK, WORK, REST],
            required_workers_per_day=6,
        ),
    )


@pytest.fixture
def weekday_pattern(session_factory) -> int:
    return _make_pattern(
        session_factory,
        lambda session: create_week_indexed_pattern(
            session,
            "Weekdays",
            [[WORK, WORK, WORK, WORK, WORK, REST, REST]],
            required_workers_per_day=1,
        ),
    )


def staggered_seeds(worker_ids: List[int], spacing: int = 2) -> List[tuple]:
    return [(worker_id, index * spacing) for index, worker_id in enumerate(worker_ids)]
