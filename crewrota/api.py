"""Transaction-per-call facade over the scheduling operations."""

from __future__ import annotations

import datetime
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import deviations, lifecycle
from .database import CoverageEvent, SchedulePeriod, ScheduleSlot, SessionLocal
from .generator.api import generate_slots_for_period
from .generator.engine import FULL, GenerationResult
from .hours import StoredWorkingHours
from .roster import StoredRoster
from .store import PeriodStore
from .validation import CompositionIssue
from .validation import validate_composition as _validate_composition


class SchedulingService:
    """Runs each operation in its own transaction.

    Objects come back detached but loaded, since the session factory is
    built with ``expire_on_commit=False``.
    """

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        *,
        working_hours_factory: Callable = StoredWorkingHours,
        roster_factory: Callable = StoredRoster,
        clock: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self.session_factory = session_factory
        self.working_hours_factory = working_hours_factory
        self.roster_factory = roster_factory
        self.clock = clock

    @contextmanager
    def _transaction(self):
        with self.session_factory() as session, session.begin():
            yield session

    # Periods

    def create_period(
        self,
        crew_id: int,
        period_start: datetime.date,
        period_end: datetime.date,
        pattern_id: int,
        *,
        notes: str = "",
    ) -> SchedulePeriod:
        with self._transaction() as session:
            return lifecycle.create_period(session, crew_id, period_start, period_end, pattern_id, notes=notes)

    def update_period(self, period_id: int, **changes: Any) -> SchedulePeriod:
        with self._transaction() as session:
            return lifecycle.update_period(session, period_id, **changes)

    def get_period(self, period_id: int) -> SchedulePeriod:
        """Period with ``pattern`` and ``slots`` loaded; ``slots`` keeps retired rows, ``list_slots`` does not."""
        with self._transaction() as session:
            return PeriodStore(session).load_period(period_id)

    def generate_slots(
        self,
        period_id: int,
        workers: Optional[Iterable[Any]] = None,
        *,
        mode: str = FULL,
        from_date: Optional[datetime.date] = None,
    ) -> GenerationResult:
        return generate_slots_for_period(
            self.session_factory,
            period_id,
            workers,
            mode=mode,
            from_date=from_date,
            working_hours_factory=self.working_hours_factory,
            roster_factory=self.roster_factory,
        )

    def validate_composition(self, period_id: int) -> List[CompositionIssue]:
        with self._transaction() as session:
            return _validate_composition(session, period_id)

    def submit_for_approval(self, period_id: int) -> SchedulePeriod:
        with self._transaction() as session:
            return lifecycle.submit_for_approval(session, period_id)

    def return_to_draft(self, period_id: int) -> SchedulePeriod:
        with self._transaction() as session:
            return lifecycle.return_to_draft(session, period_id)

    def publish(self, period_id: int, *, validate_composition: bool = True) -> SchedulePeriod:
        with self._transaction() as session:
            return lifecycle.publish(session, period_id, validate_composition=validate_composition)

    def archive(self, period_id: int) -> SchedulePeriod:
        with self._transaction() as session:
            return lifecycle.archive(session, period_id)

    def extend(self, period_id: int, new_end: datetime.date) -> lifecycle.ExtensionResult:
        with self._transaction() as session:
            return lifecycle.extend(
                session,
                period_id,
                new_end,
                working_hours=self.working_hours_factory(session),
                today=self.clock(),
            )

    def duplicate_period(
        self,
        period_id: int,
        new_start: datetime.date,
        new_end: datetime.date,
        workers: Optional[Iterable[Any]] = None,
    ) -> lifecycle.ExtensionResult:
        with self._transaction() as session:
            return lifecycle.duplicate_period(
                session,
                period_id,
                new_start,
                new_end,
                working_hours=self.working_hours_factory(session),
                roster=self.roster_factory(session),
                workers=workers,
            )

    def period_statistics(self, period_id: int) -> Dict[str, Any]:
        with self._transaction() as session:
            return lifecycle.period_statistics(session, period_id)

    # Deviations

    def record_absence(
        self,
        period_id: int,
        day: datetime.date,
        worker_id: int,
        substitute_worker_id: Optional[int] = None,
        justification: Optional[str] = None,
    ) -> CoverageEvent:
        with self._transaction() as session:
            return deviations.record_absence(session, period_id, day, worker_id, substitute_worker_id, justification)

    def record_swap(
        self,
        period_id: int,
        day: datetime.date,
        titular_id: int,
        executor_id: int,
        justification: Optional[str] = None,
    ) -> CoverageEvent:
        with self._transaction() as session:
            return deviations.record_swap(session, period_id, day, titular_id, executor_id, justification)

    def transfer(
        self,
        period_id: int,
        from_worker_id: int,
        to_worker_id: int,
        effective_from: datetime.date,
    ) -> deviations.TransferResult:
        with self._transaction() as session:
            return deviations.transfer(
                session,
                period_id,
                from_worker_id,
                to_worker_id,
                effective_from,
                clock=self.clock,
            )

    # Reads

    def list_slots(
        self,
        period_id: int,
        *,
        start: Optional[datetime.date] = None,
        end: Optional[datetime.date] = None,
        worker_id: Optional[int] = None,
        state: Optional[str] = None,
    ) -> List[ScheduleSlot]:
        with self._transaction() as session:
            store = PeriodStore(session)
            store.get_period(period_id)
            return store.list_slots(period_id, start=start, end=end, worker_id=worker_id, state=state)

    def list_coverage_events(self, period_id: int) -> List[CoverageEvent]:
        with self._transaction() as session:
            store = PeriodStore(session)
            store.get_period(period_id)
            return store.list_events(period_id)
