from __future__ import annotations

from typing import Iterable, List, Sequence


class SchedulingError(ValueError):
    """Base class for every rejected scheduling operation."""


class InvalidStateTransition(SchedulingError):
    pass


class OverlapConflict(SchedulingError):
    def __init__(self, message: str, period_ids: Iterable[int] = ()) -> None:
        super().__init__(message)
        self.period_ids: List[int] = list(period_ids)


class CompositionViolation(SchedulingError):
    """Raised with every offending day so the caller can fix them all at once."""

    def __init__(self, issues: Sequence, required: int) -> None:
        self.issues = list(issues)
        self.required = required
        days = ", ".join(f"{issue.date.isoformat()} ({issue.actual}/{issue.required})" for issue in self.issues)
        super().__init__(
            f"Invalid composition on: {days}. "
            f"Each day must have exactly {required} worker(s) on WORK."
        )


class InsufficientCrew(SchedulingError):
    pass


class NotFound(SchedulingError, LookupError):
    pass


class InvalidRange(SchedulingError):
    pass


class IllegalDeviation(SchedulingError):
    pass


class InvalidPattern(SchedulingError):
    pass
