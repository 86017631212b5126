from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import CompositionViolation
from .store import PeriodStore


@dataclass(frozen=True)
class CompositionIssue:
    date: datetime.date
    actual: int
    required: int

    def as_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "actual": self.actual, "required": self.required}


def validate_composition(session, period_id: int, *, after: Optional[datetime.date] = None) -> List[CompositionIssue]:
    """Return every day whose WORK count misses the pattern's crew size.

    Days without any WORK slot are all-rest days and pass. ``after`` limits
    the scan to days following it. An empty list means the period may be
    published.
    """
    store = PeriodStore(session)
    period = store.get_period(period_id)
    required = int(store.get_pattern(period.pattern_id).required_workers_per_day)
    counts = store.work_counts_by_day(period.id, after=after)
    issues: List[CompositionIssue] = []
    for offset in range(period.day_count):
        day = period.period_start + datetime.timedelta(days=offset)
        if after is not None and day <= after:
            continue
        actual = counts.get(day, 0)
        if actual > 0 and actual != required:
            issues.append(CompositionIssue(date=day, actual=actual, required=required))
    return issues


def ensure_valid_composition(session, period_id: int, *, after: Optional[datetime.date] = None) -> None:
    issues = validate_composition(session, period_id, after=after)
    if issues:
        raise CompositionViolation(issues, issues[0].required)
