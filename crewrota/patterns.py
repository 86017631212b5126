from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import select

from .constants import FIXED_CYCLE, REST, ROTATION_STATES, WEEK_INDEXED, WEEKDAY_TOKENS, WORK
from .database import PatternCyclePosition, PatternWeekMask, SchedulePattern
from .errors import InvalidPattern

PositionSpec = Union[Mapping[int, str], Sequence[str]]

PATTERN_PRESETS: Dict[str, Dict[str, Any]] = {
    "4x2": {
        "mode": FIXED_CYCLE,
        "cycle": [WORK, WORK, WORK, WORK, REST, REST],
        "required_workers_per_day": 2,
        "notes": "Four days on, two days off.",
    },
    "6x1": {
        "mode": FIXED_CYCLE,
        "cycle": [WORK, WORK, WORK, WORK, WORK, WORK, REST],
        "required_workers_per_day": 6,
        "notes": "Six days on, one day off.",
    },
    "Weekdays": {
        "mode": WEEK_INDEXED,
        "weeks": [[WORK, WORK, WORK, WORK, WORK, REST, REST]],
        "required_workers_per_day": 1,
        "notes": "Monday to Friday, weekends off.",
    },
}


def _normalize_status(value: str) -> str:
    status = (value or "").strip().upper()
    if status not in ROTATION_STATES:
        raise InvalidPattern(f"Unsupported rotation status '{value}'.")
    return status


def _normalize_positions(positions: PositionSpec) -> Dict[int, str]:
    if isinstance(positions, Mapping):
        items: Iterable[Tuple[int, str]] = positions.items()
    else:
        items = enumerate(positions, start=1)
    normalized: Dict[int, str] = {}
    for position, status in items:
        position = int(position)
        if position in normalized:
            raise InvalidPattern(f"Cycle position {position} is defined twice.")
        normalized[position] = _normalize_status(status)
    return normalized


def _check_name_free(session, name: str) -> None:
    name = (name or "").strip()
    if not name:
        raise InvalidPattern("Pattern name is required.")
    if session.scalars(select(SchedulePattern.id).where(SchedulePattern.name == name)).first() is not None:
        raise InvalidPattern(f"A pattern named '{name}' already exists.")


def create_fixed_cycle_pattern(
    session,
    name: str,
    positions: PositionSpec,
    *,
    required_workers_per_day: int,
    cycle_length: Optional[int] = None,
    notes: str = "",
) -> SchedulePattern:
    """Store a cycle pattern; ``positions`` is a 1-based mapping or an ordered list."""
    normalized = _normalize_positions(positions)
    length = int(cycle_length if cycle_length is not None else len(normalized))
    if length <= 0:
        raise InvalidPattern("Cycle length must be positive.")
    out_of_range = sorted(position for position in normalized if not 1 <= position <= length)
    if out_of_range:
        raise InvalidPattern(f"Cycle positions {out_of_range} fall outside 1..{length}.")
    if REST not in normalized.values():
        raise InvalidPattern("A cycle needs at least one REST position.")
    if int(required_workers_per_day) <= 0:
        raise InvalidPattern("Required workers per day must be positive.")
    _check_name_free(session, name)
    pattern = SchedulePattern(
        name=name.strip(),
        mode=FIXED_CYCLE,
        cycle_length=length,
        required_workers_per_day=int(required_workers_per_day),
        notes=notes or "",
    )
    pattern.cycle_positions = [
        PatternCyclePosition(position=position, status=status) for position, status in sorted(normalized.items())
    ]
    session.add(pattern)
    session.flush()
    return pattern


def create_week_indexed_pattern(
    session,
    name: str,
    weeks: Sequence[Sequence[str]],
    *,
    required_workers_per_day: int,
    notes: str = "",
) -> SchedulePattern:
    """Store a weekly mask; ``weeks[i][d]`` is the status of weekday ``d`` (0 = Monday) in week ``i``."""
    periodicity = len(weeks)
    if periodicity <= 0:
        raise InvalidPattern("Week periodicity must be positive.")
    entries: List[PatternWeekMask] = []
    for week_index, days in enumerate(weeks):
        if len(days) != 7:
            raise InvalidPattern(f"Week {week_index} must define all seven days, got {len(days)}.")
        for day_of_week, status in enumerate(days):
            entries.append(
                PatternWeekMask(week_index=week_index, day_of_week=day_of_week, status=_normalize_status(status))
            )
    if int(required_workers_per_day) <= 0:
        raise InvalidPattern("Required workers per day must be positive.")
    _check_name_free(session, name)
    pattern = SchedulePattern(
        name=name.strip(),
        mode=WEEK_INDEXED,
        week_periodicity=periodicity,
        required_workers_per_day=int(required_workers_per_day),
        notes=notes or "",
    )
    pattern.week_mask = entries
    session.add(pattern)
    session.flush()
    return pattern


def describe_pattern(pattern: SchedulePattern) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": pattern.id,
        "name": pattern.name,
        "mode": pattern.mode,
        "required_workers_per_day": pattern.required_workers_per_day,
    }
    if pattern.mode == FIXED_CYCLE:
        payload["cycle_length"] = pattern.cycle_length
        payload["cycle"] = {entry.position: entry.status for entry in pattern.cycle_positions}
    else:
        weeks: List[Dict[str, str]] = [{} for _ in range(pattern.week_periodicity or 0)]
        for entry in pattern.week_mask:
            weeks[entry.week_index][WEEKDAY_TOKENS[entry.day_of_week]] = entry.status
        payload["week_periodicity"] = pattern.week_periodicity
        payload["weeks"] = weeks
    return payload


def ensure_preset_patterns(session_factory) -> List[int]:
    """Seed the stock rotations once; returns the ids of any created."""
    created: List[int] = []
    with session_factory() as session, session.begin():
        existing = set(session.scalars(select(SchedulePattern.name)))
        for name, preset in PATTERN_PRESETS.items():
            if name in existing:
                continue
            if preset["mode"] == FIXED_CYCLE:
                pattern = create_fixed_cycle_pattern(
                    session,
                    name,
                    preset["cycle"],
                    required_workers_per_day=preset["required_workers_per_day"],
                    notes=preset["notes"],
                )
            else:
                pattern = create_week_indexed_pattern(
                    session,
                    name,
                    preset["weeks"],
                    required_workers_per_day=preset["required_workers_per_day"],
                    notes=preset["notes"],
                )
            created.append(pattern.id)
    return created
