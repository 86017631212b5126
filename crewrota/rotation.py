"""Rotation arithmetic shared by slot generation and period extension.

Everything here is pure: a pattern rule, a per-worker cycle anchor and a day
index always resolve to the same WORK/REST answer. Cycle positions are
1-indexed; anchors are 0-indexed offsets into the cycle.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .constants import FIXED_CYCLE, REST, ROTATION_STATES, WEEK_INDEXED, WORK


@dataclass(frozen=True)
class PatternRule:
    mode: str
    required_workers_per_day: int
    cycle_length: int = 0
    positions: Mapping[int, str] = field(default_factory=dict)
    week_periodicity: int = 0
    week_mask: Mapping[Tuple[int, int], str] = field(default_factory=dict)

    @property
    def rest_positions(self) -> List[int]:
        """REST positions of the cycle, missing positions count as REST."""
        if self.mode != FIXED_CYCLE:
            return []
        return [
            position
            for position in range(1, self.cycle_length + 1)
            if self.positions.get(position) != WORK
        ]

    @property
    def first_rest_position(self) -> Optional[int]:
        rest = self.rest_positions
        return rest[0] if rest else None


def day_index(period_start: datetime.date, day: datetime.date) -> int:
    return (day - period_start).days


def cycle_position(cycle_length: int, cycle_anchor: int, index: int) -> int:
    return ((cycle_anchor + index) % cycle_length) + 1


def resolve_status(
    rule: PatternRule,
    cycle_anchor: int,
    index: int,
    day: Optional[datetime.date] = None,
) -> str:
    """Return WORK or REST for the day ``index`` days after the period start."""
    if rule.mode == FIXED_CYCLE:
        if rule.cycle_length <= 0:
            return REST
        position = cycle_position(rule.cycle_length, cycle_anchor, index)
        return WORK if rule.positions.get(position) == WORK else REST
    if rule.mode == WEEK_INDEXED:
        if day is None:
            raise ValueError("Week-indexed patterns need the calendar day to resolve a status.")
        periodicity = max(1, rule.week_periodicity)
        week_index = (index // 7) % periodicity
        return WORK if rule.week_mask.get((week_index, day.weekday())) == WORK else REST
    return REST


def cycle_anchor(rule: PatternRule, first_rest_offset_days: int) -> int:
    """Anchor that puts the worker's first rest day on the lowest REST position."""
    if rule.mode != FIXED_CYCLE or rule.cycle_length <= 0:
        return 0
    first_rest = rule.first_rest_position
    if first_rest is None:
        return 0
    return (first_rest - 1 - first_rest_offset_days + rule.cycle_length) % rule.cycle_length


def anchor_from_rest_day(rule: PatternRule, rest_day_index: int) -> int:
    return cycle_anchor(rule, rest_day_index)


def anchor_matches(rule: PatternRule, anchor: int, observed: Iterable[Tuple[int, str]]) -> bool:
    for index, state in observed:
        if state not in ROTATION_STATES:
            continue
        if resolve_status(rule, anchor, index) != state:
            return False
    return True


def continuation_anchor(
    rule: PatternRule,
    history: Sequence[Tuple[int, str]],
    fallback_anchor: int,
) -> int:
    """Pick the anchor that continues a worker's existing rotation.

    ``history`` holds (day_index, state) pairs, oldest first, for the days
    before the generation window. The most recent REST day is taken as the
    lowest REST position. If that contradicts the last cycle of history (the
    worker was on the second day of a two-day rest block, say) the first
    anchor that reproduces it is used instead.
    """
    if rule.mode != FIXED_CYCLE or rule.cycle_length <= 0:
        return fallback_anchor
    rest_days = [index for index, state in history if state == REST]
    if not rest_days:
        return fallback_anchor
    window = [(index, state) for index, state in history if state in ROTATION_STATES][-rule.cycle_length:]
    candidate = anchor_from_rest_day(rule, rest_days[-1])
    if anchor_matches(rule, candidate, window):
        return candidate
    for anchor in range(rule.cycle_length):
        if anchor_matches(rule, anchor, window):
            return anchor
    return candidate
