from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..constants import FIXED_CYCLE, GENERATABLE_STATUSES, WORK
from ..database import SchedulePeriod
from ..errors import InsufficientCrew, InvalidRange, InvalidStateTransition, SchedulingError
from ..rotation import PatternRule, continuation_anchor, cycle_anchor, day_index, resolve_status
from ..store import PeriodStore, SlotDraft

logger = logging.getLogger(__name__)

FULL = "FULL"
FROM_DATE = "FROM_DATE"
GENERATION_MODES = {FULL, FROM_DATE}
# Guards against a mistyped period end producing years of slots.
MAX_GENERATION_DAYS = 365 * 2
ONE_DAY = datetime.timedelta(days=1)


@dataclass
class WorkerSeed:
    worker_id: int
    first_rest_offset_days: int = 0


@dataclass
class GenerationResult:
    period_id: int
    slots_written: int
    generation_start: datetime.date
    generation_end: datetime.date
    worker_ids: List[int] = field(default_factory=list)
    anchors: Dict[int, int] = field(default_factory=dict)


def _coerce_seed(value: Any) -> WorkerSeed:
    if isinstance(value, WorkerSeed):
        return value
    if isinstance(value, int):
        return WorkerSeed(worker_id=value)
    if isinstance(value, dict):
        return WorkerSeed(
            worker_id=int(value["worker_id"]),
            first_rest_offset_days=int(value.get("first_rest_offset_days", 0) or 0),
        )
    worker_id, offset = value
    return WorkerSeed(worker_id=int(worker_id), first_rest_offset_days=int(offset or 0))


class SlotGenerator:
    """Expands a period's rotation pattern into one slot per worker per day."""

    def __init__(
        self,
        store: PeriodStore,
        working_hours,
        roster=None,
        *,
        max_days: int = MAX_GENERATION_DAYS,
    ) -> None:
        self.store = store
        self.working_hours = working_hours
        self.roster = roster
        self.max_days = max_days

    def generate(
        self,
        period: SchedulePeriod,
        workers: Optional[Iterable[Any]] = None,
        *,
        mode: str = FULL,
        from_date: Optional[datetime.date] = None,
    ) -> GenerationResult:
        if period.status not in GENERATABLE_STATUSES:
            raise InvalidStateTransition("Cannot generate slots for a closed period.")
        mode = (mode or FULL).upper()
        if mode not in GENERATION_MODES:
            raise SchedulingError(f"Unsupported generation mode '{mode}'.")
        if mode == FROM_DATE and from_date is None:
            raise InvalidRange("from_date is required when generating from a date.")

        rule = self.store.get_pattern(period.pattern_id).to_rule()
        seeds = self._resolve_workers(period, workers)
        if len(seeds) < rule.required_workers_per_day:
            raise InsufficientCrew(
                f"Insufficient crew for required composition: {len(seeds)} worker(s) "
                f"for {rule.required_workers_per_day} per day."
            )

        start = self._generation_start(period, mode, from_date)
        end = period.period_end
        if start > end:
            raise InvalidRange(f"Nothing to generate: {start.isoformat()} is after the period end {end.isoformat()}.")
        day_total = (end - start).days + 1
        if day_total > self.max_days:
            raise InvalidRange(
                f"Refusing to generate {day_total} days of slots (limit {self.max_days}). Check the period end."
            )

        anchors = self._anchors(period, rule, seeds, mode, start)
        drafts: List[SlotDraft] = []
        for offset in range(day_total):
            day = start + datetime.timedelta(days=offset)
            index = day_index(period.period_start, day)
            window = None
            window_loaded = False
            for seed in seeds:
                status = resolve_status(rule, anchors[seed.worker_id], index, day)
                draft = SlotDraft(slot_date=day, worker_id=seed.worker_id, state=status)
                if status == WORK:
                    if not window_loaded:
                        window = self.working_hours.resolve(period.crew_id, day)
                        window_loaded = True
                    if window is not None:
                        draft.predicted_start = window.start
                        draft.predicted_end = window.end
                drafts.append(draft)

        written = self.store.upsert_slots(period.id, drafts)
        logger.info(
            "Generated %d slot(s) for period %s from %s to %s (%s mode, %d worker(s)).",
            written,
            period.id,
            start.isoformat(),
            end.isoformat(),
            mode,
            len(seeds),
        )
        return GenerationResult(
            period_id=period.id,
            slots_written=written,
            generation_start=start,
            generation_end=end,
            worker_ids=[seed.worker_id for seed in seeds],
            anchors=anchors,
        )

    def _resolve_workers(self, period: SchedulePeriod, workers: Optional[Iterable[Any]]) -> List[WorkerSeed]:
        if workers is None:
            if self.roster is None:
                raise InsufficientCrew("No worker list was given and no roster lookup is configured.")
            member_ids = self.roster.current_members(period.crew_id, period.period_start, period.period_end)
            if not member_ids:
                logger.warning("Crew %s has no active members for period %s.", period.crew_id, period.id)
                raise InsufficientCrew(f"No active members found for crew {period.crew_id}.")
            workers = member_ids
        seeds: List[WorkerSeed] = []
        seen = set()
        for value in workers:
            seed = _coerce_seed(value)
            if seed.worker_id in seen:
                raise SchedulingError(f"Worker {seed.worker_id} is listed more than once.")
            seen.add(seed.worker_id)
            seeds.append(seed)
        return seeds

    def _generation_start(
        self,
        period: SchedulePeriod,
        mode: str,
        from_date: Optional[datetime.date],
    ) -> datetime.date:
        start = from_date if mode == FROM_DATE else period.period_start
        if start < period.period_start:
            start = period.period_start
        if period.frozen_through is not None and start <= period.frozen_through:
            logger.warning(
                "Period %s is published through %s; generation starts the day after.",
                period.id,
                period.frozen_through.isoformat(),
            )
            start = period.frozen_through + ONE_DAY
        return start

    def _anchors(
        self,
        period: SchedulePeriod,
        rule: PatternRule,
        seeds: Sequence[WorkerSeed],
        mode: str,
        start: datetime.date,
    ) -> Dict[int, int]:
        anchors = {seed.worker_id: cycle_anchor(rule, seed.first_rest_offset_days) for seed in seeds}
        if rule.mode != FIXED_CYCLE:
            return anchors
        if mode != FROM_DATE and start == period.period_start:
            return anchors
        history = self.store.prior_slots(period.id, anchors.keys(), start)
        for seed in seeds:
            observed = [
                (day_index(period.period_start, slot_date), state)
                for slot_date, state in history.get(seed.worker_id, [])
            ]
            anchors[seed.worker_id] = continuation_anchor(rule, observed, anchors[seed.worker_id])
        logger.debug("Cycle anchors for period %s: %s", period.id, anchors)
        return anchors
