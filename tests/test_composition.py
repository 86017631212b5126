from __future__ import annotations

import datetime
import unittest

from sqlalchemy import select
from sqlalchemy.pool import StaticPool

from crewrota.api import SchedulingService
from crewrota.constants import ABSENCE, PUBLISHED, REST, WORK
from crewrota.database import Base, ScheduleSlot, build_engine, build_session_factory
from crewrota.errors import CompositionViolation, InvalidStateTransition
from crewrota.patterns import create_fixed_cycle_pattern
from crewrota.validation import CompositionIssue

PERIOD_START = datetime.date(2025, 3, 3)


class CompositionValidationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = build_engine("sqlite://", poolclass=StaticPool)
        Base.metadata.create_all(self.engine)
        self.session_factory = build_session_factory(self.engine)
        self.service = SchedulingService(self.session_factory)
        with self.session_factory() as session, session.begin():
            self.pattern_id = create_fixed_cycle_pattern(
                session,
                "4x2",
                [WORK, WORK, WORK, WORK, REST, REST],
                required_workers_per_day=2,
            ).id
        self.period = self.service.create_period(1, PERIOD_START, PERIOD_START + datetime.timedelta(days=11), self.pattern_id)

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_staggered_crew_is_clean(self) -> None:
        self.service.generate_slots(self.period.id, [(1, 0), (2, 2), (3, 4)])
        self.assertEqual(self.service.validate_composition(self.period.id), [])

    def test_reports_every_offending_day(self) -> None:
        # All three workers share a phase: three on duty for four days, then nobody.
        self.service.generate_slots(self.period.id, [1, 2, 3])
        issues = self.service.validate_composition(self.period.id)
        self.assertEqual(len(issues), 8)
        self.assertTrue(all(issue.actual == 3 and issue.required == 2 for issue in issues))
        self.assertEqual(issues[0].date, PERIOD_START + datetime.timedelta(days=2))
        self.assertEqual(
            issues[0].as_dict(),
            {"date": (PERIOD_START + datetime.timedelta(days=2)).isoformat(), "actual": 3, "required": 2},
        )

    def test_all_rest_days_pass(self) -> None:
        with self.session_factory() as session, session.begin():
            for offset in range(12):
                session.add(
                    ScheduleSlot(
                        period_id=self.period.id,
                        slot_date=PERIOD_START + datetime.timedelta(days=offset),
                        worker_id=9,
                        state=REST,
                    )
                )
        self.assertEqual(self.service.validate_composition(self.period.id), [])

    def test_publish_is_blocked_by_bad_composition(self) -> None:
        self.service.generate_slots(self.period.id, [1, 2, 3])
        with self.assertRaises(CompositionViolation) as ctx:
            self.service.publish(self.period.id)
        self.assertEqual(len(ctx.exception.issues), 8)
        self.assertIsInstance(ctx.exception.issues[0], CompositionIssue)
        self.assertIn("(3/2)", str(ctx.exception))
        period = self.service.get_period(self.period.id)
        self.assertNotEqual(period.status, PUBLISHED)
        self.assertEqual(period.version, 0)

    def test_publish_reports_understaffed_day(self) -> None:
        self.service.generate_slots(self.period.id, [(1, 0), (2, 2), (3, 4)])
        with self.session_factory() as session, session.begin():
            slot = session.scalars(
                select(ScheduleSlot).where(
                    ScheduleSlot.period_id == self.period.id,
                    ScheduleSlot.slot_date == PERIOD_START,
                    ScheduleSlot.worker_id == 2,
                )
            ).one()
            self.assertEqual(slot.state, WORK)
            slot.state = REST
        with self.assertRaises(CompositionViolation) as ctx:
            self.service.publish(self.period.id)
        self.assertEqual(ctx.exception.issues, [CompositionIssue(date=PERIOD_START, actual=1, required=2)])
        self.assertEqual(ctx.exception.issues[0].as_dict(), {"date": PERIOD_START.isoformat(), "actual": 1, "required": 2})

    def test_publish_can_skip_composition_check(self) -> None:
        self.service.generate_slots(self.period.id, [1, 2, 3])
        period = self.service.publish(self.period.id, validate_composition=False)
        self.assertEqual(period.status, PUBLISHED)
        self.assertEqual(period.version, 1)

    def test_publish_rejects_absence_slots(self) -> None:
        self.service.generate_slots(self.period.id, [(1, 0), (2, 2), (3, 4)])
        with self.session_factory() as session, session.begin():
            slot = session.scalars(select(ScheduleSlot).where(ScheduleSlot.period_id == self.period.id)).first()
            slot.state = ABSENCE
        with self.assertRaises(InvalidStateTransition):
            self.service.publish(self.period.id)


if __name__ == "__main__":
    unittest.main()
