from __future__ import annotations

import datetime
import os
from pathlib import Path
from typing import List

from sqlalchemy import (
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker
from sqlalchemy.types import Time

from .constants import DRAFT, FIXED_CYCLE, GENERATED
from .rotation import PatternRule


DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'schedule.db').as_posix()}"
DATABASE_URL = os.environ.get("CREWROTA_DATABASE_URL", DEFAULT_DATABASE_URL)
# Busy timeout for acquiring the write lock; SQLite has no statement deadline.
TRANSACTION_MAX_WAIT_SECONDS = 10
TRANSACTION_TIMEOUT_SECONDS = 60


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for pattern, period, slot and crew tables living in schedule.db."""

    pass


class SchedulePattern(Base):
    __tablename__ = "schedule_patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default=FIXED_CYCLE)
    cycle_length: Mapped[int | None] = mapped_column(Integer, nullable=True)
    week_periodicity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    required_workers_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    cycle_positions: Mapped[List["PatternCyclePosition"]] = relationship(
        back_populates="pattern",
        cascade="all, delete-orphan",
        order_by="PatternCyclePosition.position",
    )
    week_mask: Mapped[List["PatternWeekMask"]] = relationship(
        back_populates="pattern",
        cascade="all, delete-orphan",
    )

    __table_args__ = (UniqueConstraint("name", name="uq_schedule_patterns_name"),)

    def to_rule(self) -> PatternRule:
        return PatternRule(
            mode=self.mode,
            required_workers_per_day=int(self.required_workers_per_day or 0),
            cycle_length=int(self.cycle_length or 0),
            positions={entry.position: entry.status for entry in self.cycle_positions},
            week_periodicity=int(self.week_periodicity or 0),
            week_mask={(entry.week_index, entry.day_of_week): entry.status for entry in self.week_mask},
        )


class PatternCyclePosition(Base):
    __tablename__ = "pattern_cycle_positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pattern_id: Mapped[int] = mapped_column(ForeignKey("schedule_patterns.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..cycle_length
    status: Mapped[str] = mapped_column(String(8), nullable=False)

    pattern: Mapped[SchedulePattern] = relationship(back_populates="cycle_positions")

    __table_args__ = (UniqueConstraint("pattern_id", "position", name="uq_cycle_position"),)


class PatternWeekMask(Base):
    __tablename__ = "pattern_week_mask"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pattern_id: Mapped[int] = mapped_column(ForeignKey("schedule_patterns.id", ondelete="CASCADE"), nullable=False)
    week_index: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Monday
    status: Mapped[str] = mapped_column(String(8), nullable=False)

    pattern: Mapped[SchedulePattern] = relationship(back_populates="week_mask")

    __table_args__ = (
        UniqueConstraint("pattern_id", "week_index", "day_of_week", name="uq_week_mask_entry"),
    )


class SchedulePeriod(Base):
    __tablename__ = "schedule_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crew_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    period_start: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    period_end: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    pattern_id: Mapped[int] = mapped_column(ForeignKey("schedule_patterns.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=DRAFT)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    # Last day covered by a publish; generation never rewrites it.
    frozen_through: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)

    pattern: Mapped[SchedulePattern] = relationship()
    slots: Mapped[List["ScheduleSlot"]] = relationship(back_populates="period")

    @property
    def day_count(self) -> int:
        return (self.period_end - self.period_start).days + 1

    def covers(self, day: datetime.date) -> bool:
        return self.period_start <= day <= self.period_end


class ScheduleSlot(Base):
    __tablename__ = "schedule_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_id: Mapped[int] = mapped_column(ForeignKey("schedule_periods.id"), nullable=False)
    slot_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    worker_id: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[str] = mapped_column(String(10), nullable=False)
    predicted_start: Mapped[datetime.time | None] = mapped_column(Time, nullable=True)
    predicted_end: Mapped[datetime.time | None] = mapped_column(Time, nullable=True)
    origin: Mapped[str] = mapped_column(String(12), nullable=False, default=GENERATED)
    day_note: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    notes: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    retired_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    period: Mapped[SchedulePeriod] = relationship(back_populates="slots")

    __table_args__ = (
        # One live slot per natural key; retired rows stay behind as history.
        Index(
            "uq_slot_natural_key_active",
            "period_id",
            "slot_date",
            "worker_id",
            unique=True,
            sqlite_where=text("retired_at IS NULL"),
            postgresql_where=text("retired_at IS NULL"),
        ),
        Index("ix_slot_worker_date", "worker_id", "slot_date"),
    )

    @property
    def is_active(self) -> bool:
        return self.retired_at is None


class CoverageEvent(Base):
    __tablename__ = "coverage_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("schedule_slots.id"), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(12), nullable=False)
    resolution: Mapped[str | None] = mapped_column(String(16), nullable=True)
    covering_worker_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    justification: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    recorded_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    slot: Mapped[ScheduleSlot] = relationship()


class CrewShiftHours(Base):
    __tablename__ = "crew_shift_hours"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crew_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    shift_start: Mapped[datetime.time] = mapped_column(Time, nullable=False)
    duration_hours: Mapped[float] = mapped_column(Float, nullable=False)
    valid_from: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)


class CrewMembership(Base):
    __tablename__ = "crew_memberships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crew_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    worker_id: Mapped[int] = mapped_column(Integer, nullable=False)
    valid_from: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)


def _configure_sqlite(engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        # Take over BEGIN from pysqlite so transactions can start IMMEDIATE.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        # Overlap and double-booking checks read then write under one lock.
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str = DATABASE_URL, **kwargs):
    connect_args = dict(kwargs.pop("connect_args", None) or {})
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        connect_args.setdefault("timeout", TRANSACTION_MAX_WAIT_SECONDS)
        connect_args.setdefault("check_same_thread", False)
    engine = create_engine(url, echo=False, future=True, connect_args=connect_args, **kwargs)
    if is_sqlite:
        _configure_sqlite(engine)
    return engine


def build_session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


schedule_engine = build_engine()
SessionLocal = build_session_factory(schedule_engine)


def init_database(engine=None) -> None:
    target = engine if engine is not None else schedule_engine
    if target is schedule_engine and DATABASE_URL == DEFAULT_DATABASE_URL:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(target)
