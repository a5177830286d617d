# orgcal/core/calendar/models.py

from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from orgcal.db.base import Base

STATUS_PENDING = "PENDING"
STATUS_DONE = "DONE"
STATUS_OVERDUE = "OVERDUE"  # derived at read time, never stored

RECURRENCE_UNITS = ("day", "week", "month")


class EventSeries(Base):
    """Recurrence template. Occurrences are expanded on read, never stored up front."""

    __tablename__ = "event_series"
    __table_args__ = (
        CheckConstraint("recurrence_interval >= 1", name="check_recurrence_interval"),
        CheckConstraint("duration_days >= 0", name="check_duration_days"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recurrence_type: Mapped[str] = mapped_column(String(8), nullable=False, comment="day | week | month")
    recurrence_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    recurrence_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_occurrence_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    alert: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    priority: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    department_id: Mapped[Optional[int]] = mapped_column(ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    office_id: Mapped[Optional[int]] = mapped_column(ForeignKey("offices.id", ondelete="SET NULL"), nullable=True, index=True)
    division_id: Mapped[Optional[int]] = mapped_column(ForeignKey("divisions.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    exceptions: Mapped[List["EventException"]] = relationship(
        back_populates="series", cascade="all, delete-orphan", passive_deletes=True
    )
    shared_targets: Mapped[List["SharedTarget"]] = relationship(
        primaryjoin="EventSeries.id == SharedTarget.series_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<EventSeries id={self.id} every={self.recurrence_interval} {self.recurrence_type} "
            f"from={self.first_occurrence_date} until={self.recurrence_end_date}>"
        )


class Event(Base):
    """A single dated entry: one-off, or an occurrence materialized out of a series."""

    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="check_time_range"),
        Index("ix_events_series_occurrence", "series_id", "occurrence_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    alert: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    priority: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    creator_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    department_id: Mapped[Optional[int]] = mapped_column(ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    office_id: Mapped[Optional[int]] = mapped_column(ForeignKey("offices.id", ondelete="SET NULL"), nullable=True, index=True)
    division_id: Mapped[Optional[int]] = mapped_column(ForeignKey("divisions.id", ondelete="SET NULL"), nullable=True, index=True)

    # set for occurrences materialized out of a series (edited or completed individually)
    series_id: Mapped[Optional[int]] = mapped_column(ForeignKey("event_series.id", ondelete="CASCADE"), nullable=True)
    occurrence_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_exception: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    original_series_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("event_series.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    shared_targets: Mapped[List["SharedTarget"]] = relationship(
        primaryjoin="Event.id == SharedTarget.event_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Event id={self.id} start={self.start_at:%Y-%m-%dT%H:%M} status={self.status} series={self.series_id}>"


class EventException(Base):
    """A date on which a series produces no virtual occurrence."""

    __tablename__ = "event_exceptions"
    __table_args__ = (
        UniqueConstraint("series_id", "exception_date", name="uq_event_exceptions_series_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    series_id: Mapped[int] = mapped_column(ForeignKey("event_series.id", ondelete="CASCADE"), nullable=False, index=True)
    exception_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)

    series: Mapped["EventSeries"] = relationship(back_populates="exceptions")


class SharedTarget(Base):
    """Additive visibility grant: office AND (department?) AND (position in set?)."""

    __tablename__ = "event_shared_targets"
    __table_args__ = (
        CheckConstraint(
            "(event_id IS NOT NULL AND series_id IS NULL) OR (event_id IS NULL AND series_id IS NOT NULL)",
            name="check_shared_target_owner",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[Optional[int]] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=True, index=True)
    series_id: Mapped[Optional[int]] = mapped_column(ForeignKey("event_series.id", ondelete="CASCADE"), nullable=True, index=True)
    office_id: Mapped[int] = mapped_column(ForeignKey("offices.id", ondelete="CASCADE"), nullable=False, index=True)
    department_id: Mapped[Optional[int]] = mapped_column(ForeignKey("departments.id", ondelete="CASCADE"), nullable=True)

    positions: Mapped[List["SharedTargetPosition"]] = relationship(
        cascade="all, delete-orphan", lazy="selectin", passive_deletes=True
    )

    @property
    def position_labels(self) -> list[str]:
        return [p.position for p in self.positions]


class SharedTargetPosition(Base):
    __tablename__ = "event_shared_target_positions"
    __table_args__ = (
        UniqueConstraint("shared_target_id", "position", name="uq_shared_target_position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    shared_target_id: Mapped[int] = mapped_column(
        ForeignKey("event_shared_targets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[str] = mapped_column(String(64), nullable=False)
