# orgcal/core/reminders/models.py

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from orgcal.core.timeutils import naive_utc_now
from orgcal.db.base import Base

JOB_SCHEDULED = "SCHEDULED"
JOB_FIRED = "FIRED"
JOB_CANCELLED = "CANCELLED"


class ReminderJob(Base):
    """
    Ledger of reminder jobs handed to the queue.

    ``job_key`` is the idempotency key; ``task_id`` changes every time the key is armed
    so a message from an earlier arming is recognised and dropped by the handler.
    Rows go away with their event or series.
    """

    __tablename__ = "reminder_jobs"
    __table_args__ = (
        Index("ix_reminder_jobs_status_scheduled_at", "status", "scheduled_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_key: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=JOB_SCHEDULED)
    trigger_type: Mapped[str] = mapped_column(String(16), nullable=False)
    offset_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # naive UTC
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    # naive stored wall-clock of the start/end the trigger refers to
    target_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    task_id: Mapped[str] = mapped_column(String(64), nullable=False)

    event_id: Mapped[Optional[int]] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=True, index=True)
    series_id: Mapped[Optional[int]] = mapped_column(ForeignKey("event_series.id", ondelete="CASCADE"), nullable=True, index=True)
    occurrence_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    fired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=naive_utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=naive_utc_now, onupdate=naive_utc_now, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<ReminderJob key={self.job_key} status={self.status} at={self.scheduled_at}>"
