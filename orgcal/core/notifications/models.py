# orgcal/core/notifications/models.py

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orgcal.core.timeutils import naive_utc_now
from orgcal.db.base import Base

EVENT_REMINDER = "EVENT_REMINDER"
EVENT_DUE_SOON = "EVENT_DUE_SOON"
EVENT_OVERDUE = "EVENT_OVERDUE"
EVENT_UPDATED = "EVENT_UPDATED"
EVENT_COMPLETED = "EVENT_COMPLETED"
EVENT_DELETED = "EVENT_DELETED"
EVENT_SHARED = "EVENT_SHARED"

# types created by fired reminder jobs; the only ones removed when jobs are cancelled
REMINDER_TYPES = (EVENT_REMINDER, EVENT_DUE_SOON, EVENT_OVERDUE)


class Notification(Base):
    """One row per (recipient, trigger). Never shared between recipients."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "is_read"),
        Index("ix_notifications_user_dedup", "user_id", "type", "dedup_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_event_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    # reminder notifications carry the job key plus the target time, e.g. "event:7:REMINDER:30@2024-05-01T09:00"
    dedup_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # naive UTC, set in Python so window comparisons work the same on every backend
    created_at: Mapped[datetime] = mapped_column(DateTime, default=naive_utc_now, nullable=False, index=True)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Notification id={self.id} user={self.user_id} type={self.type} read={self.is_read}>"
