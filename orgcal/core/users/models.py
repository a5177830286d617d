# orgcal/core/users/models.py
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from orgcal.db.base import Base


class Division(Base):
    __tablename__ = "divisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class Office(Base):
    __tablename__ = "offices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    division_id: Mapped[Optional[int]] = mapped_column(ForeignKey("divisions.id", ondelete="SET NULL"), nullable=True, index=True)


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    office_id: Mapped[Optional[int]] = mapped_column(ForeignKey("offices.id", ondelete="SET NULL"), nullable=True, index=True)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="USER", comment="ADMIN | USER")
    position: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment="Job position label")
    scope: Mapped[Optional[str]] = mapped_column(
        String(16), nullable=True, comment="Leadership breadth: DIVISION | OFFICE | DEPARTMENT | NULL"
    )
    division_id: Mapped[Optional[int]] = mapped_column(ForeignKey("divisions.id", ondelete="SET NULL"), nullable=True, index=True)
    office_id: Mapped[Optional[int]] = mapped_column(ForeignKey("offices.id", ondelete="SET NULL"), nullable=True, index=True)
    department_id: Mapped[Optional[int]] = mapped_column(ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    approval_status: Mapped[str] = mapped_column(String(16), default="APPROVED", nullable=False)

    email_notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_preferences: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True, comment="type -> bool opt-out map")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    push_subscriptions: Mapped[List["PushSubscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} role={self.role} scope={self.scope} dept={self.department_id}>"


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    p256dh: Mapped[str] = mapped_column(String(255), nullable=False)
    auth: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user: Mapped["User"] = relationship(back_populates="push_subscriptions")
