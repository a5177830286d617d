# orgcal/core/notifications/service.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.config import settings
from orgcal.core.auth.actor import ROLE_ADMIN, SCOPE_DEPARTMENT, SCOPE_DIVISION, SCOPE_OFFICE
from orgcal.core.errors import NotFound
from orgcal.core.notifications.models import REMINDER_TYPES, Notification
from orgcal.core.settings.service import SettingsService
from orgcal.core.timeutils import utc_now
from orgcal.core.users.models import User

log = logging.getLogger(__name__)

SHARED_TAG = "[Shared]"

Deliver = Callable[[int], None]


@dataclass(frozen=True)
class NotifyContext:
    """Who caused the change, who owns the entity, and where it sits in the organization."""

    actor_id: Optional[int] = None
    creator_id: Optional[int] = None
    department_id: Optional[int] = None
    office_id: Optional[int] = None
    division_id: Optional[int] = None
    target_user_id: Optional[int] = None
    shared_office_ids: tuple[int, ...] = ()
    related_event_id: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    dedup_key: Optional[str] = None


def _deliver_via_celery(notification_id: int) -> None:
    from orgcal.workers.tasks import deliver_notification_task

    deliver_notification_task.delay(notification_id)


def _naive_utc(delta: timedelta) -> datetime:
    return (utc_now() - delta).replace(tzinfo=None)


class NotificationService:
    """
    Notification fan-out and the per-user inbox.

    ``notify`` resolves the configured scope for a type into recipients, persists one row
    per recipient and returns them. Delivery (email/push) is triggered separately with
    :meth:`deliver_all` once the rows are committed.
    """

    def __init__(self, db_session: AsyncSession, deliver: Optional[Deliver] = None):
        self.db: AsyncSession = db_session
        self.deliver: Deliver = deliver or _deliver_via_celery
        self.settings = SettingsService(db_session)

    # ------------------------------------------------------------------ #
    #                           recipient resolution                      #
    # ------------------------------------------------------------------ #
    async def _member_ids(self, *conditions) -> List[int]:
        stmt = select(User.id).where(
            User.is_active.is_(True), User.approval_status == "APPROVED", *conditions
        )
        return list((await self.db.scalars(stmt.order_by(User.id))).all())

    async def resolve_recipients(self, scope: str, ctx: NotifyContext) -> List[int]:
        if scope == "creator":
            return [ctx.creator_id] if ctx.creator_id is not None else []
        if scope == "target":
            return [ctx.target_user_id] if ctx.target_user_id is not None else []
        if scope == "department":
            if ctx.department_id is None:
                return []
            return await self._member_ids(User.department_id == ctx.department_id)
        if scope == "office":
            if ctx.office_id is None:
                return []
            return await self._member_ids(User.office_id == ctx.office_id)
        if scope == "admins":
            return await self._member_ids(User.role == ROLE_ADMIN)
        if scope == "shared_offices":
            if not ctx.shared_office_ids:
                return []
            return await self._member_ids(User.office_id.in_(ctx.shared_office_ids))
        if scope in ("dept_leads", "dept_lead_department", "dept_lead_office", "dept_lead_division"):
            return await self._leader_ids(scope, ctx)
        log.warning("Unknown notification scope %r, nobody notified", scope)
        return []

    async def _leader_ids(self, scope: str, ctx: NotifyContext) -> List[int]:
        branches = []
        if scope in ("dept_leads", "dept_lead_department") and ctx.department_id is not None:
            branches.append((User.scope == SCOPE_DEPARTMENT) & (User.department_id == ctx.department_id))
        if scope in ("dept_leads", "dept_lead_office") and ctx.office_id is not None:
            branches.append((User.scope == SCOPE_OFFICE) & (User.office_id == ctx.office_id))
        if scope in ("dept_leads", "dept_lead_division") and ctx.division_id is not None:
            branches.append((User.scope == SCOPE_DIVISION) & (User.division_id == ctx.division_id))
        if not branches:
            return []
        return await self._member_ids(or_(*branches))

    async def shared_recipients(self, shares: Iterable) -> List[int]:
        """Active members matching any share: office AND (department?) AND (position in set?)."""
        branches = []
        for share in shares:
            cond = User.office_id == share.office_id
            if share.department_id is not None:
                cond = cond & (User.department_id == share.department_id)
            positions = tuple(share.position_labels or ())
            if positions:
                cond = cond & User.position.in_(positions)
            branches.append(cond)
        if not branches:
            return []
        return await self._member_ids(or_(*branches))

    # ------------------------------------------------------------------ #
    #                                fan-out                              #
    # ------------------------------------------------------------------ #
    async def _already_notified(self, user_id: int, type_: str, dedup_key: str) -> bool:
        cutoff = _naive_utc(timedelta(hours=settings.NOTIFICATION_DEDUP_HOURS))
        stmt = select(Notification.id).where(
            Notification.user_id == user_id,
            Notification.type == type_,
            Notification.dedup_key == dedup_key,
            Notification.created_at > cutoff,
        ).limit(1)
        return (await self.db.scalar(stmt)) is not None

    async def _persist(
        self,
        recipients: Sequence[int],
        type_: str,
        title: str,
        message: str,
        ctx: NotifyContext,
    ) -> List[Notification]:
        created: List[Notification] = []
        for user_id in recipients:
            if ctx.dedup_key and await self._already_notified(user_id, type_, ctx.dedup_key):
                log.info("Skipping duplicate %s for user %s (%s)", type_, user_id, ctx.dedup_key)
                continue
            row = Notification(
                user_id=user_id,
                type=type_,
                title=title,
                message=message,
                related_event_id=ctx.related_event_id,
                meta=ctx.metadata,
                dedup_key=ctx.dedup_key,
            )
            self.db.add(row)
            created.append(row)
        if created:
            await self.db.flush()
        return created

    async def notify(self, type_: str, title: str, message: str, ctx: NotifyContext) -> List[Notification]:
        config = await self.settings.notification_config(type_)
        if not config.get("enabled", False):
            log.debug("Notification type %s disabled", type_)
            return []
        recipients = await self.resolve_recipients(config.get("scope", "creator"), ctx)
        recipients = [uid for uid in dict.fromkeys(recipients) if uid != ctx.actor_id]
        created = await self._persist(recipients, type_, title, message, ctx)
        log.info("Notified %d recipient(s) of %s", len(created), type_)
        return created

    async def notify_shared(
        self,
        type_: str,
        title: str,
        message: str,
        ctx: NotifyContext,
        shares: Iterable,
        exclude: Iterable[int] = (),
    ) -> List[Notification]:
        """Second pass for users who see the entity through sharing; tagged, never duplicated."""
        config = await self.settings.notification_config(type_)
        if not config.get("enabled", False):
            return []
        skip = set(exclude)
        if ctx.actor_id is not None:
            skip.add(ctx.actor_id)
        recipients = [uid for uid in await self.shared_recipients(shares) if uid not in skip]
        if not recipients:
            return []
        created = await self._persist(
            recipients, type_, f"{SHARED_TAG} {title}", f"{SHARED_TAG} {message}", ctx
        )
        log.info("Notified %d shared recipient(s) of %s", len(created), type_)
        return created

    async def notify_with_shares(
        self,
        type_: str,
        title: str,
        message: str,
        ctx: NotifyContext,
        shares: Iterable = (),
    ) -> List[Notification]:
        first = await self.notify(type_, title, message, ctx)
        # users resolved by the first pass get no tagged copy even if their own row was deduplicated
        config = await self.settings.notification_config(type_)
        direct = await self.resolve_recipients(config.get("scope", "creator"), ctx)
        second = await self.notify_shared(type_, title, message, ctx, shares, exclude=direct)
        return first + second

    def deliver_all(self, notification_ids: Iterable[int]) -> None:
        """Trigger side-channel delivery. Failures are logged and dropped."""
        for notification_id in notification_ids:
            try:
                self.deliver(notification_id)
            except Exception:
                log.exception("Failed to trigger delivery of notification %s", notification_id)

    async def purge_recent_reminders(self, dedup_prefix: str) -> int:
        """Delete young unread reminder notifications of a cancelled entity."""
        cutoff = _naive_utc(timedelta(minutes=settings.CANCEL_NOTIFICATION_WINDOW_MINUTES))
        stmt = delete(Notification).where(
            Notification.type.in_(REMINDER_TYPES),
            Notification.is_read.is_(False),
            Notification.created_at > cutoff,
            Notification.dedup_key.startswith(dedup_prefix, autoescape=True),
        )
        result = await self.db.execute(stmt)
        if result.rowcount:
            log.info("Purged %d stale reminder notification(s) for %s", result.rowcount, dedup_prefix)
        return result.rowcount or 0

    # ------------------------------------------------------------------ #
    #                                 inbox                               #
    # ------------------------------------------------------------------ #
    async def list_for_user(self, user_id: int, limit: int = 50, is_read: Optional[bool] = None) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if is_read is not None:
            stmt = stmt.where(Notification.is_read.is_(is_read))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        return list((await self.db.scalars(stmt)).all())

    async def unread_count(self, user_id: int) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.is_read.is_(False)
        )
        return int(await self.db.scalar(stmt) or 0)

    async def mark_read(self, notification_id: int, user_id: int) -> Notification:
        row = await self.db.get(Notification, notification_id)
        if row is None or row.user_id != user_id:
            raise NotFound("Notification not found")
        if not row.is_read:
            row.is_read = True
            row.read_at = utc_now().replace(tzinfo=None)
            await self.db.flush()
        return row

    async def mark_all_read(self, user_id: int) -> int:
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utc_now().replace(tzinfo=None))
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def delete(self, notification_id: int, user_id: int) -> None:
        row = await self.db.get(Notification, notification_id)
        if row is None or row.user_id != user_id:
            raise NotFound("Notification not found")
        await self.db.delete(row)
        await self.db.flush()


__all__ = ["NotifyContext", "NotificationService", "SHARED_TAG"]
