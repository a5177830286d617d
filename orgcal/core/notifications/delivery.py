# orgcal/core/notifications/delivery.py
"""Side-channel delivery of a persisted notification (email and push)."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.core.delivery import (
    BaseEmailProvider,
    BasePushProvider,
    SubscriptionGone,
    get_email_provider,
    get_push_provider,
)
from orgcal.core.notifications.models import Notification
from orgcal.core.settings.service import SettingsService
from orgcal.core.users.models import PushSubscription, User

log = logging.getLogger(__name__)


async def should_email(db: AsyncSession, user: User, type_: str) -> bool:
    """User master toggle, then the per-type opt-out, then the system switch."""
    if not user.email_notifications_enabled:
        return False
    prefs = user.email_preferences or {}
    if prefs.get(type_) is False:
        return False
    return await SettingsService(db).email_enabled()


async def deliver_notification(
    db: AsyncSession,
    notification_id: int,
    email: Optional[BaseEmailProvider] = None,
    push: Optional[BasePushProvider] = None,
) -> dict:
    """
    Send one notification over every enabled channel.

    Channel failures are logged and swallowed; the notification row is never touched.
    Push subscriptions whose endpoint is gone are deleted.

    Returns:
        dict: ``{"email": bool, "push": int}`` for logging and tests.
    """
    outcome = {"email": False, "push": 0}
    notification = await db.get(Notification, notification_id)
    if notification is None:
        log.warning("Notification %s vanished before delivery", notification_id)
        return outcome
    user = await db.get(User, notification.user_id)
    if user is None or not user.is_active:
        return outcome

    try:
        if await should_email(db, user, notification.type):
            await (email or get_email_provider()).send(user.email, notification.title, notification.message)
            outcome["email"] = True
    except Exception:
        log.exception("Email delivery failed for notification %s", notification_id)

    push = push or get_push_provider()
    payload = {
        "title": notification.title,
        "body": notification.message,
        "tag": f"notif-{notification.id}",
        "data": {
            "notificationId": notification.id,
            "type": notification.type,
            "relatedEventId": notification.related_event_id,
        },
    }
    subscriptions = (
        await db.scalars(select(PushSubscription).where(PushSubscription.user_id == user.id))
    ).all()
    for sub in subscriptions:
        try:
            await push.send({"endpoint": sub.endpoint, "keys": {"p256dh": sub.p256dh, "auth": sub.auth}}, payload)
            outcome["push"] += 1
        except SubscriptionGone:
            log.info("Pruning expired push subscription %s of user %s", sub.id, user.id)
            await db.delete(sub)
        except Exception:
            log.exception("Push delivery failed for subscription %s", sub.id)
    await db.flush()
    return outcome
