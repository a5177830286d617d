# orgcal/api/v1/notifications.py

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.api.deps import get_deliver, get_job_queue, ok
from orgcal.core.auth.actor import Actor
from orgcal.core.auth.security import get_current_actor
from orgcal.core.notifications.schemas import NotificationOut
from orgcal.core.notifications.service import Deliver, NotificationService
from orgcal.core.reminders.queue import JobQueue
from orgcal.core.reminders.service import ReminderService
from orgcal.db.base import get_async_db_session

router = APIRouter(prefix="/v1/notifications", tags=["Notifications"])
log = logging.getLogger(__name__)


def _out(row) -> dict:
    return NotificationOut.model_validate(row).model_dump(by_alias=True, mode="json")


@router.get("", summary="Own notifications, newest first")
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    is_read: Optional[bool] = Query(None, alias="isRead"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    rows = await NotificationService(db).list_for_user(actor.id, limit=limit, is_read=is_read)
    return ok([_out(r) for r in rows])


@router.get("/unread-count")
async def unread_count(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    return ok({"count": await NotificationService(db).unread_count(actor.id)})


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    row = await NotificationService(db).mark_read(notification_id, actor.id)
    return ok(_out(row))


@router.post("/read-all")
async def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    return ok({"updated": await NotificationService(db).mark_all_read(actor.id)})


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    await NotificationService(db).delete(notification_id, actor.id)
    return ok({"id": notification_id})


@router.post("/check-reminders", summary="Run the reminder backfill and series sweep now")
async def check_reminders(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
    queue: JobQueue = Depends(get_job_queue),
    deliver: Optional[Deliver] = Depends(get_deliver),
) -> dict:
    reminders = ReminderService(db, queue=queue, deliver=deliver)
    result = await reminders.check_now()
    await db.commit()
    reminders.flush_queue()
    log.info("Manual reminder check by user %s: %s", actor.id, result)
    return ok(result)
