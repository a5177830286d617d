# orgcal/api/v1/settings.py

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.api.deps import get_deliver, get_job_queue, ok
from orgcal.api.v1.reminders import reschedule_all
from orgcal.core.auth.actor import Actor
from orgcal.core.auth.security import get_current_actor, require_admin
from orgcal.core.notifications.service import Deliver
from orgcal.core.reminders.queue import JobQueue
from orgcal.core.settings.service import REMINDER_KEYS, SettingsService
from orgcal.db.base import get_async_db_session

router = APIRouter(prefix="/v1/settings", tags=["Settings"])
log = logging.getLogger(__name__)


@router.get("", summary="Effective system settings")
async def get_settings(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    return ok(await SettingsService(db).all())


@router.put("", summary="[Admin] Update system settings")
async def update_settings(
    background_tasks: BackgroundTasks,
    values: Dict[str, Any] = Body(...),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db_session),
    queue: JobQueue = Depends(get_job_queue),
    deliver: Optional[Deliver] = Depends(get_deliver),
) -> dict:
    service = SettingsService(db)
    changed = await service.update(values, updated_by=actor.id)
    await db.commit()
    if changed & REMINDER_KEYS:
        log.info("Reminder settings changed (%s), rescheduling", sorted(changed & REMINDER_KEYS))
        background_tasks.add_task(reschedule_all, queue, deliver)
    return ok(await service.all(), changed=sorted(changed))
