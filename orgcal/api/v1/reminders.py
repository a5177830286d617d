# orgcal/api/v1/reminders.py

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends

from orgcal.api.deps import get_deliver, get_job_queue, ok
from orgcal.core.auth.actor import Actor
from orgcal.core.auth.security import require_admin
from orgcal.core.notifications.service import Deliver
from orgcal.core.reminders.queue import JobQueue
from orgcal.core.reminders.service import ReminderService
from orgcal.db.base import async_session_context

router = APIRouter(prefix="/v1/reminders", tags=["Reminders"])
log = logging.getLogger(__name__)


async def reschedule_all(queue: JobQueue, deliver: Optional[Deliver] = None) -> Dict[str, int]:
    """Cancel every pending job and arm again from the current settings, in its own session."""
    async with async_session_context() as session:
        reminders = ReminderService(session, queue=queue, deliver=deliver)
        result = await reminders.reschedule_all()
    reminders.flush_queue()
    return result


@router.post("/reschedule-all", summary="[Admin] Re-arm every reminder job")
async def reschedule_all_endpoint(
    actor: Actor = Depends(require_admin),
    queue: JobQueue = Depends(get_job_queue),
    deliver: Optional[Deliver] = Depends(get_deliver),
) -> dict:
    log.warning("Admin %s requested a full reminder reschedule", actor.id)
    return ok(await reschedule_all(queue, deliver))
