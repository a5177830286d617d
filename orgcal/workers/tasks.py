# orgcal/workers/tasks.py

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any, Coroutine, Dict, Optional

from celery import Celery
from celery.utils.log import get_task_logger

from orgcal.config import settings
from orgcal.core.live.relay import publish_sync
from orgcal.core.notifications.delivery import deliver_notification
from orgcal.core.reminders.queue import CeleryJobQueue
from orgcal.core.reminders.service import JobOutcome, ReminderService
from orgcal.db.base import async_session_context, engine

log = get_task_logger(__name__)

celery_app = Celery(
    "orgcal",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["orgcal.workers.tasks"],
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
)
celery_app.conf.update(
    task_track_started=True,
    timezone="UTC",
    broker_connection_retry_on_startup=True,
    # a reminder is acknowledged only once handled, so a lost worker means redelivery
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
celery_app.conf.beat_schedule = {
    "sweep-series-reminders": {
        "task": "orgcal.workers.tasks.sweep_series_reminders_task",
        "schedule": timedelta(minutes=settings.SERIES_SWEEP_INTERVAL_MINUTES),
    },
}


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run async logic from a sync task body on a fresh loop."""

    async def _wrapped() -> Any:
        try:
            return await coro
        finally:
            # pooled connections are bound to this loop and die with it
            await engine.dispose()

    return asyncio.run(_wrapped())


def _queue_delivery(notification_id: int) -> None:
    deliver_notification_task.delay(notification_id)


# --------------------------------------------------------------------------- #
#                                reminder jobs                                #
# --------------------------------------------------------------------------- #
async def fire_reminder(job_key: str, task_id: str) -> JobOutcome:
    """Handle one fired job. The ledger update and the notification rows commit together."""
    async with async_session_context() as session:
        reminders = ReminderService(session, queue=CeleryJobQueue(), deliver=_queue_delivery)
        outcome = await reminders.process_job(job_key, task_id)
    return outcome


def _after_fire(outcome: JobOutcome) -> None:
    for notification_id in outcome.notification_ids:
        try:
            _queue_delivery(notification_id)
        except Exception:
            log.exception("Failed to queue delivery of notification %s", notification_id)
    if outcome.broadcast:
        try:
            publish_sync(outcome.broadcast["type"], outcome.broadcast.get("payload"))
        except Exception:
            log.exception("Failed to publish live update for fired reminder")


@celery_app.task(
    name="orgcal.workers.tasks.fire_reminder_task",
    bind=True,
    autoretry_for=(Exception,),
    retry_kwargs={"max_retries": settings.JOB_MAX_RETRIES},
    retry_backoff=True,
    retry_backoff_max=60 * 5,
    retry_jitter=True,
)
def fire_reminder_task(self, job_key: str, task_id: Optional[str] = None) -> Dict[str, Any]:
    """Celery entry point for an armed reminder job. Safe to receive more than once."""
    task_id = task_id or self.request.id
    log.info("[fire_reminder %s] job %s (attempt %s)", task_id, job_key, self.request.retries + 1)
    outcome = _run(fire_reminder(job_key, task_id))
    if outcome.status == "fired":
        _after_fire(outcome)
    else:
        log.info("[fire_reminder %s] suppressed: %s", task_id, outcome.reason)
    return {"status": outcome.status, "reason": outcome.reason, "notifications": len(outcome.notification_ids)}


# --------------------------------------------------------------------------- #
#                                   delivery                                  #
# --------------------------------------------------------------------------- #
async def deliver(notification_id: int) -> dict:
    async with async_session_context() as session:
        return await deliver_notification(session, notification_id)


@celery_app.task(name="orgcal.workers.tasks.deliver_notification_task")
def deliver_notification_task(notification_id: int) -> dict:
    """Email/push for one notification. Channel failures never fail the task."""
    result = _run(deliver(notification_id))
    log.debug("Delivered notification %s: %s", notification_id, result)
    return result


# --------------------------------------------------------------------------- #
#                                    sweep                                    #
# --------------------------------------------------------------------------- #
async def sweep_reminders() -> Dict[str, int]:
    async with async_session_context() as session:
        reminders = ReminderService(session, queue=CeleryJobQueue(), deliver=_queue_delivery)
        result = await reminders.check_now()
    reminders.flush_queue()
    return result


@celery_app.task(name="orgcal.workers.tasks.sweep_series_reminders_task")
def sweep_series_reminders_task() -> Dict[str, int]:
    """Periodic backfill of one-off events and series occurrences inside the horizon."""
    result = _run(sweep_reminders())
    log.info("Reminder sweep armed %s", result)
    return result


__all__ = [
    "celery_app", "fire_reminder_task", "deliver_notification_task", "sweep_series_reminders_task",
    "fire_reminder", "deliver", "sweep_reminders",
]
