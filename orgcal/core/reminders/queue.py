# orgcal/core/reminders/queue.py
"""Port to the job queue. Celery in production; tests pass a recording double."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol, Sequence

log = logging.getLogger(__name__)


class JobQueue(Protocol):
    def send(self, job_key: str, task_id: str, eta: datetime) -> None:
        """Deliver ``job_key`` to a worker no earlier than ``eta`` (aware UTC)."""
        ...

    def revoke(self, task_ids: Sequence[str]) -> None:
        ...


class CeleryJobQueue:
    def send(self, job_key: str, task_id: str, eta: datetime) -> None:
        from orgcal.workers.tasks import fire_reminder_task

        fire_reminder_task.apply_async(args=[job_key, task_id], eta=eta, task_id=task_id)
        log.debug("Queued %s as task %s for %s", job_key, task_id, eta.isoformat())

    def revoke(self, task_ids: Sequence[str]) -> None:
        if not task_ids:
            return
        from orgcal.workers.tasks import celery_app

        celery_app.control.revoke(list(task_ids))
        log.debug("Revoked %d task(s)", len(task_ids))


__all__ = ["JobQueue", "CeleryJobQueue"]
