from datetime import datetime

import pytest
from sqlalchemy import select

from orgcal.core.calendar.models import Event
from orgcal.core.notifications.models import Notification
from orgcal.core.reminders.models import JOB_FIRED, ReminderJob
from orgcal.core.reminders.service import JobOutcome, ReminderService
from orgcal.workers import tasks


class DummyEngine:
    disposed = 0

    async def dispose(self):
        DummyEngine.disposed += 1


@pytest.fixture
def sync_task_env(monkeypatch):
    """Task bodies run their own event loop; keep them off the shared test engine and Redis."""
    queued, published = [], []
    DummyEngine.disposed = 0
    monkeypatch.setattr(tasks, "engine", DummyEngine())
    monkeypatch.setattr(tasks, "_queue_delivery", queued.append)
    monkeypatch.setattr(tasks, "publish_sync", lambda change_type, payload=None: published.append((change_type, payload)))
    return queued, published


def test_fire_reminder_task_fans_out(monkeypatch, sync_task_env):
    queued, published = sync_task_env
    calls = []

    async def fake_fire(job_key, task_id):
        calls.append((job_key, task_id))
        return JobOutcome(
            "fired", notification_ids=[3, 4], broadcast={"type": "notification_created", "payload": {"userIds": [5]}}
        )

    monkeypatch.setattr(tasks, "fire_reminder", fake_fire)
    result = tasks.fire_reminder_task.delay("event:1:REMINDER:60", "t1")

    assert result.get() == {"status": "fired", "reason": None, "notifications": 2}
    assert calls == [("event:1:REMINDER:60", "t1")]
    assert queued == [3, 4]
    assert published == [("notification_created", {"userIds": [5]})]
    assert DummyEngine.disposed == 1


def test_suppressed_job_publishes_nothing(monkeypatch, sync_task_env):
    queued, published = sync_task_env

    async def fake_fire(job_key, task_id):
        return JobOutcome("suppressed", "superseded")

    monkeypatch.setattr(tasks, "fire_reminder", fake_fire)
    result = tasks.fire_reminder_task.apply(args=["event:1:OVERDUE:0"], task_id="own-id")
    assert result.get() == {"status": "suppressed", "reason": "superseded", "notifications": 0}
    assert queued == [] and published == []


def test_publish_failure_does_not_fail_the_task(monkeypatch, sync_task_env):
    async def fake_fire(job_key, task_id):
        return JobOutcome("fired", notification_ids=[1], broadcast={"type": "notification_created", "payload": {}})

    def broken_publish(*args):
        raise ConnectionError("redis down")

    monkeypatch.setattr(tasks, "fire_reminder", fake_fire)
    monkeypatch.setattr(tasks, "publish_sync", broken_publish)
    assert tasks.fire_reminder_task.delay("event:1:REMINDER:60", "t1").get()["status"] == "fired"


def test_sweep_task(monkeypatch, sync_task_env):
    async def fake_sweep():
        return {"events": 2, "series": 1}

    monkeypatch.setattr(tasks, "sweep_reminders", fake_sweep)
    assert tasks.sweep_series_reminders_task.delay().get() == {"events": 2, "series": 1}


def test_beat_schedule_runs_the_sweep():
    entry = tasks.celery_app.conf.beat_schedule["sweep-series-reminders"]
    assert entry["task"] == tasks.sweep_series_reminders_task.name


# async cores, on the test loop
async def test_fire_reminder_core_commits_ledger_and_rows(db_session, org, job_queue):
    event = Event(
        title="Launch", start_at=datetime(2099, 1, 1, 12), end_at=datetime(2099, 1, 1, 13),
        creator_id=org.alice.id, department_id=10, office_id=1, division_id=1,
    )
    db_session.add(event)
    await db_session.flush()
    await ReminderService(db_session, queue=job_queue).schedule_event(event)
    await db_session.commit()
    key = f"event:{event.id}:REMINDER:60"
    task_id = (await db_session.scalar(select(ReminderJob).where(ReminderJob.job_key == key))).task_id

    outcome = await tasks.fire_reminder(key, task_id)
    assert outcome.status == "fired"

    db_session.expire_all()
    assert (await db_session.scalar(select(ReminderJob).where(ReminderJob.job_key == key))).status == JOB_FIRED
    rows = (await db_session.scalars(select(Notification))).all()
    assert [row.user_id for row in rows] == [org.alice.id]

    again = await tasks.fire_reminder(key, task_id)
    assert again.status == "suppressed"


async def test_sweep_core_uses_the_queue(monkeypatch, db_session, org, job_queue):
    monkeypatch.setattr(tasks, "CeleryJobQueue", lambda: job_queue)
    assert await tasks.sweep_reminders() == {"events": 0, "series": 0}


async def test_deliver_core(db_session, org):
    row = Notification(user_id=org.bob.id, type="EVENT_UPDATED", title="t", message="m")
    db_session.add(row)
    await db_session.commit()
    assert await tasks.deliver(row.id) == {"email": False, "push": 0}
