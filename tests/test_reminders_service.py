from datetime import date, datetime, time, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.core.calendar.models import STATUS_DONE, Event, EventException, EventSeries
from orgcal.core.notifications.models import EVENT_REMINDER, Notification
from orgcal.core.reminders.models import JOB_CANCELLED, JOB_FIRED, JOB_SCHEDULED, ReminderJob
from orgcal.core.reminders.service import ReminderService
from orgcal.core.settings.service import SettingsService

from conftest import NOW, fixed_clock

EVENT_KEYS = {"event:{id}:REMINDER:60", "event:{id}:DUE_SOON:60", "event:{id}:OVERDUE:0"}


def keys_for(event_id: int) -> set:
    return {k.format(id=event_id) for k in EVENT_KEYS}


async def job(db: AsyncSession, key: str) -> ReminderJob:
    return await db.scalar(select(ReminderJob).where(ReminderJob.job_key == key))


@pytest_asyncio.fixture
async def event(db_session: AsyncSession, org) -> Event:
    # 12:00-14:00 stored, three hours after NOW
    row = Event(
        title="Release review",
        start_at=datetime(2024, 5, 1, 12, 0),
        end_at=datetime(2024, 5, 1, 14, 0),
        creator_id=org.alice.id,
        department_id=10,
        office_id=1,
        division_id=1,
    )
    db_session.add(row)
    await db_session.flush()
    return row


@pytest_asyncio.fixture
async def series(db_session: AsyncSession, org) -> EventSeries:
    row = EventSeries(
        title="Weekly sync",
        recurrence_type="week",
        recurrence_interval=1,
        start_time=time(10, 0),
        end_time=time(11, 0),
        duration_days=0,
        first_occurrence_date=date(2024, 5, 1),
        creator_id=org.bob.id,
        department_id=10,
        office_id=1,
        division_id=1,
    )
    db_session.add(row)
    await db_session.flush()
    return row


def service(db, job_queue, deliver, now=NOW) -> ReminderService:
    return ReminderService(db, queue=job_queue, deliver=deliver, now=fixed_clock(now))


async def test_scheduling_is_idempotent_and_sent_only_on_flush(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    assert await reminders.schedule_event(event) == 3
    assert job_queue.sent == []

    reminders.flush_queue()
    assert set(job_queue.keys) == keys_for(event.id)

    again = service(db_session, job_queue, deliver)
    assert await again.schedule_event(event) == 0
    again.flush_queue()
    assert len(job_queue.sent) == 3


async def test_done_event_is_not_scheduled(db_session, event, job_queue, deliver):
    event.status = STATUS_DONE
    assert await service(db_session, job_queue, deliver).schedule_event(event) == 0


async def test_cancel_then_reschedule_uses_fresh_task_ids(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    reminders.flush_queue()
    first_ids = {task_id for _, task_id, _ in job_queue.sent}

    assert await reminders.cancel_event(event.id) == 3
    reminders.flush_queue()
    assert set(job_queue.revoked) == first_ids
    for key in keys_for(event.id):
        assert (await job(db_session, key)).status == JOB_CANCELLED

    assert await reminders.schedule_event(event) == 3
    reminders.flush_queue()
    second_ids = {task_id for _, task_id, _ in job_queue.sent[3:]}
    assert second_ids.isdisjoint(first_ids)


async def test_fired_job_notifies_creator_once(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    key = f"event:{event.id}:REMINDER:60"
    row = await job(db_session, key)

    outcome = await reminders.process_job(key, row.task_id)
    assert outcome.status == "fired"
    assert len(outcome.notification_ids) == 1
    assert outcome.broadcast["payload"]["userIds"] == [event.creator_id]
    assert row.status == JOB_FIRED

    note = await db_session.get(Notification, outcome.notification_ids[0])
    assert note.type == EVENT_REMINDER
    assert note.user_id == event.creator_id
    assert note.related_event_id == event.id
    assert note.message == '"Release review" starts in 3 hours.'

    repeat = await reminders.process_job(key, row.task_id)
    assert (repeat.status, repeat.reason) == ("suppressed", f"status {JOB_FIRED}")


async def test_fired_key_is_not_rearmed_until_cancelled(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    key = f"event:{event.id}:REMINDER:60"
    await reminders.process_job(key, (await job(db_session, key)).task_id)

    assert await reminders.schedule_event(event) == 0
    await reminders.cancel_event(event.id)
    assert await reminders.schedule_event(event) == 3


async def test_superseded_message_is_dropped(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    key = f"event:{event.id}:REMINDER:60"
    outcome = await reminders.process_job(key, "stale-task-id")
    assert (outcome.status, outcome.reason) == ("suppressed", "superseded")
    assert (await job(db_session, key)).status == JOB_SCHEDULED


async def test_unknown_key_is_dropped(db_session, job_queue, deliver):
    outcome = await service(db_session, job_queue, deliver).process_job("event:999:REMINDER:60", "x")
    assert (outcome.status, outcome.reason) == ("suppressed", "no ledger row")


async def test_completed_event_suppresses_reminder(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    event.status = STATUS_DONE
    key = f"event:{event.id}:OVERDUE:0"
    outcome = await reminders.process_job(key, (await job(db_session, key)).task_id)
    assert (outcome.status, outcome.reason) == ("suppressed", "completed")
    assert (await job(db_session, key)).status == JOB_CANCELLED


async def test_moved_event_suppresses_old_job(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    event.start_at = datetime(2024, 5, 1, 13, 0)
    await db_session.flush()

    key = f"event:{event.id}:REMINDER:60"
    outcome = await reminders.process_job(key, (await job(db_session, key)).task_id)
    assert (outcome.status, outcome.reason) == ("suppressed", "moved")


async def test_stale_scheduled_job_is_rearmed(db_session, event, job_queue, deliver):
    await service(db_session, job_queue, deliver).schedule_event(event)
    key = f"event:{event.id}:REMINDER:60"
    lost_task = (await job(db_session, key)).task_id

    # 20 minutes after the reminder should have fired, the row is still SCHEDULED
    later = service(db_session, job_queue, deliver, now=datetime(2024, 5, 1, 2, 20, tzinfo=NOW.tzinfo))
    assert await later.schedule_event(event) == 1
    later.flush_queue()
    assert job_queue.revoked == [lost_task]
    assert job_queue.keys == [key]
    assert (await job(db_session, key)).task_id != lost_task


async def test_series_occurrences_inside_horizon(db_session, series, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    assert await reminders.schedule_series(series) == 3
    reminders.flush_queue()
    assert set(job_queue.keys) == {
        f"series:{series.id}:2024-05-01:REMINDER:60",
        f"series:{series.id}:2024-05-01:DUE_SOON:60",
        f"series:{series.id}:2024-05-01:OVERDUE:0",
    }
    # the reminder time 09:00 is NOW, so it fires right away
    reminder_eta = next(eta for key, _, eta in job_queue.sent if ":REMINDER:" in key)
    assert reminder_eta == NOW + timedelta(seconds=5)


async def test_excepted_occurrence_is_suppressed(db_session, series, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_series(series)
    db_session.add(EventException(series_id=series.id, exception_date=date(2024, 5, 1)))
    await db_session.flush()

    key = f"series:{series.id}:2024-05-01:OVERDUE:0"
    outcome = await reminders.process_job(key, (await job(db_session, key)).task_id)
    assert (outcome.status, outcome.reason) == ("suppressed", "exception")


async def test_occurrence_reminder_carries_composite_id(db_session, series, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_series(series)
    key = f"series:{series.id}:2024-05-01:DUE_SOON:60"
    outcome = await reminders.process_job(key, (await job(db_session, key)).task_id)
    assert outcome.status == "fired"
    note = await db_session.get(Notification, outcome.notification_ids[0])
    assert note.user_id == series.creator_id
    assert note.related_event_id is None
    assert note.meta["compositeId"] == f"series-{series.id}-2024-05-01"


async def test_cancel_series_purges_unread_reminders(db_session, series, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_series(series)
    key = f"series:{series.id}:2024-05-01:REMINDER:60"
    outcome = await reminders.process_job(key, (await job(db_session, key)).task_id)
    assert outcome.notification_ids

    assert await reminders.cancel_series(series.id) == 3
    remaining = (await db_session.scalars(select(Notification))).all()
    assert remaining == []


async def test_rearmed_reminder_for_same_time_is_deduplicated(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    key = f"event:{event.id}:REMINDER:60"
    first = await reminders.process_job(key, (await job(db_session, key)).task_id)
    # read notifications survive cancellation
    (await db_session.get(Notification, first.notification_ids[0])).is_read = True
    await reminders.cancel_event(event.id)
    await reminders.schedule_event(event)

    second = await reminders.process_job(key, (await job(db_session, key)).task_id)
    assert second.status == "fired"
    assert second.notification_ids == []


async def test_check_now_backfills_events_and_series(db_session, event, series, job_queue, deliver):
    done = Event(
        title="Finished", start_at=datetime(2024, 5, 1, 15, 0), end_at=datetime(2024, 5, 1, 16, 0),
        status=STATUS_DONE, creator_id=event.creator_id,
    )
    far = Event(
        title="Next month", start_at=datetime(2024, 6, 1, 9, 0), end_at=datetime(2024, 6, 1, 10, 0),
        creator_id=event.creator_id,
    )
    db_session.add_all([done, far])
    await db_session.flush()

    reminders = service(db_session, job_queue, deliver)
    assert await reminders.check_now() == {"events": 3, "series": 3}
    reminders.flush_queue()
    assert not any(k.startswith((f"event:{done.id}:", f"event:{far.id}:")) for k in job_queue.keys)


async def test_reschedule_all_applies_new_offsets(db_session, event, job_queue, deliver):
    reminders = service(db_session, job_queue, deliver)
    await reminders.schedule_event(event)
    reminders.flush_queue()

    await SettingsService(db_session).update({"reminder_times": ["30min", "1hour"]})
    result = await reminders.reschedule_all()
    reminders.flush_queue()

    assert result["cancelled"] == 3
    assert result["events"] == 4
    assert len(job_queue.revoked) == 3
    assert f"event:{event.id}:REMINDER:30" in job_queue.keys


async def test_queue_failures_are_logged_not_raised(db_session, event, deliver):
    class BrokenQueue:
        def send(self, *args):
            raise RuntimeError("broker down")

        def revoke(self, task_ids):
            raise RuntimeError("broker down")

    reminders = ReminderService(db_session, queue=BrokenQueue(), deliver=deliver, now=fixed_clock())
    await reminders.schedule_event(event)
    await reminders.cancel_event(event.id)
    reminders.flush_queue()
