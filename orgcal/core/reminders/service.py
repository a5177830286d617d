# orgcal/core/reminders/service.py

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orgcal.config import settings
from orgcal.core.calendar.models import STATUS_DONE, Event, EventException, EventSeries
from orgcal.core.calendar.recurrence import Occurrence, expand, is_occurrence_date, occurrence_times
from orgcal.core.calendar.refs import EventRef, OccurrenceRef
from orgcal.core.notifications import models as n
from orgcal.core.notifications.service import Deliver, NotificationService, NotifyContext
from orgcal.core.reminders.models import JOB_CANCELLED, JOB_FIRED, JOB_SCHEDULED, ReminderJob
from orgcal.core.reminders.queue import CeleryJobQueue, JobQueue
from orgcal.core.reminders.triggers import (
    DUE_SOON,
    OVERDUE,
    REMINDER,
    PlannedJob,
    compute_triggers,
    dedup_key,
    entity_prefix,
    humanize_minutes,
    planned_jobs,
    parse_job_key,
    series_prefix,
)
from orgcal.core.settings.service import SettingsService
from orgcal.core.timeutils import stored_to_utc, utc_now, utc_to_stored

log = logging.getLogger(__name__)

# a SCHEDULED row this far past its fire time lost its queue message and may be re-armed
STALE_GRACE = timedelta(minutes=15)

_NOTIFICATION_TYPES = {
    REMINDER: n.EVENT_REMINDER,
    DUE_SOON: n.EVENT_DUE_SOON,
    OVERDUE: n.EVENT_OVERDUE,
}


def _naive(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass
class JobOutcome:
    status: str  # "fired" | "suppressed"
    reason: Optional[str] = None
    notification_ids: List[int] = field(default_factory=list)
    broadcast: Optional[Dict] = None


@dataclass
class _Target:
    title: str
    start_at: datetime
    end_at: datetime
    ctx: NotifyContext
    shares: Sequence


class ReminderService:
    """
    Reminder scheduling engine.

    Every job is recorded in the ``reminder_jobs`` ledger under its idempotency key before
    it is handed to the queue. Queue calls are collected and only issued by
    :meth:`flush_queue`, which callers invoke after their transaction commits.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        queue: Optional[JobQueue] = None,
        deliver: Optional[Deliver] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.db: AsyncSession = db_session
        self.queue: JobQueue = queue or CeleryJobQueue()
        self.deliver = deliver
        self.settings = SettingsService(db_session)
        self._now = now
        self._sends: List[Tuple[str, str, datetime]] = []
        self._revokes: List[str] = []
        self._config: Optional[Tuple[List[int], List[int], bool]] = None

    async def _trigger_config(self) -> Tuple[List[int], List[int], bool]:
        if self._config is None:
            self._config = (
                await self.settings.reminder_offsets(),
                await self.settings.due_soon_offsets(),
                await self.settings.overdue_enabled(),
            )
        return self._config

    async def _triggers(self, start_at: datetime, end_at: datetime):
        reminder_offsets, due_soon_offsets, overdue_enabled = await self._trigger_config()
        return compute_triggers(
            start_at,
            end_at,
            reminder_offsets,
            due_soon_offsets,
            overdue_enabled,
            now=self._now(),
            immediate_delay=timedelta(seconds=settings.IMMEDIATE_FIRE_DELAY_SECONDS),
        )

    # ------------------------------------------------------------------ #
    #                               arming                                #
    # ------------------------------------------------------------------ #
    def _insert(self):
        return pg_insert if self.db.get_bind().dialect.name == "postgresql" else sqlite_insert

    async def _arm(self, job: PlannedJob) -> bool:
        """none/cancelled -> scheduled. Scheduled or fired keys are left alone."""
        row = await self.db.scalar(select(ReminderJob).where(ReminderJob.job_key == job.key))
        now_naive = _naive(self._now())
        if row is not None:
            if row.status == JOB_FIRED:
                return False
            if row.status == JOB_SCHEDULED and row.scheduled_at + STALE_GRACE > now_naive:
                return False

        ref = job.ref
        trigger = job.trigger
        task_id = uuid.uuid4().hex
        values = dict(
            status=JOB_SCHEDULED,
            trigger_type=trigger.trigger_type,
            offset_minutes=trigger.offset_minutes,
            scheduled_at=_naive(trigger.fire_at),
            target_at=trigger.target_at,
            task_id=task_id,
            event_id=ref.event_id if isinstance(ref, EventRef) else None,
            series_id=ref.series_id if isinstance(ref, OccurrenceRef) else None,
            occurrence_date=ref.occurrence_date if isinstance(ref, OccurrenceRef) else None,
            fired_at=None,
        )

        if row is None:
            stmt = (
                self._insert()(ReminderJob)
                .values(job_key=job.key, created_at=now_naive, updated_at=now_naive, **values)
                .on_conflict_do_nothing(index_elements=[ReminderJob.job_key])
                .returning(ReminderJob.id)
            )
            won = (await self.db.execute(stmt)).scalar_one_or_none() is not None
        else:
            prior_status, prior_task_id = row.status, row.task_id
            # compare-and-set on the state we read; a concurrent arming makes this a no-op
            stmt = (
                update(ReminderJob)
                .where(
                    ReminderJob.id == row.id,
                    ReminderJob.status == prior_status,
                    ReminderJob.task_id == prior_task_id,
                )
                .values(updated_at=now_naive, **values)
                .execution_options(synchronize_session="fetch")
            )
            won = (await self.db.execute(stmt)).rowcount == 1
            if won and prior_status == JOB_SCHEDULED:
                self._revokes.append(prior_task_id)

        if not won:
            log.info("Job %s was armed concurrently, skipping", job.key)
            return False
        self._sends.append((job.key, task_id, trigger.fire_at))
        log.info("Scheduled %s at %s", job.key, trigger.fire_at.isoformat())
        return True

    async def _arm_all(self, planned: Sequence[PlannedJob]) -> int:
        armed = 0
        for job in planned:
            if await self._arm(job):
                armed += 1
        return armed

    # ------------------------------------------------------------------ #
    #                              scheduling                             #
    # ------------------------------------------------------------------ #
    async def schedule_event(self, event: Event) -> int:
        if event.status == STATUS_DONE:
            return 0
        triggers = await self._triggers(event.start_at, event.end_at)
        return await self._arm_all(planned_jobs(EventRef(event.id), triggers))

    async def schedule_event_id(self, event_id: int) -> int:
        event = await self.db.get(Event, event_id)
        if event is None:
            log.warning("Event %s vanished before its reminders were scheduled", event_id)
            return 0
        return await self.schedule_event(event)

    async def schedule_occurrence(self, occurrence: Occurrence) -> int:
        triggers = await self._triggers(occurrence.start_at, occurrence.end_at)
        return await self._arm_all(planned_jobs(occurrence.ref, triggers))

    async def schedule_series(self, series: EventSeries) -> int:
        """Arm every occurrence of ``series`` that matters within the lookahead horizon."""
        if series.status == STATUS_DONE:
            return 0
        now = self._now()
        horizon = timedelta(hours=settings.REMINDER_HORIZON_HOURS)
        window_start = utc_to_stored(now).date() - timedelta(days=(series.duration_days or 0) + 1)
        window_end = utc_to_stored(now + horizon).date()

        skip = set(
            (await self.db.scalars(
                select(EventException.exception_date).where(
                    EventException.series_id == series.id,
                    EventException.exception_date >= window_start,
                    EventException.exception_date <= window_end,
                )
            )).all()
        )
        skip |= set(
            (await self.db.scalars(
                select(Event.occurrence_date).where(
                    Event.series_id == series.id,
                    Event.status == STATUS_DONE,
                    Event.occurrence_date.is_not(None),
                )
            )).all()
        )

        armed = 0
        for occurrence in expand(series, window_start, window_end, skip):
            if stored_to_utc(occurrence.start_at) > now + horizon:
                continue
            if stored_to_utc(occurrence.end_at) < now - horizon:
                continue
            armed += await self.schedule_occurrence(occurrence)
        return armed

    async def schedule_series_id(self, series_id: int) -> int:
        series = await self.db.get(EventSeries, series_id)
        if series is None:
            return 0
        return await self.schedule_series(series)

    # ------------------------------------------------------------------ #
    #                             cancellation                            #
    # ------------------------------------------------------------------ #
    async def cancel(self, prefix: str) -> int:
        """
        Cancel every job under ``prefix`` and purge the young unread reminder
        notifications it produced. Fired keys become re-armable.
        """
        rows = (
            await self.db.scalars(
                select(ReminderJob).where(
                    ReminderJob.job_key.startswith(prefix, autoescape=True),
                    ReminderJob.status.in_((JOB_SCHEDULED, JOB_FIRED)),
                )
            )
        ).all()
        for row in rows:
            if row.status == JOB_SCHEDULED:
                self._revokes.append(row.task_id)
            row.status = JOB_CANCELLED
        await self.db.flush()
        await NotificationService(self.db, deliver=self.deliver).purge_recent_reminders(prefix)
        if rows:
            log.info("Cancelled %d job(s) under %s", len(rows), prefix)
        return len(rows)

    async def cancel_event(self, event_id: int) -> int:
        return await self.cancel(entity_prefix(EventRef(event_id)))

    async def cancel_occurrence(self, series_id: int, occurrence_date: date) -> int:
        return await self.cancel(entity_prefix(OccurrenceRef(series_id, occurrence_date)))

    async def cancel_series(self, series_id: int) -> int:
        return await self.cancel(series_prefix(series_id))

    # ------------------------------------------------------------------ #
    #                          backfill and sweep                         #
    # ------------------------------------------------------------------ #
    async def backfill_events(self) -> int:
        """Pending events starting inside the horizon, plus started ones still pending."""
        now = self._now()
        horizon = timedelta(hours=settings.REMINDER_HORIZON_HOURS)
        now_stored = utc_to_stored(now)
        stmt = select(Event).where(
            Event.status != STATUS_DONE,
            or_(
                and_(Event.start_at > now_stored, Event.start_at <= utc_to_stored(now + horizon)),
                and_(Event.start_at <= now_stored, Event.end_at >= utc_to_stored(now - horizon)),
            ),
        )
        armed = 0
        for event in (await self.db.scalars(stmt)).all():
            armed += await self.schedule_event(event)
        log.info("Backfill armed %d event job(s)", armed)
        return armed

    async def sweep_series(self) -> int:
        today = utc_to_stored(self._now()).date()
        stmt = select(EventSeries).where(
            EventSeries.status != STATUS_DONE,
            or_(EventSeries.recurrence_end_date.is_(None), EventSeries.recurrence_end_date >= today - timedelta(days=1)),
        )
        armed = 0
        for series in (await self.db.scalars(stmt)).all():
            armed += await self.schedule_series(series)
        log.info("Series sweep armed %d job(s)", armed)
        return armed

    async def check_now(self) -> Dict[str, int]:
        return {"events": await self.backfill_events(), "series": await self.sweep_series()}

    async def reschedule_all(self) -> Dict[str, int]:
        """Drop every pending job and arm again from current settings."""
        rows = (await self.db.scalars(select(ReminderJob).where(ReminderJob.status == JOB_SCHEDULED))).all()
        for row in rows:
            self._revokes.append(row.task_id)
            row.status = JOB_CANCELLED
        await self.db.flush()
        self.settings = SettingsService(self.db)
        self._config = None
        result = await self.check_now()
        result["cancelled"] = len(rows)
        log.info("Rescheduled all reminders: %s", result)
        return result

    def flush_queue(self) -> None:
        """Hand collected sends/revokes to the queue. Failures are logged, never raised."""
        revokes, self._revokes = self._revokes, []
        sends, self._sends = self._sends, []
        if revokes:
            try:
                self.queue.revoke(revokes)
            except Exception:
                log.exception("Failed to revoke %d task(s)", len(revokes))
        for job_key, task_id, eta in sends:
            try:
                self.queue.send(job_key, task_id, eta)
            except Exception:
                log.exception("Failed to queue reminder job %s", job_key)

    # ------------------------------------------------------------------ #
    #                             job handler                             #
    # ------------------------------------------------------------------ #
    async def _resolve_target(self, ref) -> Tuple[Optional[_Target], Optional[str]]:
        if isinstance(ref, EventRef):
            event = await self.db.scalar(
                select(Event).where(Event.id == ref.event_id).options(selectinload(Event.shared_targets))
            )
            if event is None:
                return None, "missing"
            if event.status == STATUS_DONE:
                return None, "completed"
            ctx = NotifyContext(
                creator_id=event.creator_id,
                department_id=event.department_id,
                office_id=event.office_id,
                division_id=event.division_id,
                related_event_id=event.id,
            )
            return _Target(event.title, event.start_at, event.end_at, ctx, event.shared_targets), None

        series = await self.db.scalar(
            select(EventSeries).where(EventSeries.id == ref.series_id).options(selectinload(EventSeries.shared_targets))
        )
        if series is None:
            return None, "missing"
        if series.status == STATUS_DONE:
            return None, "completed"
        excepted = await self.db.scalar(
            select(EventException.id).where(
                EventException.series_id == series.id,
                EventException.exception_date == ref.occurrence_date,
            )
        )
        if excepted is not None:
            return None, "exception"
        if not is_occurrence_date(series, ref.occurrence_date):
            return None, "not an occurrence"
        start_at, end_at = occurrence_times(series, ref.occurrence_date)
        ctx = NotifyContext(
            creator_id=series.creator_id,
            department_id=series.department_id,
            office_id=series.office_id,
            division_id=series.division_id,
        )
        return _Target(series.title, start_at, end_at, ctx, series.shared_targets), None

    def _message(self, trigger_type: str, target: _Target) -> Tuple[str, str]:
        now = self._now()
        if trigger_type == REMINDER:
            left = math.ceil((stored_to_utc(target.start_at) - now).total_seconds() / 60)
            return "Event reminder", f'"{target.title}" starts in {humanize_minutes(left)}.'
        if trigger_type == DUE_SOON:
            left = math.ceil((stored_to_utc(target.end_at) - now).total_seconds() / 60)
            return "Due soon", f'"{target.title}" is due in {humanize_minutes(left)}.'
        return "Overdue", f'"{target.title}" has passed its end time and is not completed.'

    async def process_job(self, job_key: str, task_id: str) -> JobOutcome:
        """
        Handler for a fired job. Delivery is at-least-once, so every precondition is
        checked again here: ledger state, entity existence, completion, exceptions and
        the wall-clock the job was armed for.
        """
        row = await self.db.scalar(select(ReminderJob).where(ReminderJob.job_key == job_key))
        if row is None:
            return JobOutcome("suppressed", "no ledger row")
        if row.status != JOB_SCHEDULED:
            return JobOutcome("suppressed", f"status {row.status}")
        if row.task_id != task_id:
            return JobOutcome("suppressed", "superseded")

        ref, trigger_type, offset = parse_job_key(job_key)
        target, reason = await self._resolve_target(ref)
        if target is None:
            row.status = JOB_CANCELLED
            await self.db.flush()
            return JobOutcome("suppressed", reason)

        current = target.start_at if trigger_type == REMINDER else target.end_at
        if current != row.target_at:
            row.status = JOB_CANCELLED
            await self.db.flush()
            return JobOutcome("suppressed", "moved")

        title, message = self._message(trigger_type, target)
        metadata = {"jobKey": job_key, "trigger": trigger_type, "offsetMinutes": offset}
        if isinstance(ref, OccurrenceRef):
            metadata.update(
                seriesId=ref.series_id,
                occurrenceDate=ref.occurrence_date.isoformat(),
                compositeId=ref.composite_id,
            )
        ctx = NotifyContext(
            creator_id=target.ctx.creator_id,
            department_id=target.ctx.department_id,
            office_id=target.ctx.office_id,
            division_id=target.ctx.division_id,
            related_event_id=target.ctx.related_event_id,
            metadata=metadata,
            dedup_key=dedup_key(job_key, row.target_at),
        )
        notifier = NotificationService(self.db, deliver=self.deliver)
        created = await notifier.notify_with_shares(
            _NOTIFICATION_TYPES[trigger_type], title, message, ctx, target.shares
        )

        row.status = JOB_FIRED
        row.fired_at = _naive(self._now())
        await self.db.flush()
        ids = [c.id for c in created]
        log.info("Fired %s: %d notification(s)", job_key, len(ids))
        broadcast = None
        if ids:
            broadcast = {
                "type": "notification_created",
                "payload": {"userIds": sorted({c.user_id for c in created}), "trigger": trigger_type},
            }
        return JobOutcome("fired", notification_ids=ids, broadcast=broadcast)


__all__ = ["ReminderService", "JobOutcome", "STALE_GRACE"]
