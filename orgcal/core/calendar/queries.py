# orgcal/core/calendar/queries.py

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orgcal.core.auth.actor import Actor
from orgcal.core.auth.scope import can_edit, can_view, visibility_clause
from orgcal.core.calendar.models import STATUS_DONE, Event, EventException, EventSeries
from orgcal.core.calendar.recurrence import Occurrence, expand, is_occurrence_date, occurrence_times
from orgcal.core.calendar.refs import EntityRef, EventRef, OccurrenceRef
from orgcal.core.calendar.schemas import EventOut, RecurrenceOut, SearchPage, SharedTargetOut
from orgcal.core.errors import Forbidden, NotFound, ValidationFailed
from orgcal.core.settings.service import SettingsService
from orgcal.core.timeutils import effective_status, is_due_soon, is_overdue, utc_now, utc_to_stored

log = logging.getLogger(__name__)

MIN_SEARCH_LENGTH = 2


def _shares_out(targets) -> List[SharedTargetOut]:
    return [
        SharedTargetOut(office_id=t.office_id, department_id=t.department_id, positions=t.position_labels)
        for t in targets
    ]


class CalendarQueries:
    """Scope-filtered, occurrence-expanded read path."""

    def __init__(self, db_session: AsyncSession, actor: Actor, now: Callable[[], datetime] = utc_now):
        self.db: AsyncSession = db_session
        self.actor = actor
        self._now = now
        self._threshold: Optional[int] = None

    async def due_soon_threshold(self) -> int:
        if self._threshold is None:
            self._threshold = await SettingsService(self.db).due_soon_threshold_minutes()
        return self._threshold

    # ------------------------------------------------------------------ #
    #                               views                                 #
    # ------------------------------------------------------------------ #
    def _derived(self, end_at: datetime, status: str, threshold: int) -> dict:
        now = self._now()
        return {
            "status": effective_status(end_at, status, now),
            "is_overdue": is_overdue(end_at, status, now),
            "is_due_soon": is_due_soon(end_at, status, threshold, now),
        }

    def event_view(self, event: Event, threshold: int) -> EventOut:
        return EventOut(
            id=event.id,
            title=event.title,
            content=event.content,
            start_at=event.start_at,
            end_at=event.end_at,
            completed_at=event.completed_at,
            priority=event.priority,
            alert=event.alert,
            creator_id=event.creator_id,
            department_id=event.department_id,
            office_id=event.office_id,
            division_id=event.division_id,
            series_id=event.series_id,
            occurrence_date=event.occurrence_date,
            is_exception=event.is_exception,
            original_series_id=event.original_series_id,
            shared_targets=_shares_out(event.shared_targets),
            can_edit=can_edit(self.actor, event),
            **self._derived(event.end_at, event.status, threshold),
        )

    def occurrence_view(self, series: EventSeries, occurrence: Occurrence, threshold: int) -> EventOut:
        # a completed series still displays, every occurrence reported DONE
        return EventOut(
            id=occurrence.ref.composite_id,
            title=series.title,
            content=series.content,
            start_at=occurrence.start_at,
            end_at=occurrence.end_at,
            completed_at=series.completed_at if series.status == STATUS_DONE else None,
            priority=series.priority,
            alert=series.alert,
            creator_id=series.creator_id,
            department_id=series.department_id,
            office_id=series.office_id,
            division_id=series.division_id,
            series_id=series.id,
            occurrence_date=occurrence.occurrence_date,
            is_recurring=True,
            is_generated=occurrence.is_generated,
            recurrence=RecurrenceOut(
                type=series.recurrence_type,
                interval=series.recurrence_interval,
                end_date=series.recurrence_end_date,
            ),
            shared_targets=_shares_out(series.shared_targets),
            can_edit=can_edit(self.actor, series),
            **self._derived(occurrence.end_at, series.status, threshold),
        )

    # ------------------------------------------------------------------ #
    #                        authorized single loads                      #
    # ------------------------------------------------------------------ #
    async def get_event(self, event_id: int, for_edit: bool = False) -> Event:
        event = await self.db.scalar(
            select(Event).where(Event.id == event_id).options(selectinload(Event.shared_targets))
        )
        if event is None or not can_view(self.actor, event, event.shared_targets):
            raise NotFound("Event not found")
        if for_edit and not can_edit(self.actor, event):
            raise Forbidden("You may not modify this event")
        return event

    async def get_series(self, series_id: int, for_edit: bool = False) -> EventSeries:
        series = await self.db.scalar(
            select(EventSeries).where(EventSeries.id == series_id).options(selectinload(EventSeries.shared_targets))
        )
        if series is None or not can_view(self.actor, series, series.shared_targets):
            raise NotFound("Event not found")
        if for_edit and not can_edit(self.actor, series):
            raise Forbidden("You may not modify this event")
        return series

    async def is_exception(self, series_id: int, day: date) -> bool:
        found = await self.db.scalar(
            select(EventException.id).where(
                EventException.series_id == series_id, EventException.exception_date == day
            )
        )
        return found is not None

    async def get_occurrence(self, ref: OccurrenceRef, for_edit: bool = False) -> tuple[EventSeries, Occurrence]:
        series = await self.get_series(ref.series_id, for_edit=for_edit)
        if not is_occurrence_date(series, ref.occurrence_date) or await self.is_exception(series.id, ref.occurrence_date):
            raise NotFound("Event not found")
        start_at, end_at = occurrence_times(series, ref.occurrence_date)
        return series, Occurrence(series.id, ref.occurrence_date, start_at, end_at)

    async def detail(self, ref: EntityRef) -> EventOut:
        threshold = await self.due_soon_threshold()
        if isinstance(ref, EventRef):
            return self.event_view(await self.get_event(ref.event_id), threshold)
        series, occurrence = await self.get_occurrence(ref)
        return self.occurrence_view(series, occurrence, threshold)

    # ------------------------------------------------------------------ #
    #                                lists                                #
    # ------------------------------------------------------------------ #
    async def list_window(self, start: date, end: date) -> List[EventOut]:
        """Events and expanded occurrences overlapping ``[start, end]`` (inclusive dates)."""
        if end < start:
            return []
        threshold = await self.due_soon_threshold()
        window_open = datetime.combine(start, time.min)
        window_close = datetime.combine(end + timedelta(days=1), time.min)

        events = (
            await self.db.scalars(
                select(Event)
                .where(
                    visibility_clause(self.actor, Event),
                    Event.start_at < window_close,
                    Event.end_at >= window_open,
                )
                .options(selectinload(Event.shared_targets))
                .order_by(Event.start_at, Event.id)
            )
        ).all()
        result = [self.event_view(e, threshold) for e in events]

        series_rows = (
            await self.db.scalars(
                select(EventSeries)
                .where(
                    visibility_clause(self.actor, EventSeries),
                    EventSeries.first_occurrence_date <= end,
                )
                .options(selectinload(EventSeries.shared_targets))
                .order_by(EventSeries.id)
            )
        ).all()
        exceptions = await self._exceptions_by_series([s.id for s in series_rows])
        for series in series_rows:
            lead = timedelta(days=series.duration_days or 0)
            for occurrence in expand(series, start - lead, end, exceptions.get(series.id, set())):
                if occurrence.end_at < window_open:
                    continue
                result.append(self.occurrence_view(series, occurrence, threshold))

        result.sort(key=lambda item: (item.start_at, str(item.id)))
        log.debug("Window %s..%s: %d item(s) for actor %s", start, end, len(result), self.actor.id)
        return result

    async def _exceptions_by_series(self, series_ids: List[int]) -> Dict[int, Set[date]]:
        grouped: Dict[int, Set[date]] = defaultdict(set)
        if not series_ids:
            return grouped
        rows = await self.db.execute(
            select(EventException.series_id, EventException.exception_date).where(
                EventException.series_id.in_(series_ids)
            )
        )
        for series_id, day in rows.all():
            grouped[series_id].add(day)
        return grouped

    async def search(self, q: str, page: int = 1, limit: int = 20) -> SearchPage:
        """Free-text match on title/content. Events first, then series."""
        q = (q or "").strip()
        if len(q) < MIN_SEARCH_LENGTH:
            raise ValidationFailed(f"Search query must be at least {MIN_SEARCH_LENGTH} characters")
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        offset = (page - 1) * limit
        threshold = await self.due_soon_threshold()

        event_filter = (
            visibility_clause(self.actor, Event),
            or_(Event.title.icontains(q, autoescape=True), Event.content.icontains(q, autoescape=True)),
        )
        series_filter = (
            visibility_clause(self.actor, EventSeries),
            or_(EventSeries.title.icontains(q, autoescape=True), EventSeries.content.icontains(q, autoescape=True)),
        )
        event_total = int(await self.db.scalar(select(func.count(Event.id)).where(*event_filter)) or 0)
        series_total = int(await self.db.scalar(select(func.count(EventSeries.id)).where(*series_filter)) or 0)

        items: List[EventOut] = []
        if offset < event_total:
            events = (
                await self.db.scalars(
                    select(Event)
                    .where(*event_filter)
                    .options(selectinload(Event.shared_targets))
                    .order_by(Event.start_at.desc(), Event.id.desc())
                    .offset(offset)
                    .limit(limit)
                )
            ).all()
            items.extend(self.event_view(e, threshold) for e in events)

        remaining = limit - len(items)
        if remaining > 0:
            series_offset = max(0, offset - event_total)
            series_rows = (
                await self.db.scalars(
                    select(EventSeries)
                    .where(*series_filter)
                    .options(selectinload(EventSeries.shared_targets))
                    .order_by(EventSeries.first_occurrence_date.desc(), EventSeries.id.desc())
                    .offset(series_offset)
                    .limit(remaining)
                )
            ).all()
            exceptions = await self._exceptions_by_series([s.id for s in series_rows])
            for series in series_rows:
                items.append(self.occurrence_view(series, self.anchor_occurrence(series, exceptions.get(series.id, set())), threshold))

        return SearchPage(items=items, total=event_total + series_total, page=page, limit=limit)

    def anchor_occurrence(self, series: EventSeries, exceptions: Set[date]) -> Occurrence:
        """Next occurrence from today, else the first one."""
        today = utc_to_stored(self._now()).date()
        upcoming = expand(series, today, today + timedelta(days=400), exceptions)
        if upcoming:
            return upcoming[0]
        day = series.first_occurrence_date
        start_at, end_at = occurrence_times(series, day)
        return Occurrence(series.id, day, start_at, end_at)


__all__ = ["CalendarQueries", "MIN_SEARCH_LENGTH"]
