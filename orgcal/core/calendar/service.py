# orgcal/core/calendar/service.py

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.core.auth.actor import Actor
from orgcal.core.auth.scope import ShareRule
from orgcal.core.calendar.models import (
    RECURRENCE_UNITS,
    STATUS_DONE,
    STATUS_PENDING,
    Event,
    EventException,
    EventSeries,
    SharedTarget,
    SharedTargetPosition,
)
from orgcal.core.calendar.queries import CalendarQueries
from orgcal.core.calendar.recurrence import Occurrence, occurrence_times
from orgcal.core.calendar.refs import EntityRef, EventRef, OccurrenceRef
from orgcal.core.calendar.schemas import EventCreate, EventUpdate, RecurrenceIn, SharedTargetIn
from orgcal.core.effects import (
    Broadcast,
    CancelReminders,
    Effect,
    MutationResult,
    Notify,
    ScheduleEvent,
    ScheduleSeries,
)
from orgcal.core.errors import ValidationFailed, map_integrity_error
from orgcal.core.notifications import models as n
from orgcal.core.notifications.service import NotifyContext
from orgcal.core.reminders.triggers import entity_prefix, series_prefix
from orgcal.core.timeutils import utc_now, utc_to_stored

log = logging.getLogger(__name__)

# live change types
CHANGE_CREATED = "event_created"
CHANGE_UPDATED = "event_updated"
CHANGE_DELETED = "event_deleted"
CHANGE_COMPLETED = "event_completed"
CHANGE_UNCOMPLETED = "event_uncompleted"

Entity = Union[Event, EventSeries]


def to_stored(value: datetime) -> datetime:
    """Client timestamps: aware values are converted, naive ones are already wall-clock."""
    if value.tzinfo is not None:
        return utc_to_stored(value.astimezone(timezone.utc))
    return value.replace(microsecond=0)


def _check_range(start_at: datetime, end_at: datetime) -> None:
    if end_at <= start_at:
        raise ValidationFailed("End time must be after start time.", code="INVALID_TIME_RANGE")


def _check_recurrence(recurrence: RecurrenceIn, first: date) -> None:
    if recurrence.type not in RECURRENCE_UNITS:
        raise ValidationFailed(f"Unknown recurrence type {recurrence.type!r}", code="INVALID_RECURRENCE")
    if recurrence.interval < 1:
        raise ValidationFailed("Recurrence interval must be at least 1", code="INVALID_RECURRENCE")
    if recurrence.end_date is not None and recurrence.end_date < first:
        raise ValidationFailed("Recurrence end date is before the first occurrence", code="INVALID_RECURRENCE")


def _check_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("Title is required", code="TITLE_REQUIRED")
    return title


def _build_targets(items: Iterable[SharedTargetIn]) -> List[SharedTarget]:
    targets: List[SharedTarget] = []
    seen = set()
    for item in items:
        positions = tuple(dict.fromkeys(p.strip() for p in item.positions if p and p.strip()))
        key = (item.office_id, item.department_id, positions)
        if key in seen:
            continue
        seen.add(key)
        targets.append(
            SharedTarget(
                office_id=item.office_id,
                department_id=item.department_id,
                positions=[SharedTargetPosition(position=p) for p in positions],
            )
        )
    return targets


def _share_rules(targets: Iterable) -> tuple:
    return tuple(
        ShareRule(t.office_id, t.department_id, tuple(t.position_labels)) for t in targets
    )


def _office_ids(targets: Iterable) -> set:
    return {t.office_id for t in targets}


class CalendarService:
    """
    Write path for events and series.

    Every operation returns a :class:`MutationResult`: the entity view plus the effects
    (reminder scheduling, notifications, live broadcast) that the caller dispatches after
    committing. Nothing here talks to the queue or the broadcaster directly.
    """

    def __init__(self, db_session: AsyncSession, actor: Actor, now: Callable[[], datetime] = utc_now):
        self.db: AsyncSession = db_session
        self.actor = actor
        self._now = now
        self.queries = CalendarQueries(db_session, actor, now=now)

    def _stamp(self) -> datetime:
        return utc_to_stored(self._now())

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise map_integrity_error(exc) from exc

    # ------------------------------------------------------------------ #
    #                           effect builders                           #
    # ------------------------------------------------------------------ #
    def _context(self, entity: Entity, related: bool = True, **extra: Any) -> NotifyContext:
        return NotifyContext(
            actor_id=self.actor.id,
            creator_id=entity.creator_id,
            department_id=entity.department_id,
            office_id=entity.office_id,
            division_id=entity.division_id,
            related_event_id=entity.id if related and isinstance(entity, Event) else None,
            **extra,
        )

    def _notify(self, type_: str, title: str, message: str, entity: Entity, related: bool = True, metadata=None) -> Notify:
        return Notify(
            type=type_,
            title=title,
            message=message,
            context=self._context(entity, related=related, metadata=metadata),
            shares=_share_rules(entity.shared_targets),
        )

    def _shared_notice(self, entity: Entity, office_ids: Iterable[int], composite_id) -> Optional[Notify]:
        office_ids = tuple(sorted(office_ids))
        if not office_ids:
            return None
        who = self.actor.name or "A colleague"
        return Notify(
            type=n.EVENT_SHARED,
            title="Event shared with you",
            message=f'{who} shared "{entity.title}".',
            context=self._context(entity, shared_office_ids=office_ids, metadata={"eventId": composite_id}),
        )

    def _broadcast(self, change_type: str, composite_id, **payload: Any) -> Broadcast:
        return Broadcast(change_type, {"id": composite_id, **payload}, exclude_user=self.actor.id)

    async def _view(self, entity: Entity, occurrence: Optional[Occurrence] = None):
        threshold = await self.queries.due_soon_threshold()
        if isinstance(entity, Event):
            return self.queries.event_view(entity, threshold)
        if occurrence is None:
            occurrence = self.queries.anchor_occurrence(entity, set())
        return self.queries.occurrence_view(entity, occurrence, threshold)

    # ------------------------------------------------------------------ #
    #                                create                               #
    # ------------------------------------------------------------------ #
    def _placement(self) -> Dict[str, Optional[int]]:
        return {
            "creator_id": self.actor.id,
            "department_id": self.actor.department_id,
            "office_id": self.actor.office_id,
            "division_id": self.actor.division_id,
        }

    @staticmethod
    def _series_times(start_at: datetime, end_at: datetime) -> Dict[str, Any]:
        return {
            "start_time": start_at.time(),
            "end_time": end_at.time(),
            "duration_days": (end_at.date() - start_at.date()).days,
        }

    async def create(self, data: EventCreate) -> MutationResult:
        title = _check_title(data.title)
        start_at, end_at = to_stored(data.start_at), to_stored(data.end_at)
        _check_range(start_at, end_at)
        targets = _build_targets(data.shared_targets)

        if data.recurrence is not None:
            _check_recurrence(data.recurrence, start_at.date())
            entity: Entity = EventSeries(
                title=title,
                content=data.content,
                recurrence_type=data.recurrence.type,
                recurrence_interval=data.recurrence.interval,
                recurrence_end_date=data.recurrence.end_date,
                first_occurrence_date=start_at.date(),
                status=STATUS_PENDING,
                alert=data.alert,
                priority=data.priority,
                shared_targets=targets,
                **self._series_times(start_at, end_at),
                **self._placement(),
            )
        else:
            entity = Event(
                title=title,
                content=data.content,
                start_at=start_at,
                end_at=end_at,
                status=STATUS_PENDING,
                alert=data.alert,
                priority=data.priority,
                shared_targets=targets,
                **self._placement(),
            )
        self.db.add(entity)
        await self._flush()

        if isinstance(entity, EventSeries):
            first = Occurrence(entity.id, entity.first_occurrence_date, *occurrence_times(entity, entity.first_occurrence_date))
            view = await self._view(entity, first)
            effects: List[Effect] = [ScheduleSeries(entity.id)]
        else:
            view = await self._view(entity)
            effects = [ScheduleEvent(entity.id)]
        shared = self._shared_notice(entity, _office_ids(targets), view.id)
        if shared is not None:
            effects.append(shared)
        effects.append(self._broadcast(CHANGE_CREATED, view.id))
        log.info("User %s created %s %s", self.actor.id, type(entity).__name__, entity.id)
        return MutationResult(view, effects)

    # ------------------------------------------------------------------ #
    #                                update                               #
    # ------------------------------------------------------------------ #
    def _replace_targets(self, entity: Entity, items: Optional[Sequence[SharedTargetIn]]) -> set:
        """Swap the shared targets. Returns the offices that were not shared before."""
        if items is None:
            return set()
        before = _office_ids(entity.shared_targets)
        entity.shared_targets = _build_targets(items)
        return _office_ids(entity.shared_targets) - before

    @staticmethod
    def _apply_text(entity: Entity, data: EventUpdate) -> None:
        if data.title is not None:
            entity.title = _check_title(data.title)
        for name in ("content", "priority"):
            if name in data.model_fields_set:
                setattr(entity, name, getattr(data, name))
        if data.alert is not None:
            entity.alert = data.alert

    async def update(self, ref: EntityRef, data: EventUpdate) -> MutationResult:
        if isinstance(ref, EventRef):
            event = await self.queries.get_event(ref.event_id, for_edit=True)
            if data.recurrence is not None:
                return await self._convert_to_series(event, data)
            return await self._update_event(event, data)
        if data.mode == "all":
            return await self._update_series(ref, data)
        return await self._update_occurrence(ref, data)

    async def _update_event(self, event: Event, data: EventUpdate) -> MutationResult:
        self._apply_text(event, data)
        start_at = to_stored(data.start_at) if data.start_at is not None else event.start_at
        end_at = to_stored(data.end_at) if data.end_at is not None else event.end_at
        _check_range(start_at, end_at)
        moved = (start_at, end_at) != (event.start_at, event.end_at)
        event.start_at, event.end_at = start_at, end_at
        added = self._replace_targets(event, data.shared_targets)
        await self._flush()

        effects: List[Effect] = []
        if moved:
            effects += [CancelReminders(entity_prefix(EventRef(event.id))), ScheduleEvent(event.id)]
        view = await self._view(event)
        effects.append(self._notify(n.EVENT_UPDATED, "Event updated", f'"{event.title}" was updated.', event))
        shared = self._shared_notice(event, added, view.id)
        if shared is not None:
            effects.append(shared)
        effects.append(self._broadcast(CHANGE_UPDATED, view.id))
        return MutationResult(view, effects)

    async def _convert_to_series(self, event: Event, data: EventUpdate) -> MutationResult:
        start_at = to_stored(data.start_at) if data.start_at is not None else event.start_at
        end_at = to_stored(data.end_at) if data.end_at is not None else event.end_at
        _check_range(start_at, end_at)
        _check_recurrence(data.recurrence, start_at.date())
        items = data.shared_targets
        if items is None:
            items = [
                SharedTargetIn(office_id=t.office_id, department_id=t.department_id, positions=t.position_labels)
                for t in event.shared_targets
            ]
        series = EventSeries(
            title=_check_title(data.title) if data.title is not None else event.title,
            content=data.content if "content" in data.model_fields_set else event.content,
            priority=data.priority if "priority" in data.model_fields_set else event.priority,
            alert=data.alert if data.alert is not None else event.alert,
            recurrence_type=data.recurrence.type,
            recurrence_interval=data.recurrence.interval,
            recurrence_end_date=data.recurrence.end_date,
            first_occurrence_date=start_at.date(),
            status=STATUS_PENDING,
            creator_id=event.creator_id,
            department_id=event.department_id,
            office_id=event.office_id,
            division_id=event.division_id,
            shared_targets=_build_targets(items),
            **self._series_times(start_at, end_at),
        )
        before = _office_ids(event.shared_targets)
        old_id = event.id
        self.db.add(series)
        await self.db.delete(event)
        await self._flush()

        first = Occurrence(series.id, series.first_occurrence_date, *occurrence_times(series, series.first_occurrence_date))
        view = await self._view(series, first)
        effects: List[Effect] = [
            CancelReminders(entity_prefix(EventRef(old_id))),
            ScheduleSeries(series.id),
            self._notify(n.EVENT_UPDATED, "Event updated", f'"{series.title}" now repeats.', series),
        ]
        shared = self._shared_notice(series, _office_ids(series.shared_targets) - before, view.id)
        if shared is not None:
            effects.append(shared)
        effects += [self._broadcast(CHANGE_DELETED, old_id), self._broadcast(CHANGE_CREATED, view.id)]
        log.info("Event %s converted into series %s", old_id, series.id)
        return MutationResult(view, effects)

    async def _update_series(self, ref: OccurrenceRef, data: EventUpdate) -> MutationResult:
        """Edit every occurrence: the template changes, the anchor date stays."""
        series, occurrence = await self.queries.get_occurrence(ref, for_edit=True)
        self._apply_text(series, data)
        start_at = to_stored(data.start_at) if data.start_at is not None else occurrence.start_at
        end_at = to_stored(data.end_at) if data.end_at is not None else occurrence.end_at
        _check_range(start_at, end_at)
        times = self._series_times(start_at, end_at)
        moved = any(getattr(series, k) != v for k, v in times.items())
        for key, value in times.items():
            setattr(series, key, value)
        if data.recurrence is not None:
            _check_recurrence(data.recurrence, series.first_occurrence_date)
            rule = (data.recurrence.type, data.recurrence.interval, data.recurrence.end_date)
            if rule != (series.recurrence_type, series.recurrence_interval, series.recurrence_end_date):
                moved = True
            series.recurrence_type, series.recurrence_interval, series.recurrence_end_date = rule
        added = self._replace_targets(series, data.shared_targets)
        await self._flush()

        effects: List[Effect] = []
        if moved:
            effects += [CancelReminders(series_prefix(series.id)), ScheduleSeries(series.id)]
        new_times = occurrence_times(series, ref.occurrence_date)
        view = await self._view(series, Occurrence(series.id, ref.occurrence_date, *new_times))
        effects.append(self._notify(n.EVENT_UPDATED, "Event updated", f'"{series.title}" was updated.', series))
        shared = self._shared_notice(series, added, view.id)
        if shared is not None:
            effects.append(shared)
        effects.append(self._broadcast(CHANGE_UPDATED, view.id, seriesId=series.id))
        return MutationResult(view, effects)

    async def _update_occurrence(self, ref: OccurrenceRef, data: EventUpdate) -> MutationResult:
        """Edit one date: materialize a standalone exception event and hide the virtual one."""
        series, occurrence = await self.queries.get_occurrence(ref, for_edit=True)
        start_at = to_stored(data.start_at) if data.start_at is not None else occurrence.start_at
        end_at = to_stored(data.end_at) if data.end_at is not None else occurrence.end_at
        _check_range(start_at, end_at)
        items = data.shared_targets
        if items is None:
            items = [
                SharedTargetIn(office_id=t.office_id, department_id=t.department_id, positions=t.position_labels)
                for t in series.shared_targets
            ]
        event = Event(
            title=_check_title(data.title) if data.title is not None else series.title,
            content=data.content if "content" in data.model_fields_set else series.content,
            priority=data.priority if "priority" in data.model_fields_set else series.priority,
            alert=data.alert if data.alert is not None else series.alert,
            start_at=start_at,
            end_at=end_at,
            status=STATUS_PENDING,
            creator_id=series.creator_id,
            department_id=series.department_id,
            office_id=series.office_id,
            division_id=series.division_id,
            occurrence_date=ref.occurrence_date,
            is_exception=True,
            original_series_id=series.id,
            shared_targets=_build_targets(items),
        )
        # one transaction: the exception and its replacement land together or not at all
        self.db.add(EventException(series_id=series.id, exception_date=ref.occurrence_date))
        self.db.add(event)
        await self._flush()

        view = await self._view(event)
        effects: List[Effect] = [
            CancelReminders(entity_prefix(ref)),
            ScheduleEvent(event.id),
            self._notify(n.EVENT_UPDATED, "Event updated", f'"{event.title}" on {ref.occurrence_date} was updated.', event),
        ]
        shared = self._shared_notice(event, _office_ids(event.shared_targets) - _office_ids(series.shared_targets), view.id)
        if shared is not None:
            effects.append(shared)
        effects += [self._broadcast(CHANGE_DELETED, ref.composite_id), self._broadcast(CHANGE_CREATED, view.id)]
        return MutationResult(view, effects)

    # ------------------------------------------------------------------ #
    #                                delete                               #
    # ------------------------------------------------------------------ #
    async def delete(self, ref: EntityRef, mode: str = "single") -> MutationResult:
        if mode not in ("single", "series"):
            raise ValidationFailed(f"Unknown delete mode {mode!r}")
        if isinstance(ref, EventRef):
            event = await self.queries.get_event(ref.event_id, for_edit=True)
            if mode == "series" and event.series_id is not None:
                return await self._delete_series(await self.queries.get_series(event.series_id, for_edit=True))
            return await self._delete_event(event)
        if mode == "series":
            return await self._delete_series(await self.queries.get_series(ref.series_id, for_edit=True))
        series, _ = await self.queries.get_occurrence(ref, for_edit=True)
        self.db.add(EventException(series_id=series.id, exception_date=ref.occurrence_date))
        await self._flush()
        effects: List[Effect] = [
            CancelReminders(entity_prefix(ref)),
            self._notify(
                n.EVENT_DELETED, "Event deleted", f'"{series.title}" on {ref.occurrence_date} was cancelled.', series
            ),
            self._broadcast(CHANGE_DELETED, ref.composite_id, seriesId=series.id),
        ]
        log.info("User %s removed %s", self.actor.id, ref.composite_id)
        return MutationResult({"id": ref.composite_id}, effects)

    async def _delete_event(self, event: Event) -> MutationResult:
        notice = self._notify(n.EVENT_DELETED, "Event deleted", f'"{event.title}" was deleted.', event, related=False)
        event_id = event.id
        await self.db.delete(event)
        await self._flush()
        log.info("User %s deleted event %s", self.actor.id, event_id)
        return MutationResult(
            {"id": event_id},
            [CancelReminders(entity_prefix(EventRef(event_id))), notice, self._broadcast(CHANGE_DELETED, event_id)],
        )

    async def _delete_series(self, series: EventSeries) -> MutationResult:
        notice = self._notify(n.EVENT_DELETED, "Event deleted", f'All of "{series.title}" was deleted.', series)
        series_id = series.id
        # materialized occurrences cascade, standalone exception events survive
        await self.db.delete(series)
        await self._flush()
        log.info("User %s deleted series %s", self.actor.id, series_id)
        return MutationResult(
            {"seriesId": series_id},
            [CancelReminders(series_prefix(series_id)), notice, self._broadcast(CHANGE_DELETED, None, seriesId=series_id)],
        )

    # ------------------------------------------------------------------ #
    #                         complete / uncomplete                       #
    # ------------------------------------------------------------------ #
    async def complete(self, ref: EntityRef, mode: str = "one") -> MutationResult:
        if mode not in ("one", "all"):
            raise ValidationFailed(f"Unknown complete mode {mode!r}")
        if isinstance(ref, EventRef):
            event = await self.queries.get_event(ref.event_id, for_edit=True)
            if mode == "all" and event.series_id is not None:
                return await self._complete_series(await self.queries.get_series(event.series_id, for_edit=True))
            return await self._complete_event(event)
        if mode == "all":
            return await self._complete_series(await self.queries.get_series(ref.series_id, for_edit=True))
        return await self._complete_occurrence(ref)

    def _completed_effects(self, entity: Entity, prefix: str, composite_id, **payload: Any) -> List[Effect]:
        return [
            CancelReminders(prefix),
            self._notify(n.EVENT_COMPLETED, "Event completed", f'"{entity.title}" was marked done.', entity),
            self._broadcast(CHANGE_COMPLETED, composite_id, **payload),
        ]

    async def _complete_event(self, event: Event) -> MutationResult:
        if event.status == STATUS_DONE:
            return MutationResult(await self._view(event), [])
        event.status = STATUS_DONE
        event.completed_at = self._stamp()
        await self._flush()
        view = await self._view(event)
        return MutationResult(view, self._completed_effects(event, entity_prefix(EventRef(event.id)), view.id))

    async def _complete_occurrence(self, ref: OccurrenceRef) -> MutationResult:
        """Materialize the date as a DONE row; the exception hides the virtual occurrence."""
        series, occurrence = await self.queries.get_occurrence(ref, for_edit=True)
        if series.status == STATUS_DONE:
            return MutationResult(await self._view(series, occurrence), [])
        event = Event(
            title=series.title,
            content=series.content,
            priority=series.priority,
            alert=series.alert,
            start_at=occurrence.start_at,
            end_at=occurrence.end_at,
            status=STATUS_DONE,
            completed_at=self._stamp(),
            creator_id=series.creator_id,
            department_id=series.department_id,
            office_id=series.office_id,
            division_id=series.division_id,
            series_id=series.id,
            occurrence_date=ref.occurrence_date,
            shared_targets=[],
        )
        self.db.add(EventException(series_id=series.id, exception_date=ref.occurrence_date))
        self.db.add(event)
        await self._flush()
        view = await self._view(event)
        effects = self._completed_effects(series, entity_prefix(ref), view.id, replaces=ref.composite_id)
        return MutationResult(view, effects)

    async def _complete_series(self, series: EventSeries) -> MutationResult:
        if series.status != STATUS_DONE:
            stamp = self._stamp()
            series.status = STATUS_DONE
            series.completed_at = stamp
            await self.db.execute(
                update(Event)
                .where(Event.series_id == series.id, Event.status != STATUS_DONE)
                .values(status=STATUS_DONE, completed_at=stamp)
                .execution_options(synchronize_session="fetch")
            )
            await self._flush()
            effects = self._completed_effects(series, series_prefix(series.id), None, seriesId=series.id)
        else:
            effects = []
        return MutationResult(await self._view(series), effects)

    async def uncomplete(self, ref: EntityRef) -> MutationResult:
        if isinstance(ref, OccurrenceRef):
            series = await self.queries.get_series(ref.series_id, for_edit=True)
            return await self._uncomplete_series(series)
        event = await self.queries.get_event(ref.event_id, for_edit=True)
        if event.status != STATUS_DONE:
            return MutationResult(await self._view(event), [])
        if event.series_id is not None and not event.is_exception:
            series = await self.queries.get_series(event.series_id, for_edit=True)
            if series.status == STATUS_DONE:
                return await self._uncomplete_series(series)
            return await self._restore_occurrence(event, series)
        event.status = STATUS_PENDING
        event.completed_at = None
        await self._flush()
        view = await self._view(event)
        return MutationResult(
            view,
            [ScheduleEvent(event.id), self._broadcast(CHANGE_UNCOMPLETED, view.id)],
        )

    async def _restore_occurrence(self, event: Event, series: EventSeries) -> MutationResult:
        """Drop a completed materialized row so the virtual occurrence shows again."""
        day = event.occurrence_date
        await self.db.execute(
            delete(EventException).where(EventException.series_id == series.id, EventException.exception_date == day)
        )
        event_id = event.id
        await self.db.delete(event)
        await self._flush()
        ref = OccurrenceRef(series.id, day)
        occurrence = Occurrence(series.id, day, *occurrence_times(series, day))
        view = await self._view(series, occurrence)
        return MutationResult(
            view,
            [
                CancelReminders(entity_prefix(EventRef(event_id))),
                ScheduleSeries(series.id),
                self._broadcast(CHANGE_DELETED, event_id),
                self._broadcast(CHANGE_UNCOMPLETED, ref.composite_id, seriesId=series.id),
            ],
        )

    async def _uncomplete_series(self, series: EventSeries) -> MutationResult:
        """Reopen the series and the rows the series-wide completion back-filled."""
        if series.status != STATUS_DONE:
            return MutationResult(await self._view(series), [])
        stamp = series.completed_at
        reverted = (
            await self.db.scalars(
                select(Event.id).where(
                    Event.series_id == series.id,
                    Event.status == STATUS_DONE,
                    Event.completed_at == stamp,
                )
            )
        ).all()
        if reverted:
            await self.db.execute(
                update(Event)
                .where(Event.id.in_(reverted))
                .values(status=STATUS_PENDING, completed_at=None)
                .execution_options(synchronize_session="fetch")
            )
        series.status = STATUS_PENDING
        series.completed_at = None
        await self._flush()
        effects: List[Effect] = [ScheduleSeries(series.id)]
        effects += [ScheduleEvent(event_id) for event_id in reverted]
        effects.append(self._broadcast(CHANGE_UNCOMPLETED, None, seriesId=series.id))
        return MutationResult(await self._view(series), effects)


__all__ = ["CalendarService", "to_stored"]
