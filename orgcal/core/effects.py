# orgcal/core/effects.py
"""
Side effects of a calendar mutation.

Services return them next to the mutated entity instead of performing them;
:class:`EffectDispatcher` drains the list after the mutation has committed. A failing
effect is logged and the rest still run.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from orgcal.core.notifications.service import Deliver, NotificationService, NotifyContext
from orgcal.core.reminders.queue import JobQueue
from orgcal.core.reminders.service import ReminderService
from orgcal.db.base import async_session_context

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleEvent:
    event_id: int


@dataclass(frozen=True)
class ScheduleSeries:
    series_id: int


@dataclass(frozen=True)
class CancelReminders:
    prefix: str


@dataclass(frozen=True)
class Notify:
    type: str
    title: str
    message: str
    context: NotifyContext
    shares: tuple = ()


@dataclass(frozen=True)
class Broadcast:
    change_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    exclude_user: Optional[int] = None


Effect = Union[ScheduleEvent, ScheduleSeries, CancelReminders, Notify, Broadcast]


@dataclass
class MutationResult:
    entity: Any
    effects: List[Effect] = field(default_factory=list)


Publish = Callable[[str, Optional[Dict[str, Any]], Optional[int]], Any]


class EffectDispatcher:
    def __init__(self, queue: JobQueue, publish: Publish, deliver: Optional[Deliver] = None):
        self.queue = queue
        self.publish = publish
        self.deliver = deliver

    async def dispatch(self, effects: Sequence[Effect]) -> None:
        for effect in effects:
            try:
                await self._dispatch_one(effect)
            except Exception:
                log.exception("Side effect %r failed", effect)

    async def _dispatch_one(self, effect: Effect) -> None:
        if isinstance(effect, Broadcast):
            result = self.publish(effect.change_type, effect.payload, effect.exclude_user)
            if inspect.isawaitable(result):
                await result
            return

        if isinstance(effect, Notify):
            async with async_session_context() as session:
                notifier = NotificationService(session, deliver=self.deliver)
                created = await notifier.notify_with_shares(
                    effect.type, effect.title, effect.message, effect.context, effect.shares
                )
                ids = [row.id for row in created]
            notifier.deliver_all(ids)
            return

        async with async_session_context() as session:
            reminders = ReminderService(session, queue=self.queue, deliver=self.deliver)
            if isinstance(effect, CancelReminders):
                await reminders.cancel(effect.prefix)
            elif isinstance(effect, ScheduleEvent):
                await reminders.schedule_event_id(effect.event_id)
            elif isinstance(effect, ScheduleSeries):
                await reminders.schedule_series_id(effect.series_id)
            else:
                raise TypeError(f"Unknown effect: {effect!r}")
        reminders.flush_queue()


__all__ = [
    "ScheduleEvent", "ScheduleSeries", "CancelReminders", "Notify", "Broadcast",
    "Effect", "MutationResult", "EffectDispatcher",
]
