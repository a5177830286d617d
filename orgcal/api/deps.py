# orgcal/api/deps.py
"""Shared FastAPI dependencies and the HTTP-edge parsing of entity ids."""

from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from orgcal.core.effects import EffectDispatcher
from orgcal.core.errors import ValidationFailed
from orgcal.core.calendar.refs import EntityRef, EventRef, OccurrenceRef
from orgcal.core.live.broadcaster import LiveBroadcaster
from orgcal.core.notifications.service import Deliver
from orgcal.core.reminders.queue import CeleryJobQueue, JobQueue

_COMPOSITE_ID = re.compile(r"^series-(\d+)-(\d{4}-\d{2}-\d{2})$")


def parse_entity_id(raw: str) -> EntityRef:
    """``"42"`` is a stored event, ``"series-7-2024-01-08"`` one occurrence of series 7."""
    if raw.isdigit():
        return EventRef(int(raw))
    match = _COMPOSITE_ID.match(raw)
    if match is None:
        raise ValidationFailed(f"Malformed event id {raw!r}", code="INVALID_ID")
    try:
        day = date.fromisoformat(match.group(2))
    except ValueError as exc:
        raise ValidationFailed(f"Malformed event id {raw!r}", code="INVALID_ID") from exc
    return OccurrenceRef(int(match.group(1)), day)


def ok(data: Any = None, **extra: Any) -> Dict[str, Any]:
    """Success envelope."""
    return {"success": True, "data": data, **extra}


# The process-wide collaborators live on app.state so tests can swap them.
def get_broadcaster(request: Request) -> LiveBroadcaster:
    return request.app.state.broadcaster


def get_job_queue(request: Request) -> JobQueue:
    return getattr(request.app.state, "job_queue", None) or CeleryJobQueue()


def get_deliver(request: Request) -> Optional[Deliver]:
    return getattr(request.app.state, "deliver", None)


def get_dispatcher(
    request: Request,
    queue: JobQueue = Depends(get_job_queue),
    deliver: Optional[Deliver] = Depends(get_deliver),
) -> EffectDispatcher:
    return EffectDispatcher(queue, request.app.state.publish, deliver=deliver)


__all__ = [
    "parse_entity_id", "ok", "get_broadcaster", "get_job_queue", "get_deliver", "get_dispatcher",
]
