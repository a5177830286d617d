# orgcal/api/v1/live.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from orgcal.api.deps import get_broadcaster
from orgcal.config import settings
from orgcal.core.auth.actor import Actor
from orgcal.core.auth.security import get_current_actor
from orgcal.core.live.broadcaster import LiveBroadcaster, LiveSession

router = APIRouter(prefix="/v1/live", tags=["Live"])
log = logging.getLogger(__name__)


def _frame(message: dict) -> str:
    return f"event: {message['type']}\ndata: {json.dumps(message)}\n\n"


async def _stream(request: Request, broadcaster: LiveBroadcaster, session: LiveSession) -> AsyncIterator[str]:
    try:
        yield _frame({"type": "connected", "payload": {"sessionId": session.id}})
        while not session.closed:
            if await request.is_disconnected():
                break
            try:
                message = await asyncio.wait_for(session.queue.get(), timeout=settings.LIVE_HEARTBEAT_SECONDS)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            yield _frame(message)
    finally:
        broadcaster.unregister(session)


@router.get("/events", summary="Server-sent change notices")
async def live_events(
    request: Request,
    actor: Actor = Depends(get_current_actor),
    broadcaster: LiveBroadcaster = Depends(get_broadcaster),
) -> StreamingResponse:
    session = broadcaster.register(actor.id)
    return StreamingResponse(
        _stream(request, broadcaster, session),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
