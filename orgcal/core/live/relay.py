# orgcal/core/live/relay.py
"""
Cross-process relay for change notices.

Celery workers and every API process publish to one Redis channel; each API process
runs :func:`listen` and replays what it receives into its local broadcaster.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import redis
import redis.asyncio as aioredis

from orgcal.config import settings
from orgcal.core.live.broadcaster import LiveBroadcaster

log = logging.getLogger(__name__)


def _encode(change_type: str, payload: Optional[Dict[str, Any]], exclude_user: Optional[int]) -> str:
    return json.dumps({"type": change_type, "payload": payload or {}, "excludeUser": exclude_user})


def publish_sync(change_type: str, payload: Optional[Dict[str, Any]] = None, exclude_user: Optional[int] = None) -> None:
    """Publish from synchronous code (Celery tasks)."""
    client = redis.Redis.from_url(settings.REDIS_URL)
    try:
        client.publish(settings.LIVE_CHANNEL, _encode(change_type, payload, exclude_user))
    finally:
        client.close()


class RedisRelay:
    """Publisher for the API process plus the listener that feeds its broadcaster."""

    def __init__(self, broadcaster: LiveBroadcaster, url: Optional[str] = None, channel: Optional[str] = None):
        self.broadcaster = broadcaster
        self.channel = channel or settings.LIVE_CHANNEL
        self._client = aioredis.from_url(url or settings.REDIS_URL)
        self._task: Optional[asyncio.Task] = None

    async def publish(self, change_type: str, payload: Optional[Dict[str, Any]] = None, exclude_user: Optional[int] = None) -> None:
        await self._client.publish(self.channel, _encode(change_type, payload, exclude_user))

    async def _listen(self) -> None:
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self.channel)
        log.info("Live relay subscribed to %s", self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    data = json.loads(message["data"])
                    self.broadcaster.broadcast(data["type"], data.get("payload"), data.get("excludeUser"))
                except (ValueError, KeyError):
                    log.warning("Dropping malformed relay message: %r", message.get("data"))
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._listen(), name="live-relay")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._client.aclose()


__all__ = ["RedisRelay", "publish_sync"]
