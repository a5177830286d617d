# orgcal/core/live/broadcaster.py
"""
Live update broadcaster: open client sessions keyed by user.

Messages are cache-invalidation hints only. No visibility filtering happens here;
clients re-fetch through the scoped read path.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)


@dataclass(eq=False)
class LiveSession:
    id: int
    user_id: int
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop
    closed: bool = False
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def push(self, message: Dict[str, Any]) -> None:
        """Raises when the session cannot take the message (closed or backlog full)."""
        if self.closed:
            raise ConnectionError(f"session {self.id} is closed")
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self.queue.put_nowait(message)
            return
        if self.queue.full():
            raise asyncio.QueueFull(f"session {self.id} backlog is full")
        self.loop.call_soon_threadsafe(self._put_from_thread, message)

    def _put_from_thread(self, message: Dict[str, Any]) -> None:
        # another thread filled the queue between the check and this callback
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            log.warning("Live session %s overflowed, closing it", self.id)
            self.closed = True


class LiveBroadcaster:
    """Session registry, safe for concurrent register/unregister/broadcast."""

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._sessions: Dict[int, Dict[int, LiveSession]] = {}
        self._ids = itertools.count(1)

    def register(self, user_id: int) -> LiveSession:
        session = LiveSession(
            id=next(self._ids),
            user_id=user_id,
            queue=asyncio.Queue(maxsize=self._queue_size),
            loop=asyncio.get_running_loop(),
        )
        with self._lock:
            self._sessions.setdefault(user_id, {})[session.id] = session
        log.info("Live session %s opened for user %s", session.id, user_id)
        return session

    def unregister(self, session: LiveSession) -> None:
        session.closed = True
        with self._lock:
            user_sessions = self._sessions.get(session.user_id)
            if user_sessions is None:
                return
            user_sessions.pop(session.id, None)
            if not user_sessions:
                del self._sessions[session.user_id]
        log.info("Live session %s closed for user %s", session.id, session.user_id)

    def session_count(self, user_id: Optional[int] = None) -> int:
        with self._lock:
            if user_id is not None:
                return len(self._sessions.get(user_id, {}))
            return sum(len(s) for s in self._sessions.values())

    def _snapshot(self) -> List[LiveSession]:
        with self._lock:
            return [s for sessions in self._sessions.values() for s in sessions.values()]

    def broadcast(
        self,
        change_type: str,
        payload: Optional[Dict[str, Any]] = None,
        exclude_user: Optional[int] = None,
    ) -> int:
        """Write to every session but ``exclude_user``'s. Failing sessions are evicted."""
        message = {
            "type": change_type,
            "payload": payload or {},
            "at": datetime.now(timezone.utc).isoformat(),
        }
        delivered = 0
        for session in self._snapshot():
            if exclude_user is not None and session.user_id == exclude_user:
                continue
            try:
                session.push(message)
                delivered += 1
            except Exception as exc:
                log.warning("Evicting live session %s of user %s: %s", session.id, session.user_id, exc)
                self.unregister(session)
        log.debug("Broadcast %s to %d session(s)", change_type, delivered)
        return delivered


__all__ = ["LiveSession", "LiveBroadcaster"]
