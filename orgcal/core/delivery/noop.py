# orgcal/core/delivery/noop.py

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Dict, Tuple

from .base import BaseEmailProvider, BasePushProvider

log = logging.getLogger(__name__)

# per-instance history, kept short so a long-lived worker does not grow
RECENT_LIMIT = 50


class NoopEmailProvider(BaseEmailProvider):
    """Logs mail instead of sending it (dev)."""

    name = "noop"

    def __init__(self) -> None:
        self.recent: Deque[Tuple[str, str, str]] = deque(maxlen=RECENT_LIMIT)

    async def send(self, to: str, subject: str, body: str) -> None:
        log.info("[noop email] to=%s subject=%s", to, subject)
        self.recent.append((to, subject, body))


class NoopPushProvider(BasePushProvider):
    name = "noop"

    def __init__(self) -> None:
        self.recent: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=RECENT_LIMIT)

    async def send(self, subscription: Dict[str, Any], payload: Dict[str, Any]) -> None:
        log.info("[noop push] endpoint=%s title=%s", subscription.get("endpoint"), payload.get("title"))
        self.recent.append((subscription.get("endpoint", ""), payload))
