# orgcal/core/delivery/base.py
"""
Abstract delivery channels. Both are fire-and-forget from the caller's point of view:
the notification row is already committed when a channel is invoked.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict


class SubscriptionGone(Exception):
    """The push endpoint answered 404/410; the subscription should be pruned."""


class BaseEmailProvider(ABC):
    name: str

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        ...


class BasePushProvider(ABC):
    name: str

    @abstractmethod
    async def send(self, subscription: Dict[str, Any], payload: Dict[str, Any]) -> None:
        """
        Push ``payload`` to one browser subscription.

        Raises:
            SubscriptionGone: the endpoint no longer exists.
        """
        ...


__all__ = ["BaseEmailProvider", "BasePushProvider", "SubscriptionGone"]
