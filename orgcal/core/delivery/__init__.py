"""
Delivery channels for notifications.

• ``get_email_provider()`` / ``get_push_provider()`` return a channel by name,
  defaulting to ``settings.EMAIL_PROVIDER`` / ``settings.PUSH_PROVIDER``.

Providers are imported lazily so optional transports stay out of dev/CI.
"""
from __future__ import annotations

import importlib
from typing import Callable, Dict, Type

from orgcal.config import settings
from .base import BaseEmailProvider, BasePushProvider, SubscriptionGone  # noqa: F401


def _lazy(module_suffix: str, class_name: str) -> Callable[[], type]:
    def load() -> type:
        module = importlib.import_module(f"{__name__}{module_suffix}")
        return getattr(module, class_name)
    return load


_EMAIL_PROVIDERS: Dict[str, Callable[[], Type[BaseEmailProvider]]] = {
    "noop": _lazy(".noop", "NoopEmailProvider"),
}
_PUSH_PROVIDERS: Dict[str, Callable[[], Type[BasePushProvider]]] = {
    "noop": _lazy(".noop", "NoopPushProvider"),
}


def get_email_provider(name: str | None = None) -> BaseEmailProvider:
    key = (name or settings.EMAIL_PROVIDER).lower()
    try:
        provider_cls = _EMAIL_PROVIDERS[key]()
    except KeyError as exc:
        raise ValueError(f"Unknown email provider: {key}") from exc
    return provider_cls()


def get_push_provider(name: str | None = None) -> BasePushProvider:
    key = (name or settings.PUSH_PROVIDER).lower()
    try:
        provider_cls = _PUSH_PROVIDERS[key]()
    except KeyError as exc:
        raise ValueError(f"Unknown push provider: {key}") from exc
    return provider_cls()


__all__: list[str] = [
    "BaseEmailProvider",
    "BasePushProvider",
    "SubscriptionGone",
    "get_email_provider",
    "get_push_provider",
]
