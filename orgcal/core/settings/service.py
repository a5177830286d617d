# orgcal/core/settings/service.py

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.core.errors import ValidationFailed
from orgcal.core.notifications import models as n
from orgcal.core.settings.models import SystemSetting

log = logging.getLogger(__name__)

# time keys accepted by reminder_times / due_soon_threshold
TIME_KEYS: Dict[str, int] = {
    "30min": 30,
    "1hour": 60,
    "3hour": 180,
}

NOTIFICATION_SCOPES = (
    "creator",
    "target",
    "department",
    "office",
    "dept_leads",
    "dept_lead_department",
    "dept_lead_office",
    "dept_lead_division",
    "shared_offices",
    "admins",
)

DEFAULTS: Dict[str, Any] = {
    "reminder_times": ["1hour"],
    "due_soon_threshold": ["1hour"],
    "overdue_enabled": True,
    "email_enabled": False,
    "notification_config": {
        n.EVENT_REMINDER: {"enabled": True, "scope": "creator"},
        n.EVENT_DUE_SOON: {"enabled": True, "scope": "creator"},
        n.EVENT_OVERDUE: {"enabled": True, "scope": "creator"},
        n.EVENT_UPDATED: {"enabled": True, "scope": "department"},
        n.EVENT_COMPLETED: {"enabled": True, "scope": "department"},
        n.EVENT_DELETED: {"enabled": True, "scope": "department"},
        n.EVENT_SHARED: {"enabled": True, "scope": "shared_offices"},
    },
}

# changing any of these invalidates already scheduled reminder jobs
REMINDER_KEYS = frozenset({"reminder_times", "due_soon_threshold", "overdue_enabled"})


def _time_keys_to_minutes(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    return sorted({TIME_KEYS[k] for k in value if k in TIME_KEYS})


def _validate(key: str, value: Any) -> None:
    if key not in DEFAULTS:
        raise ValidationFailed(f"Unknown setting: {key}", code="UNKNOWN_SETTING")
    if key in ("reminder_times", "due_soon_threshold"):
        if not isinstance(value, list) or any(v not in TIME_KEYS for v in value):
            raise ValidationFailed(f"{key} must be a list of {sorted(TIME_KEYS)}")
    elif key in ("overdue_enabled", "email_enabled"):
        if not isinstance(value, bool):
            raise ValidationFailed(f"{key} must be a boolean")
    elif key == "notification_config":
        if not isinstance(value, dict):
            raise ValidationFailed("notification_config must be an object")
        for type_, entry in value.items():
            if not isinstance(entry, dict):
                raise ValidationFailed(f"notification_config.{type_} must be an object")
            scope = entry.get("scope")
            if scope is not None and scope not in NOTIFICATION_SCOPES:
                raise ValidationFailed(f"Unknown notification scope: {scope}")


class SettingsService:
    """Reads product settings with code defaults; admin writes go through :meth:`update`."""

    def __init__(self, db_session: AsyncSession):
        self.db: AsyncSession = db_session
        self._cache: Optional[Dict[str, Any]] = None

    async def all(self) -> Dict[str, Any]:
        if self._cache is None:
            values = copy.deepcopy(DEFAULTS)
            rows = (await self.db.scalars(select(SystemSetting))).all()
            for row in rows:
                if row.key in values and row.value is not None:
                    values[row.key] = row.value
            self._cache = values
        return self._cache

    async def get(self, key: str) -> Any:
        return (await self.all()).get(key, DEFAULTS.get(key))

    async def reminder_offsets(self) -> List[int]:
        return _time_keys_to_minutes(await self.get("reminder_times"))

    async def due_soon_offsets(self) -> List[int]:
        return _time_keys_to_minutes(await self.get("due_soon_threshold"))

    async def due_soon_threshold_minutes(self) -> int:
        """Badge threshold: the widest configured due-soon offset, 0 when none."""
        offsets = await self.due_soon_offsets()
        return max(offsets) if offsets else 0

    async def overdue_enabled(self) -> bool:
        return bool(await self.get("overdue_enabled"))

    async def email_enabled(self) -> bool:
        value = await self.get("email_enabled")
        return value is True or value == "true"

    async def notification_config(self, type_: str) -> Dict[str, Any]:
        config = await self.get("notification_config") or {}
        merged = dict(DEFAULTS["notification_config"].get(type_, {"enabled": False, "scope": "creator"}))
        merged.update(config.get(type_) or {})
        return merged

    async def update(self, values: Dict[str, Any], updated_by: Optional[int] = None) -> set[str]:
        """Upsert settings. Returns the keys whose value actually changed."""
        current = await self.all()
        changed: set[str] = set()
        for key, value in values.items():
            _validate(key, value)
            if current.get(key) == value:
                continue
            row = await self.db.get(SystemSetting, key)
            if row is None:
                row = SystemSetting(key=key, value=value, updated_by=updated_by)
                self.db.add(row)
            else:
                row.value = value
                row.updated_by = updated_by
            changed.add(key)
        await self.db.flush()
        self._cache = None
        log.info("Updated settings: %s", sorted(changed) or "none")
        return changed
