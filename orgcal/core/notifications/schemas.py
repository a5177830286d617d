# orgcal/core/notifications/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from orgcal.core.calendar.schemas import CamelModel


class NotificationOut(CamelModel):
    id: int
    type: str
    title: str
    message: str
    related_event_id: Optional[int] = None
    # the ORM attribute is ``meta`` because declarative classes reserve "metadata"
    meta: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
