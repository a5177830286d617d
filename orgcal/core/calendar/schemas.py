# orgcal/core/calendar/schemas.py

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, serializes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- input ---
class SharedTargetIn(CamelModel):
    office_id: int
    department_id: Optional[int] = None
    positions: List[str] = Field(default_factory=list)


class RecurrenceIn(CamelModel):
    type: Literal["day", "week", "month"]
    interval: int = 1
    end_date: Optional[date] = None


class EventCreate(CamelModel):
    title: str = Field(..., max_length=200)
    content: Optional[str] = None
    start_at: datetime
    end_at: datetime
    priority: Optional[str] = None
    alert: str = "none"
    recurrence: Optional[RecurrenceIn] = None
    shared_targets: List[SharedTargetIn] = Field(default_factory=list)


class EventUpdate(CamelModel):
    title: Optional[str] = Field(None, max_length=200)
    content: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    priority: Optional[str] = None
    alert: Optional[str] = None
    # on a one-off event, converts it into a series
    recurrence: Optional[RecurrenceIn] = None
    # None leaves the shares untouched, [] clears them
    shared_targets: Optional[List[SharedTargetIn]] = None
    mode: Literal["this", "all"] = "this"


# --- output ---
class SharedTargetOut(CamelModel):
    office_id: int
    department_id: Optional[int] = None
    positions: List[str] = Field(default_factory=list)


class RecurrenceOut(CamelModel):
    type: str
    interval: int
    end_date: Optional[date] = None


class EventOut(CamelModel):
    id: Union[int, str]
    title: str
    content: Optional[str] = None
    start_at: datetime
    end_at: datetime
    status: str
    is_overdue: bool = False
    is_due_soon: bool = False
    completed_at: Optional[datetime] = None
    priority: Optional[str] = None
    alert: Optional[str] = None
    creator_id: int
    department_id: Optional[int] = None
    office_id: Optional[int] = None
    division_id: Optional[int] = None
    series_id: Optional[int] = None
    occurrence_date: Optional[date] = None
    is_recurring: bool = False
    is_generated: bool = False
    is_exception: bool = False
    original_series_id: Optional[int] = None
    recurrence: Optional[RecurrenceOut] = None
    shared_targets: List[SharedTargetOut] = Field(default_factory=list)
    can_edit: bool = False


class SearchPage(CamelModel):
    items: List[EventOut]
    total: int
    page: int
    limit: int


__all__ = [
    "CamelModel", "SharedTargetIn", "RecurrenceIn", "EventCreate", "EventUpdate",
    "SharedTargetOut", "RecurrenceOut", "EventOut", "SearchPage",
]
