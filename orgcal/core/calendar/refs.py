# orgcal/core/calendar/refs.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Union


@dataclass(frozen=True)
class EventRef:
    """A stored Event row."""

    event_id: int

    @property
    def composite_id(self) -> int:
        return self.event_id


@dataclass(frozen=True)
class OccurrenceRef:
    """One dated occurrence of a series, whether virtual or not yet expanded."""

    series_id: int
    occurrence_date: date

    @property
    def composite_id(self) -> str:
        return f"series-{self.series_id}-{self.occurrence_date.isoformat()}"


EntityRef = Union[EventRef, OccurrenceRef]

__all__ = ["EventRef", "OccurrenceRef", "EntityRef"]
