from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class Event:
    name: str
    event_type: str
    date_time: datetime
    location: str
    max_capacity: int
    financial_support: bool = False
    description: str = ""
    admin_id: Optional[str] = None
    id: str = ""
    created_at: Optional[datetime] = None

    def display_label(self) -> str:
        return f"{self.name} · {self.location} · {self.date_time:%d/%m/%Y %H:%M}"


# Columns an admin may change after creation.
EVENT_UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "event_type",
        "date_time",
        "location",
        "description",
        "max_capacity",
        "financial_support",
    }
)
