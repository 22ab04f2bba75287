from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class Attendance:
    """A check-in fact. Attendee fields are a snapshot taken at scan time."""

    id: str
    registration_id: str
    event_id: str
    full_name: str
    check_in_time: datetime
    phone_number: str = ""
    email: str = ""
    organization: str = ""
    national_id: str = ""
    bank_account_number: str = ""
    bank_name: str = ""


@dataclass(slots=True)
class Badge:
    id: str
    registration_id: str
    qr_payload: str
    location: str
    issued_at: datetime


@dataclass(slots=True)
class Page:
    items: list[Any] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)
