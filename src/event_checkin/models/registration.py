from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RegistrationStatus.PENDING


@dataclass(slots=True)
class RegistrationRequest:
    """Attendee-submitted fields, validated before a Registration is stored."""

    full_name: str
    phone_number: str
    national_id: Optional[str] = None
    passport: Optional[str] = None
    email: Optional[str] = None
    organization: Optional[str] = None


@dataclass(slots=True)
class Registration:
    id: str
    event_id: str
    full_name: str
    phone_number: str
    national_id: Optional[str] = None
    passport: Optional[str] = None
    email: Optional[str] = None
    organization: Optional[str] = None
    status: RegistrationStatus = RegistrationStatus.PENDING
    registration_date: Optional[datetime] = None
    approval_date: Optional[datetime] = None
    approved_by: Optional[str] = None

    @property
    def identity_document(self) -> str:
        return self.national_id or self.passport or ""
