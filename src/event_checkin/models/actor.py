from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from event_checkin.errors import UnauthorizedActor


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    PUBLIC = "public"


# Capabilities granted by each role. Admins may do everything staff can.
ROLE_CAPABILITIES: dict[Role, frozenset[Role]] = {
    Role.ADMIN: frozenset({Role.ADMIN, Role.STAFF, Role.PUBLIC}),
    Role.STAFF: frozenset({Role.STAFF, Role.PUBLIC}),
    Role.PUBLIC: frozenset({Role.PUBLIC}),
}


@dataclass(slots=True)
class Actor:
    id: str
    name: str
    role: Role = Role.PUBLIC
    created_at: Optional[datetime] = None
    capabilities: frozenset[Role] = field(init=False)

    def __post_init__(self) -> None:
        self.role = Role(self.role)
        self.capabilities = ROLE_CAPABILITIES[self.role]

    def can(self, capability: Role) -> bool:
        return capability in self.capabilities


PUBLIC_ACTOR = Actor(id="", name="public", role=Role.PUBLIC)


def require_capability(actor: Optional[Actor], capability: Role) -> Actor:
    """Return ``actor`` when it holds ``capability``, else raise UnauthorizedActor."""

    if actor is None or not actor.can(capability):
        raise UnauthorizedActor(actor.id if actor else None, capability.value)
    return actor
