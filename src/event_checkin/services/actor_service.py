from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import Optional

from event_checkin.data.store import IdentityStore
from event_checkin.errors import ActorNotFound, ValidationError
from event_checkin.models import Actor, Role

logger = logging.getLogger(__name__)


class DuplicateActorError(ValidationError):
    """Raised when an actor id is already taken."""

    error_code = "DUPLICATE_ACTOR"


class ActorService:
    def __init__(self, store: IdentityStore) -> None:
        self._store = store

    def add(self, name: str, role: Role | str, actor_id: Optional[str] = None) -> Actor:
        if not name or not name.strip():
            raise ValidationError("Actor name is required")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"Unknown role: {role}") from None

        actor = Actor(id=actor_id or str(uuid.uuid4()), name=name, role=role)
        try:
            created = self._store.insert_actor(actor)
        except sqlite3.IntegrityError:
            raise DuplicateActorError(f"Actor '{actor.id}' already exists") from None

        logger.info("Added %s actor %s", created.role.value, created.id)
        return created

    def get(self, actor_id: str) -> Actor:
        actor = self._store.get_actor(actor_id)
        if actor is None:
            raise ActorNotFound(actor_id)
        return actor
