from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from event_checkin.data.store import IdentityStore
from event_checkin.errors import EventNotFound, ValidationError
from event_checkin.models import EVENT_UPDATABLE_FIELDS, Actor, Event, Role, require_capability

logger = logging.getLogger(__name__)


class EventService:
    def __init__(self, store: IdentityStore) -> None:
        self._store = store

    def create(self, actor: Actor, event: Event) -> Event:
        require_capability(actor, Role.ADMIN)
        self._validate(event.name, event.location, event.max_capacity)

        created = self._store.insert_event(
            Event(
                id=event.id or str(uuid.uuid4()),
                name=event.name,
                event_type=event.event_type,
                date_time=event.date_time,
                location=event.location,
                max_capacity=event.max_capacity,
                financial_support=event.financial_support,
                description=event.description,
                admin_id=actor.id,
            )
        )
        logger.info("Event %s created by %s", created.id, actor.id)
        return created

    def get(self, event_id: str) -> Event:
        event = self._store.get_event(event_id)
        if event is None:
            raise EventNotFound(event_id)
        return event

    def list(self) -> list[Event]:
        return self._store.list_events()

    def update(self, actor: Actor, event_id: str, changes: Mapping[str, Any]) -> Event:
        require_capability(actor, Role.ADMIN)

        unknown = set(changes) - EVENT_UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unsupported event fields: {', '.join(sorted(unknown))}")
        if "max_capacity" in changes and int(changes["max_capacity"]) < 0:
            raise ValidationError("Capacity cannot be negative")

        updated = self._store.update_event(event_id, changes)
        if updated is None:
            raise EventNotFound(event_id)
        logger.info("Event %s updated by %s", event_id, actor.id)
        return updated

    def delete(self, actor: Actor, event_id: str) -> None:
        """Delete the event; registrations, badges and attendance go with it."""
        require_capability(actor, Role.ADMIN)
        if not self._store.delete_event(event_id):
            raise EventNotFound(event_id)
        logger.info("Event %s deleted by %s", event_id, actor.id)

    @staticmethod
    def _validate(name: str, location: str, max_capacity: int) -> None:
        if not name or not name.strip():
            raise ValidationError("Event name is required")
        if not location or not location.strip():
            raise ValidationError("Event location is required")
        if int(max_capacity) < 0:
            raise ValidationError("Capacity cannot be negative")
