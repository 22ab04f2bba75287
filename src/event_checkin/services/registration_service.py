from __future__ import annotations

import logging
import re
import uuid
from typing import Optional

from event_checkin.data.store import IdentityStore
from event_checkin.errors import (
    DuplicateRegistration,
    EventNotFound,
    IdentityConflict,
    IdentityRequired,
    InvalidIdentity,
    RegistrationNotFound,
    UnauthorizedActor,
    ValidationError,
)
from event_checkin.models import (
    Actor,
    Registration,
    RegistrationRequest,
    RegistrationStatus,
    Role,
    require_capability,
)
from event_checkin.services.badge_issuer import BadgeIssuer
from event_checkin.services.notifier import NotificationOutcome, Notifier
from event_checkin.utils.background import Dispatcher, run_detached

logger = logging.getLogger(__name__)

NATIONAL_ID_PATTERN = re.compile(r"^\d{16}$")
PASSPORT_PATTERN = re.compile(r"^[A-Za-z0-9]+$")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def validate_identity(national_id: Optional[str], passport: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Enforce exactly one identity document and its format."""

    national_id = _clean(national_id)
    passport = _clean(passport)

    if national_id and passport:
        raise IdentityConflict()
    if not national_id and not passport:
        raise IdentityRequired()

    if national_id and not NATIONAL_ID_PATTERN.match(national_id):
        raise InvalidIdentity("national ID", "must be exactly 16 digits")
    if passport and not PASSPORT_PATTERN.match(passport):
        raise InvalidIdentity("passport", "must contain only letters and digits")

    return national_id, passport


class RegistrationService:
    def __init__(
        self,
        store: IdentityStore,
        *,
        badge_issuer: Optional[BadgeIssuer] = None,
        notifier: Optional[Notifier] = None,
        dispatch: Dispatcher = run_detached,
    ) -> None:
        self._store = store
        self._badge_issuer = badge_issuer
        self._notifier = notifier
        self._dispatch = dispatch

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit(self, event_id: str, request: RegistrationRequest) -> Registration:
        national_id, passport = validate_identity(request.national_id, request.passport)

        full_name = _clean(request.full_name)
        phone_number = _clean(request.phone_number)
        if not full_name:
            raise ValidationError("Full name is required")
        if not phone_number:
            raise ValidationError("Phone number is required")

        if self._store.get_event(event_id) is None:
            raise EventNotFound(event_id)

        existing = self._store.find_registration_by_identity(
            event_id, national_id=national_id, passport=passport
        )
        if existing is not None:
            raise DuplicateRegistration(event_id)

        registration = self._store.insert_registration(
            Registration(
                id=str(uuid.uuid4()),
                event_id=event_id,
                full_name=full_name,
                phone_number=phone_number,
                national_id=national_id,
                passport=passport,
                email=_clean(request.email),
                organization=_clean(request.organization),
            )
        )
        logger.info("Registration %s submitted for event %s", registration.id, event_id)
        return registration

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def approve(self, registration_id: str, actor: Actor) -> Registration:
        registration = self._decide(registration_id, actor, RegistrationStatus.APPROVED)
        self._dispatch(lambda: self._after_approval(registration), f"approve-{registration.id}")
        return registration

    def reject(self, registration_id: str, actor: Actor) -> Registration:
        registration = self._decide(registration_id, actor, RegistrationStatus.REJECTED)
        self._dispatch(lambda: self._after_rejection(registration), f"reject-{registration.id}")
        return registration

    def get(self, registration_id: str) -> Registration:
        registration = self._store.get_registration(registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id)
        return registration

    def list_for_event(
        self,
        event_id: str,
        status: Optional[RegistrationStatus] = None,
    ) -> list[Registration]:
        return self._store.list_registrations(event_id, status=status)

    def pending(self, event_id: str) -> list[Registration]:
        return self.list_for_event(event_id, RegistrationStatus.PENDING)

    def approved(self, event_id: str) -> list[Registration]:
        return self.list_for_event(event_id, RegistrationStatus.APPROVED)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _authorize_admin(self, actor: Actor) -> Actor:
        require_capability(actor, Role.ADMIN)
        stored = self._store.get_actor(actor.id)
        if stored is None or not stored.can(Role.ADMIN):
            raise UnauthorizedActor(actor.id, Role.ADMIN.value)
        return stored

    def _decide(self, registration_id: str, actor: Actor, target: RegistrationStatus) -> Registration:
        admin = self._authorize_admin(actor)
        registration = self._store.update_registration_status(registration_id, target, admin.id)
        logger.info("Registration %s %s by %s", registration.id, target.value, admin.id)
        return registration

    def _after_approval(self, registration: Registration) -> None:
        extra: dict[str, str] = {}

        if self._badge_issuer is not None:
            try:
                badge = self._badge_issuer.issue(registration)
                extra["badge_id"] = badge.id
                extra["badge_url"] = self._badge_issuer.badge_url(badge)
            except Exception:
                logger.exception("Badge issuance failed for registration %s", registration.id)

        self._send_notification(registration, NotificationOutcome.APPROVED, extra)

    def _after_rejection(self, registration: Registration) -> None:
        self._send_notification(registration, NotificationOutcome.REJECTED, None)

    def _send_notification(
        self,
        registration: Registration,
        outcome: NotificationOutcome,
        extra: Optional[dict[str, str]],
    ) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(registration, outcome, extra)
        except Exception:
            logger.exception("Notification failed for registration %s", registration.id)
