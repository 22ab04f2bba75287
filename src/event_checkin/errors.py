"""Error taxonomy shared by the check-in services.

Every error carries an ``error_code`` so boundary layers can map failures
without matching on message text. Subclasses of :class:`ValidationError` are
client errors and must never be retried automatically. :class:`StorageFailure`
and :class:`ScanTimedOut` are transient and left to the caller's retry policy.
"""

from __future__ import annotations


class CheckinError(Exception):
    error_code = "CHECKIN_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(CheckinError):
    error_code = "VALIDATION_ERROR"


class StorageFailure(CheckinError):
    """The store could not be reached or the statement could not run."""

    error_code = "STORAGE_FAILURE"


# Scan flow -----------------------------------------------------------------


class ScanError(CheckinError):
    error_code = "SCAN_ERROR"


class InvalidScan(ScanError, ValidationError):
    error_code = "INVALID_SCAN"

    def __init__(self, message: str = "Invalid QR code format") -> None:
        super().__init__(message)


class MissingField(InvalidScan):
    error_code = "MISSING_FIELD"

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing {field}")
        self.field = field


class ExpiredScan(ScanError, ValidationError):
    error_code = "EXPIRED_SCAN"

    def __init__(self, message: str = "QR code has expired") -> None:
        super().__init__(message)


class ScanTimedOut(ScanError):
    """The scan deadline passed; the attendance may or may not be recorded."""

    error_code = "SCAN_TIMED_OUT"

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Scan did not complete within {timeout:g} seconds")
        self.timeout = timeout


# Registration flow ---------------------------------------------------------


class IdentityRequired(ValidationError):
    error_code = "IDENTITY_REQUIRED"

    def __init__(self) -> None:
        super().__init__("Either a national ID or a passport number is required")


class IdentityConflict(ValidationError):
    error_code = "IDENTITY_CONFLICT"

    def __init__(self) -> None:
        super().__init__("Provide either a national ID or a passport number, not both")


class InvalidIdentity(ValidationError):
    error_code = "INVALID_IDENTITY"

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid {field}: {reason}")
        self.field = field


class DuplicateRegistration(CheckinError):
    error_code = "DUPLICATE_REGISTRATION"

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Already registered for event '{event_id}'")
        self.event_id = event_id


class InvalidTransition(CheckinError):
    error_code = "INVALID_TRANSITION"

    def __init__(self, registration_id: str, current_status: str, target: str) -> None:
        super().__init__(
            f"Registration '{registration_id}' is {current_status}; cannot move to {target}"
        )
        self.registration_id = registration_id
        self.current_status = current_status
        self.target = target


class BadgeNotAvailable(CheckinError):
    error_code = "BADGE_NOT_AVAILABLE"

    def __init__(self, registration_id: str, status: str) -> None:
        super().__init__(f"Registration '{registration_id}' is {status}; badges are issued on approval")
        self.registration_id = registration_id


class UnauthorizedActor(CheckinError):
    error_code = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str | None, required: str) -> None:
        who = f"Actor '{actor_id}'" if actor_id else "Anonymous actor"
        super().__init__(f"{who} lacks the {required} capability")
        self.actor_id = actor_id
        self.required = required


# Lookups -------------------------------------------------------------------


class NotFoundError(CheckinError):
    error_code = "NOT_FOUND"
    entity = "Record"

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"{self.entity} '{entity_id}' not found")
        self.entity_id = entity_id


class EventNotFound(NotFoundError):
    error_code = "EVENT_NOT_FOUND"
    entity = "Event"


class RegistrationNotFound(NotFoundError):
    error_code = "REGISTRATION_NOT_FOUND"
    entity = "Registration"


class AttendanceNotFound(NotFoundError):
    error_code = "ATTENDANCE_NOT_FOUND"
    entity = "Attendance"


class ActorNotFound(NotFoundError):
    error_code = "ACTOR_NOT_FOUND"
    entity = "Actor"
