from .actor import PUBLIC_ACTOR, Actor, Role, require_capability
from .attendance import Attendance, Badge, Page
from .event import EVENT_UPDATABLE_FIELDS, Event
from .registration import Registration, RegistrationRequest, RegistrationStatus

__all__ = [
	"Actor",
	"Attendance",
	"Badge",
	"Event",
	"EVENT_UPDATABLE_FIELDS",
	"Page",
	"PUBLIC_ACTOR",
	"Registration",
	"RegistrationRequest",
	"RegistrationStatus",
	"Role",
	"require_capability",
]
