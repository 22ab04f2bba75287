from .actor_service import ActorService, DuplicateActorError
from .attendance_service import AttendanceService
from .badge_issuer import BadgeIssuer
from .event_service import EventService
from .notifier import EmailSender, MessageNotifier, NotificationOutcome, SmsSender
from .registration_service import RegistrationService
from .scan_reconciler import ScanOutcome, ScanReconciler, ScanResult

__all__ = [
	"ActorService",
	"AttendanceService",
	"BadgeIssuer",
	"DuplicateActorError",
	"EmailSender",
	"EventService",
	"MessageNotifier",
	"NotificationOutcome",
	"RegistrationService",
	"ScanOutcome",
	"ScanReconciler",
	"ScanResult",
	"SmsSender",
]
