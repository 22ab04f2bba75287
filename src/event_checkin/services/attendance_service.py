from __future__ import annotations

import logging
from typing import Optional

from event_checkin.data.store import IdentityStore
from event_checkin.errors import AttendanceNotFound, EventNotFound, ValidationError
from event_checkin.models import Actor, Attendance, Page, Role, require_capability
from event_checkin.services.scan_reconciler import ScanReconciler, ScanResult

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class AttendanceService:
    def __init__(self, store: IdentityStore, reconciler: ScanReconciler) -> None:
        self._store = store
        self._reconciler = reconciler

    def initialize(self) -> None:
        self._store.initialize()

    def check_in(self, actor: Actor, payload: bytes | str) -> ScanResult:
        """Record attendance for a scanned badge on behalf of a staff member."""
        require_capability(actor, Role.STAFF)
        result = self._reconciler.scan(payload)
        logger.debug("Scan by %s: %s", actor.id, result.outcome.value)
        return result

    def event_attendance(self, event_id: str) -> list[Attendance]:
        if self._store.get_event(event_id) is None:
            raise EventNotFound(event_id)
        return self._store.list_event_attendance(event_id)

    def scanned_attendees(
        self,
        page: int = 1,
        limit: int = 10,
        event_id: Optional[str] = None,
    ) -> Page:
        page = max(1, int(page))
        limit = min(max(1, int(limit)), MAX_PAGE_SIZE)

        items, total = self._store.list_attendance(
            event_id=event_id,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return Page(items=items, total=total, page=page, limit=limit)

    def update_bank_info(
        self,
        actor: Actor,
        attendance_id: str,
        bank_account_number: str,
        bank_name: str,
    ) -> Attendance:
        require_capability(actor, Role.STAFF)

        account = (bank_account_number or "").strip()
        bank = (bank_name or "").strip()
        if not account or not bank:
            raise ValidationError("Bank account number and bank name are required")

        updated = self._store.update_attendance_bank(attendance_id, account, bank)
        if updated is None:
            raise AttendanceNotFound(attendance_id)

        logger.info("Bank details updated for attendance %s by %s", attendance_id, actor.id)
        return updated
