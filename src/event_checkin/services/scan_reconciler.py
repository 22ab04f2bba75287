"""Turn a scanned badge payload into exactly one attendance record.

Per (registration, event) pair the only transition is NOT_SCANNED -> SCANNED.
Re-scanning is not an error: it returns the stored record unchanged. Two
devices scanning the same badge at once race on the attendance table's unique
key; the loser reads back the winner's row.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from event_checkin.data.store import IdentityStore
from event_checkin.errors import ExpiredScan, InvalidScan, MissingField, ScanTimedOut
from event_checkin.models import Attendance, RegistrationStatus
from event_checkin.services import qr_codec
from event_checkin.services.qr_codec import MalformedPayload, ScanPayload
from event_checkin.utils.time import is_expired, utc_now

logger = logging.getLogger(__name__)

DEFAULT_FRESHNESS_WINDOW = timedelta(hours=24)
DEFAULT_SCAN_TIMEOUT = 10.0


class ScanOutcome(str, Enum):
    NEWLY_CHECKED_IN = "newly-checked-in"
    ALREADY_CHECKED_IN = "already-checked-in"


@dataclass(frozen=True, slots=True)
class ScanResult:
    outcome: ScanOutcome
    attendance: Attendance

    @property
    def already_checked_in(self) -> bool:
        return self.outcome is ScanOutcome.ALREADY_CHECKED_IN

    @property
    def message(self) -> str:
        if self.already_checked_in:
            return "Attendee already checked in"
        return "Attendance recorded successfully"


class ScanReconciler:
    def __init__(
        self,
        store: IdentityStore,
        *,
        freshness_window: timedelta = DEFAULT_FRESHNESS_WINDOW,
        timeout: Optional[float] = DEFAULT_SCAN_TIMEOUT,
        clock: Callable[[], datetime] = utc_now,
        max_workers: int = 4,
    ) -> None:
        self._store = store
        self._freshness_window = freshness_window
        self._timeout = timeout
        self._clock = clock
        self._executor: ThreadPoolExecutor | None = None
        self._executor_lock = threading.Lock()
        self._max_workers = max_workers

    def scan(self, payload: bytes | str) -> ScanResult:
        """Reconcile ``payload`` within the configured deadline.

        Raises InvalidScan, MissingField, ExpiredScan, StorageFailure or
        ScanTimedOut. After ScanTimedOut the attendance may already be stored;
        callers should re-scan rather than assume nothing was recorded.
        """

        if not self._timeout:
            return self.reconcile(payload)

        future = self._get_executor().submit(self.reconcile, payload)
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeoutError:
            logger.warning("Scan exceeded %.1fs deadline; outcome unknown", self._timeout)
            raise ScanTimedOut(self._timeout) from None

    def reconcile(self, payload: bytes | str) -> ScanResult:
        decoded = self._decode(payload)
        self._check_freshness(decoded)

        existing = self._store.get_attendance_by_key(decoded.registration_id, decoded.event_id)
        if existing is not None:
            logger.info(
                "Registration %s already checked in to event %s at %s",
                decoded.registration_id,
                decoded.event_id,
                existing.check_in_time,
            )
            return ScanResult(ScanOutcome.ALREADY_CHECKED_IN, existing)

        candidate = self._build_attendance(decoded)
        stored = self._store.insert_attendance_if_absent(candidate)

        if stored.id != candidate.id:
            logger.info(
                "Concurrent scan won the race for registration %s at event %s",
                decoded.registration_id,
                decoded.event_id,
            )
            return ScanResult(ScanOutcome.ALREADY_CHECKED_IN, stored)

        logger.info(
            "Checked in registration %s to event %s",
            decoded.registration_id,
            decoded.event_id,
        )
        return ScanResult(ScanOutcome.NEWLY_CHECKED_IN, stored)

    def close(self) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None

    def __enter__(self) -> "ScanReconciler":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="checkin-scan",
                )
            return self._executor

    @staticmethod
    def _decode(payload: bytes | str) -> ScanPayload:
        try:
            return qr_codec.decode(payload)
        except MalformedPayload as exc:
            if exc.field:
                raise MissingField(exc.field) from exc
            raise InvalidScan() from exc

    def _check_freshness(self, decoded: ScanPayload) -> None:
        if decoded.issued_at is None:
            return
        if is_expired(decoded.issued_at, self._freshness_window, now=self._clock()):
            logger.info(
                "Rejected expired badge for registration %s issued at %s",
                decoded.registration_id,
                decoded.issued_at,
            )
            raise ExpiredScan()

    def _build_attendance(self, decoded: ScanPayload) -> Attendance:
        record = Attendance(
            id=str(uuid.uuid4()),
            registration_id=decoded.registration_id,
            event_id=decoded.event_id,
            full_name=decoded.attendee_name,
            check_in_time=self._clock(),
        )

        registration = self._store.get_registration(decoded.registration_id)
        if registration is None:
            # Data drift: fall back to the fields carried by the badge.
            logger.warning(
                "Registration %s not found; recording attendance from badge data only",
                decoded.registration_id,
            )
            return record

        if registration.event_id != decoded.event_id:
            logger.warning(
                "Badge for registration %s names event %s but registration belongs to %s",
                registration.id,
                decoded.event_id,
                registration.event_id,
            )
            return record

        if registration.status is not RegistrationStatus.APPROVED:
            logger.warning(
                "Registration %s scanned while %s",
                registration.id,
                registration.status.value,
            )

        record.full_name = registration.full_name or decoded.attendee_name
        record.phone_number = registration.phone_number or ""
        record.email = registration.email or ""
        record.organization = registration.organization or ""
        record.national_id = registration.identity_document
        return record
