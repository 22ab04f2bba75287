from __future__ import annotations

import itertools
import sqlite3
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from event_checkin.data import Database, IdentityStore
from event_checkin.errors import ExpiredScan, InvalidScan, MissingField, ScanTimedOut, StorageFailure
from event_checkin.models import Actor, Attendance, Event, Registration, RegistrationStatus, Role
from event_checkin.services import ScanOutcome, ScanReconciler, qr_codec, scan_reconciler

NOW = datetime(2025, 5, 1, 9, 30, tzinfo=timezone.utc)
ISSUED_AT = datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)


def _seeded_store(tmp_path) -> IdentityStore:
    store = IdentityStore(Database(tmp_path / "checkin.db"))
    store.initialize()
    store.insert_actor(Actor(id="admin-1", name="Admin", role=Role.ADMIN))
    store.insert_event(
        Event(
            id="E1",
            name="Summit",
            event_type="conference",
            date_time=datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc),
            location="Kigali",
            max_capacity=100,
        )
    )
    store.insert_registration(
        Registration(
            id="R1",
            event_id="E1",
            full_name="Alice Uwase",
            phone_number="0788123456",
            national_id="1234567890123456",
            email="alice@example.com",
            organization="Acme",
        )
    )
    store.update_registration_status("R1", RegistrationStatus.APPROVED, "admin-1")
    return store


def test_first_scan_records_snapshot_from_registration(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    result = reconciler.scan(qr_codec.encode("R1", "E1", "A. Uwase", ISSUED_AT))

    assert result.outcome is ScanOutcome.NEWLY_CHECKED_IN
    assert result.message == "Attendance recorded successfully"
    record = result.attendance
    assert record.full_name == "Alice Uwase"
    assert record.national_id == "1234567890123456"
    assert record.phone_number == "0788123456"
    assert record.organization == "Acme"
    assert record.check_in_time == NOW
    assert store.count_rows("attendance") == 1


def test_rescan_returns_the_stored_record(tmp_path):
    store = _seeded_store(tmp_path)
    ticks = itertools.count()
    reconciler = ScanReconciler(
        store,
        clock=lambda: NOW + timedelta(minutes=next(ticks)),
        timeout=None,
    )
    payload = qr_codec.encode("R1", "E1", "Alice Uwase", ISSUED_AT)

    first = reconciler.scan(payload)
    second = reconciler.scan(payload)

    assert second.outcome is ScanOutcome.ALREADY_CHECKED_IN
    assert second.already_checked_in
    assert second.attendance.id == first.attendance.id
    assert second.attendance.check_in_time == first.attendance.check_in_time
    assert store.count_rows("attendance") == 1


def test_expired_payload_is_rejected_without_writing(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    stale = qr_codec.encode("R1", "E1", "Alice Uwase", NOW - timedelta(hours=25))

    with pytest.raises(ExpiredScan):
        reconciler.scan(stale)
    assert store.count_rows("attendance") == 0


def test_payload_without_timestamp_is_never_expired(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    result = reconciler.scan(qr_codec.encode("R1", "E1", "Alice Uwase"))

    assert result.outcome is ScanOutcome.NEWLY_CHECKED_IN


def test_garbage_payload_is_invalid_scan(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    with pytest.raises(InvalidScan) as excinfo:
        reconciler.scan("hello")

    assert not isinstance(excinfo.value, MissingField)
    assert str(excinfo.value) == "[INVALID_SCAN] Invalid QR code format"
    assert store.count_rows("attendance") == 0


def test_missing_field_is_named(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    with pytest.raises(MissingField) as excinfo:
        reconciler.scan('{"eventId": "E1", "attendee": "Alice"}')

    assert excinfo.value.field == "registration ID"


def test_unknown_registration_falls_back_to_badge_fields(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    result = reconciler.scan(qr_codec.encode("GHOST", "E1", "Walk In", ISSUED_AT))

    assert result.outcome is ScanOutcome.NEWLY_CHECKED_IN
    assert result.attendance.full_name == "Walk In"
    assert result.attendance.phone_number == ""
    assert result.attendance.national_id == ""


def test_concurrent_scans_record_exactly_once(tmp_path):
    store = _seeded_store(tmp_path)
    payload = qr_codec.encode("R1", "E1", "Alice Uwase", ISSUED_AT)
    reconciler = ScanReconciler(store, clock=lambda: NOW, max_workers=8)
    barrier = threading.Barrier(8)
    results = []
    errors = []

    def worker() -> None:
        barrier.wait()
        try:
            results.append(reconciler.scan(payload))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    reconciler.close()

    assert errors == []
    outcomes = [result.outcome for result in results]
    assert outcomes.count(ScanOutcome.NEWLY_CHECKED_IN) == 1
    assert outcomes.count(ScanOutcome.ALREADY_CHECKED_IN) == 7
    assert len({result.attendance.id for result in results}) == 1
    assert store.count_rows("attendance") == 1


class _BlindStore(IdentityStore):
    """Never sees an existing row before inserting, like a racing scanner."""

    def get_attendance_by_key(self, registration_id, event_id):
        return None


def test_losing_the_insert_race_reports_already_checked_in(tmp_path):
    store = _seeded_store(tmp_path)
    winner = store.insert_attendance_if_absent(
        Attendance(
            id="winner",
            registration_id="R1",
            event_id="E1",
            full_name="Alice Uwase",
            check_in_time=NOW - timedelta(minutes=1),
        )
    )
    reconciler = ScanReconciler(_BlindStore(store.database), clock=lambda: NOW, timeout=None)

    result = reconciler.scan(qr_codec.encode("R1", "E1", "Alice Uwase", ISSUED_AT))

    assert result.outcome is ScanOutcome.ALREADY_CHECKED_IN
    assert result.attendance.id == winner.id
    assert result.attendance.check_in_time == winner.check_in_time


class _SlowStore:
    def get_attendance_by_key(self, registration_id, event_id):
        time.sleep(0.5)
        return None

    def get_registration(self, registration_id):
        return None

    def insert_attendance_if_absent(self, record):
        return record


def test_scan_times_out(tmp_path):
    reconciler = ScanReconciler(_SlowStore(), clock=lambda: NOW, timeout=0.05)

    with pytest.raises(ScanTimedOut) as excinfo:
        reconciler.scan(qr_codec.encode("R1", "E1", "Alice Uwase", ISSUED_AT))
    reconciler.close()

    assert excinfo.value.timeout == 0.05


def test_deeply_nested_payload_is_invalid_scan(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    with pytest.raises(InvalidScan):
        reconciler.scan("[" * 3000)


def test_out_of_range_timestamp_is_invalid_scan(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)
    payload = '{"registrationId":"R1","eventId":"E1","attendee":"A","timestamp":"0001-01-01T00:00:00+01:00"}'

    with pytest.raises(InvalidScan):
        reconciler.scan(payload)
    assert store.count_rows("attendance") == 0


def test_badge_for_another_event_does_not_copy_registration_details(tmp_path):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=None)

    result = reconciler.scan(qr_codec.encode("R1", "E2", "Badge Name", ISSUED_AT))

    assert result.outcome is ScanOutcome.NEWLY_CHECKED_IN
    assert result.attendance.event_id == "E2"
    assert result.attendance.full_name == "Badge Name"
    assert result.attendance.national_id == ""
    assert result.attendance.phone_number == ""


def test_concurrent_first_scans_share_one_executor(tmp_path, monkeypatch):
    created = []

    class CountingExecutor(scan_reconciler.ThreadPoolExecutor):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr(scan_reconciler, "ThreadPoolExecutor", CountingExecutor)
    store = _seeded_store(tmp_path)
    payload = qr_codec.encode("R1", "E1", "Alice Uwase", ISSUED_AT)
    reconciler = ScanReconciler(store, clock=lambda: NOW, max_workers=8)
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        reconciler.scan(payload)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    reconciler.close()

    assert len(created) == 1
    assert created[0]._shutdown


class _LockedConnection:
    row_factory = None

    def execute(self, *args):
        raise sqlite3.OperationalError("database is locked")

    def commit(self):
        pass

    def rollback(self):
        pass

    def close(self):
        pass


@pytest.mark.parametrize("timeout", [None, 5])
def test_unreachable_store_raises_storage_failure(tmp_path, monkeypatch, timeout):
    store = _seeded_store(tmp_path)
    reconciler = ScanReconciler(store, clock=lambda: NOW, timeout=timeout)
    monkeypatch.setattr(sqlite3, "connect", lambda *args, **kwargs: _LockedConnection())

    with pytest.raises(StorageFailure):
        reconciler.scan(qr_codec.encode("R1", "E1", "Alice Uwase", ISSUED_AT))
    reconciler.close()
