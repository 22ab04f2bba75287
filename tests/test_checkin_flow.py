from __future__ import annotations

import dataclasses
import json
from datetime import datetime, timezone

import pytest

from event_checkin import main as cli
from event_checkin.config.settings import settings
from event_checkin.data import Database, IdentityStore, LocalBlobStore
from event_checkin.models import Actor, Event, RegistrationRequest, Role
from event_checkin.services import (
    AttendanceService,
    BadgeIssuer,
    NotificationOutcome,
    RegistrationService,
    ScanOutcome,
    ScanReconciler,
)
from event_checkin.utils.background import run_inline


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify(self, registration, outcome, extra=None):
        self.calls.append((registration.full_name, outcome, dict(extra or {})))


def test_register_approve_and_scan_twice(tmp_path):
    store = IdentityStore(Database(tmp_path / "checkin.db"))
    store.initialize()
    admin = store.insert_actor(Actor(id="admin-1", name="Admin", role=Role.ADMIN))
    staff = store.insert_actor(Actor(id="staff-1", name="Door", role=Role.STAFF))
    store.insert_event(
        Event(
            id="E1",
            name="Summit",
            event_type="conference",
            date_time=datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc),
            location="Kigali",
            max_capacity=100,
            admin_id=admin.id,
        )
    )

    notifier = RecordingNotifier()
    badges = BadgeIssuer(store, LocalBlobStore(tmp_path / "badges"))
    registrations = RegistrationService(store, badge_issuer=badges, notifier=notifier, dispatch=run_inline)
    attendance = AttendanceService(store, ScanReconciler(store, timeout=5))

    registration = registrations.submit(
        "E1",
        RegistrationRequest(
            full_name="Alice",
            phone_number="0788123456",
            national_id="1234567890123456",
        ),
    )
    registrations.approve(registration.id, admin)

    badge = store.get_badge(registration.id)
    assert badge is not None
    assert notifier.calls[0][1] is NotificationOutcome.APPROVED
    assert notifier.calls[0][2]["badge_url"].endswith(f"badge_{registration.id}.pdf")

    first = attendance.check_in(staff, badge.qr_payload)
    second = attendance.check_in(staff, badge.qr_payload)

    assert first.outcome is ScanOutcome.NEWLY_CHECKED_IN
    assert second.outcome is ScanOutcome.ALREADY_CHECKED_IN
    assert second.attendance.check_in_time == first.attendance.check_in_time
    assert first.attendance.full_name == "Alice"
    assert first.attendance.national_id == "1234567890123456"
    assert [record.id for record in attendance.event_attendance("E1")] == [first.attendance.id]


@pytest.fixture
def cli_settings(tmp_path, monkeypatch):
    configured = dataclasses.replace(
        settings,
        database_path=tmp_path / "cli.db",
        badge_dir=tmp_path / "badges",
        intouch_username=None,
        intouch_password=None,
        intouch_sender_id=None,
        smtp_server=None,
    )
    monkeypatch.setattr(cli, "settings", configured)
    return configured


def test_cli_walkthrough(cli_settings, capsys):
    assert cli.main(["init-db"]) == 0
    assert cli.main(["add-actor", "Admin", "--role", "admin", "--id", "admin-1"]) == 0
    assert cli.main(["add-actor", "Door", "--role", "staff", "--id", "staff-1"]) == 0
    assert cli.main([
        "create-event",
        "--actor", "admin-1",
        "--id", "E1",
        "--name", "Summit",
        "--date", "2030-05-01T09:00:00Z",
        "--location", "Kigali",
        "--capacity", "100",
    ]) == 0
    capsys.readouterr()

    assert cli.main([
        "register",
        "--event", "E1",
        "--name", "Alice",
        "--phone", "0788123456",
        "--national-id", "1234567890123456",
    ]) == 0
    registration_id = capsys.readouterr().out.split()[0]

    assert cli.main(["approve", registration_id, "--actor", "admin-1"]) == 0
    assert cli.main(["approve", registration_id, "--actor", "admin-1"]) == 1
    assert "INVALID_TRANSITION" in capsys.readouterr().err

    store = IdentityStore(Database(cli_settings.database_path))
    payload = store.get_badge(registration_id).qr_payload
    assert json.loads(payload)["eventId"] == "E1"

    assert cli.main(["scan", payload, "--actor", "staff-1"]) == 0
    assert cli.main(["scan", payload, "--actor", "staff-1"]) == 0
    out = capsys.readouterr().out
    assert "Attendance recorded successfully: Alice" in out
    assert "Attendee already checked in: Alice" in out

    assert cli.main(["attendance", "--event", "E1"]) == 0
    assert "(1 total)" in capsys.readouterr().out

    assert cli.main(["scan", "hello", "--actor", "staff-1"]) == 1
    assert "[INVALID_SCAN]" in capsys.readouterr().err
