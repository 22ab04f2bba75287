from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from event_checkin.data import Database


def test_initialize_creates_tables(tmp_path: Path) -> None:
    db_path = tmp_path / "checkin.db"
    database = Database(db_path)
    database.initialize()

    with database.connect() as connection:
        tables = {
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            )
        }
        triggers = {
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master WHERE type='trigger'"
            )
        }

    expected_tables = {
        "actors",
        "events",
        "registrations",
        "badges",
        "attendance",
        "schema_migrations",
    }

    assert expected_tables.issubset(tables)
    assert {"trg_events_delete_attendance", "trg_registrations_delete_attendance"} <= triggers


def test_initialize_is_repeatable(tmp_path: Path) -> None:
    database = Database(tmp_path / "checkin.db")
    database.initialize()
    database.initialize()

    with database.connect() as connection:
        applied = [row["name"] for row in connection.execute("SELECT name FROM schema_migrations")]

    assert applied == ["001_initial.sql"]


def _seed_event(connection: sqlite3.Connection, event_id: str = "E1") -> None:
    connection.execute(
        """
        INSERT INTO events (id, name, event_type, date_time, location, max_capacity, created_at)
        VALUES (?, 'Summit', 'conference', '2025-05-01T09:00:00.000Z', 'Kigali', 100, '2025-04-01T00:00:00.000Z')
        """,
        (event_id,),
    )


def test_registration_requires_exactly_one_identity(tmp_path: Path) -> None:
    database = Database(tmp_path / "checkin.db")
    database.initialize()

    with database.connect() as connection:
        _seed_event(connection)

    with pytest.raises(sqlite3.IntegrityError):
        with database.connect() as connection:
            connection.execute(
                """
                INSERT INTO registrations (id, event_id, full_name, phone_number, national_id, passport, registration_date)
                VALUES ('R1', 'E1', 'Alice', '0788000000', '1234567890123456', 'PA123', '2025-04-02T00:00:00.000Z')
                """
            )


def test_attendance_key_is_unique(tmp_path: Path) -> None:
    database = Database(tmp_path / "checkin.db")
    database.initialize()

    insert = """
        INSERT INTO attendance (id, registration_id, event_id, full_name, check_in_time)
        VALUES (?, 'R1', 'E1', 'Alice', '2025-05-01T09:05:00.000Z')
    """
    with database.connect() as connection:
        connection.execute(insert, ("A1",))

    with pytest.raises(sqlite3.IntegrityError):
        with database.connect() as connection:
            connection.execute(insert, ("A2",))


def test_deleting_event_cascades_to_attendance(tmp_path: Path) -> None:
    database = Database(tmp_path / "checkin.db")
    database.initialize()

    with database.connect() as connection:
        _seed_event(connection)
        connection.execute(
            """
            INSERT INTO registrations (id, event_id, full_name, phone_number, national_id, registration_date)
            VALUES ('R1', 'E1', 'Alice', '0788000000', '1234567890123456', '2025-04-02T00:00:00.000Z')
            """
        )
        connection.execute(
            """
            INSERT INTO attendance (id, registration_id, event_id, full_name, check_in_time)
            VALUES ('A1', 'R1', 'E1', 'Alice', '2025-05-01T09:05:00.000Z')
            """
        )

    with database.connect() as connection:
        connection.execute("DELETE FROM events WHERE id = 'E1'")

    with database.connect() as connection:
        registrations = connection.execute("SELECT COUNT(*) FROM registrations").fetchone()[0]
        attendance = connection.execute("SELECT COUNT(*) FROM attendance").fetchone()[0]

    assert registrations == 0
    assert attendance == 0
