from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Any, Iterable, Mapping

from event_checkin.data.database import Database
from event_checkin.errors import (
    DuplicateRegistration,
    EventNotFound,
    InvalidTransition,
    RegistrationNotFound,
    StorageFailure,
)
from event_checkin.models import (
    EVENT_UPDATABLE_FIELDS,
    Actor,
    Attendance,
    Badge,
    Event,
    Registration,
    RegistrationStatus,
    Role,
)
from event_checkin.utils.time import parse_optional_timestamp, parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)

ATTENDANCE_COLUMNS = """
    id, registration_id, event_id, full_name, check_in_time,
    phone_number, email, organization, national_id,
    bank_account_number, bank_name
"""

REGISTRATION_COLUMNS = """
    id, event_id, full_name, phone_number, national_id, passport,
    email, organization, status, registration_date, approval_date, approved_by
"""

EVENT_COLUMNS = """
    id, name, event_type, date_time, location, description,
    max_capacity, financial_support, admin_id, created_at
"""


def _row_to_actor(row: sqlite3.Row) -> Actor:
    return Actor(
        id=row["id"],
        name=row["name"],
        role=Role(row["role"]),
        created_at=parse_optional_timestamp(row["created_at"]),
    )


def _row_to_event(row: sqlite3.Row) -> Event:
    return Event(
        id=row["id"],
        name=row["name"],
        event_type=row["event_type"],
        date_time=parse_timestamp(row["date_time"]),
        location=row["location"],
        description=row["description"] or "",
        max_capacity=int(row["max_capacity"]),
        financial_support=bool(row["financial_support"]),
        admin_id=row["admin_id"],
        created_at=parse_optional_timestamp(row["created_at"]),
    )


def _row_to_registration(row: sqlite3.Row) -> Registration:
    return Registration(
        id=row["id"],
        event_id=row["event_id"],
        full_name=row["full_name"],
        phone_number=row["phone_number"],
        national_id=row["national_id"],
        passport=row["passport"],
        email=row["email"],
        organization=row["organization"],
        status=RegistrationStatus(row["status"]),
        registration_date=parse_optional_timestamp(row["registration_date"]),
        approval_date=parse_optional_timestamp(row["approval_date"]),
        approved_by=row["approved_by"],
    )


def _row_to_attendance(row: sqlite3.Row) -> Attendance:
    return Attendance(
        id=row["id"],
        registration_id=row["registration_id"],
        event_id=row["event_id"],
        full_name=row["full_name"],
        check_in_time=parse_timestamp(row["check_in_time"]),
        phone_number=row["phone_number"] or "",
        email=row["email"] or "",
        organization=row["organization"] or "",
        national_id=row["national_id"] or "",
        bank_account_number=row["bank_account_number"] or "",
        bank_name=row["bank_name"] or "",
    )


def _row_to_badge(row: sqlite3.Row) -> Badge:
    return Badge(
        id=row["id"],
        registration_id=row["registration_id"],
        qr_payload=row["qr_payload"],
        location=row["location"],
        issued_at=parse_timestamp(row["issued_at"]),
    )


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc)


class IdentityStore:
    """Data access for events, registrations, attendance, badges and actors.

    Every method opens its own connection, so one store handle can be shared
    by concurrent callers. Uniqueness is decided by the database alone.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    @property
    def database(self) -> Database:
        return self._database

    def initialize(self) -> None:
        self._database.initialize()

    # ------------------------------------------------------------------
    # Actors
    # ------------------------------------------------------------------
    def insert_actor(self, actor: Actor) -> Actor:
        created_at = actor.created_at or utc_now()
        with self._database.connect() as connection:
            connection.execute(
                "INSERT INTO actors (id, name, role, created_at) VALUES (?, ?, ?, ?)",
                (actor.id, actor.name.strip(), actor.role.value, to_iso(created_at)),
            )
        return Actor(id=actor.id, name=actor.name.strip(), role=actor.role, created_at=created_at)

    def get_actor(self, actor_id: str) -> Actor | None:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT id, name, role, created_at FROM actors WHERE id = ?",
                (actor_id,),
            ).fetchone()
        return _row_to_actor(row) if row else None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def insert_event(self, event: Event) -> Event:
        created_at = event.created_at or utc_now()
        with self._database.connect() as connection:
            connection.execute(
                """
                INSERT INTO events (
                    id, name, event_type, date_time, location, description,
                    max_capacity, financial_support, admin_id, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.name.strip(),
                    event.event_type.strip(),
                    to_iso(event.date_time),
                    event.location.strip(),
                    event.description or "",
                    int(event.max_capacity),
                    int(bool(event.financial_support)),
                    event.admin_id,
                    to_iso(created_at),
                ),
            )
            row = connection.execute(
                f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ?",
                (event.id,),
            ).fetchone()
        return _row_to_event(row)

    def get_event(self, event_id: str) -> Event | None:
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ?",
                (event_id,),
            ).fetchone()
        return _row_to_event(row) if row else None

    def list_events(self) -> list[Event]:
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT {EVENT_COLUMNS} FROM events ORDER BY date_time ASC, id ASC"
            ).fetchall()
        return [_row_to_event(row) for row in rows]

    def update_event(self, event_id: str, changes: Mapping[str, Any]) -> Event | None:
        unknown = set(changes) - EVENT_UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported event fields: {', '.join(sorted(unknown))}")

        assignments: list[str] = []
        params: list[Any] = []
        for column, value in changes.items():
            if column == "date_time" and isinstance(value, datetime):
                value = to_iso(value)
            elif column == "financial_support":
                value = int(bool(value))
            elif column == "max_capacity":
                value = int(value)
            assignments.append(f"{column} = ?")
            params.append(value)

        with self._database.connect() as connection:
            if assignments:
                connection.execute(
                    "UPDATE events SET " + ", ".join(assignments) + " WHERE id = ?",
                    (*params, event_id),
                )
            row = connection.execute(
                f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ?",
                (event_id,),
            ).fetchone()
        return _row_to_event(row) if row else None

    def delete_event(self, event_id: str) -> bool:
        with self._database.connect() as connection:
            cursor = connection.execute("DELETE FROM events WHERE id = ?", (event_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------
    def insert_registration(self, registration: Registration) -> Registration:
        registered_at = registration.registration_date or utc_now()
        with self._database.connect() as connection:
            try:
                connection.execute(
                    """
                    INSERT INTO registrations (
                        id, event_id, full_name, phone_number, national_id, passport,
                        email, organization, status, registration_date
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        registration.id,
                        registration.event_id,
                        registration.full_name,
                        registration.phone_number,
                        registration.national_id,
                        registration.passport,
                        registration.email,
                        registration.organization,
                        RegistrationStatus.PENDING.value,
                        to_iso(registered_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise DuplicateRegistration(registration.event_id) from exc
                if "FOREIGN KEY" in str(exc):
                    raise EventNotFound(registration.event_id) from exc
                raise

            row = connection.execute(
                f"SELECT {REGISTRATION_COLUMNS} FROM registrations WHERE id = ?",
                (registration.id,),
            ).fetchone()
        return _row_to_registration(row)

    def get_registration(self, registration_id: str) -> Registration | None:
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT {REGISTRATION_COLUMNS} FROM registrations WHERE id = ?",
                (registration_id,),
            ).fetchone()
        return _row_to_registration(row) if row else None

    def find_registration_by_identity(
        self,
        event_id: str,
        *,
        national_id: str | None = None,
        passport: str | None = None,
    ) -> Registration | None:
        if national_id:
            column, value = "national_id", national_id
        elif passport:
            column, value = "passport", passport
        else:
            return None

        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT {REGISTRATION_COLUMNS} FROM registrations WHERE event_id = ? AND {column} = ?",
                (event_id, value),
            ).fetchone()
        return _row_to_registration(row) if row else None

    def list_registrations(
        self,
        event_id: str,
        *,
        status: RegistrationStatus | None = None,
    ) -> list[Registration]:
        query_parts = [
            f"SELECT {REGISTRATION_COLUMNS}",
            "  FROM registrations",
            " WHERE event_id = ?",
        ]
        params: list[str] = [event_id]

        if status is not None:
            query_parts.append("   AND status = ?")
            params.append(RegistrationStatus(status).value)

        query_parts.append(" ORDER BY registration_date ASC, id ASC")

        with self._database.connect() as connection:
            rows = connection.execute("\n".join(query_parts), tuple(params)).fetchall()
        return [_row_to_registration(row) for row in rows]

    def update_registration_status(
        self,
        registration_id: str,
        status: RegistrationStatus,
        actor_id: str,
        *,
        at: datetime | None = None,
    ) -> Registration:
        """Move a PENDING registration to ``status``; single-shot.

        The status guard lives in the UPDATE itself so two concurrent
        decisions cannot both succeed.
        """

        target = RegistrationStatus(status)
        if not target.is_terminal:
            raise ValueError("Registrations cannot be moved back to pending")

        decided_at = at or utc_now()
        with self._database.connect() as connection:
            cursor = connection.execute(
                """
                UPDATE registrations
                   SET status = ?,
                       approval_date = ?,
                       approved_by = ?
                 WHERE id = ?
                   AND status = ?
                """,
                (
                    target.value,
                    to_iso(decided_at),
                    actor_id,
                    registration_id,
                    RegistrationStatus.PENDING.value,
                ),
            )
            row = connection.execute(
                f"SELECT {REGISTRATION_COLUMNS} FROM registrations WHERE id = ?",
                (registration_id,),
            ).fetchone()

        if row is None:
            raise RegistrationNotFound(registration_id)

        registration = _row_to_registration(row)
        if cursor.rowcount == 0:
            raise InvalidTransition(registration_id, registration.status.value, target.value)
        return registration

    # ------------------------------------------------------------------
    # Attendance
    # ------------------------------------------------------------------
    def get_attendance_by_key(self, registration_id: str, event_id: str) -> Attendance | None:
        with self._database.connect() as connection:
            row = connection.execute(
                f"""
                SELECT {ATTENDANCE_COLUMNS}
                  FROM attendance
                 WHERE registration_id = ? AND event_id = ?
                 LIMIT 1
                """,
                (registration_id, event_id),
            ).fetchone()
        return _row_to_attendance(row) if row else None

    def get_attendance(self, attendance_id: str) -> Attendance | None:
        with self._database.connect() as connection:
            row = connection.execute(
                f"SELECT {ATTENDANCE_COLUMNS} FROM attendance WHERE id = ?",
                (attendance_id,),
            ).fetchone()
        return _row_to_attendance(row) if row else None

    def insert_attendance_if_absent(self, record: Attendance) -> Attendance:
        """Insert ``record`` unless its (registration, event) key already exists.

        Returns the stored row either way. Callers tell the two cases apart by
        comparing the returned id with ``record.id``.
        """

        with self._database.connect() as connection:
            try:
                connection.execute(
                    """
                    INSERT INTO attendance (
                        id, registration_id, event_id, full_name, check_in_time,
                        phone_number, email, organization, national_id,
                        bank_account_number, bank_name
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.registration_id,
                        record.event_id,
                        record.full_name,
                        to_iso(record.check_in_time),
                        record.phone_number,
                        record.email,
                        record.organization,
                        record.national_id,
                        record.bank_account_number,
                        record.bank_name,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                if not _is_unique_violation(exc):
                    raise
                logger.info(
                    "Attendance for registration %s at event %s already recorded",
                    record.registration_id,
                    record.event_id,
                )

            row = connection.execute(
                f"""
                SELECT {ATTENDANCE_COLUMNS}
                  FROM attendance
                 WHERE registration_id = ? AND event_id = ?
                """,
                (record.registration_id, record.event_id),
            ).fetchone()

        if row is None:
            raise StorageFailure(
                f"Attendance for registration {record.registration_id} vanished after insert"
            )
        return _row_to_attendance(row)

    def update_attendance_bank(
        self,
        attendance_id: str,
        bank_account_number: str,
        bank_name: str,
    ) -> Attendance | None:
        with self._database.connect() as connection:
            connection.execute(
                """
                UPDATE attendance
                   SET bank_account_number = ?,
                       bank_name = ?
                 WHERE id = ?
                """,
                (bank_account_number, bank_name, attendance_id),
            )
            row = connection.execute(
                f"SELECT {ATTENDANCE_COLUMNS} FROM attendance WHERE id = ?",
                (attendance_id,),
            ).fetchone()
        return _row_to_attendance(row) if row else None

    def list_event_attendance(self, event_id: str) -> list[Attendance]:
        with self._database.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT {ATTENDANCE_COLUMNS}
                  FROM attendance
                 WHERE event_id = ?
              ORDER BY check_in_time DESC, id DESC
                """,
                (event_id,),
            ).fetchall()
        return [_row_to_attendance(row) for row in rows]

    def list_attendance(
        self,
        *,
        event_id: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Attendance], int]:
        conditions: list[str] = []
        params: list[Any] = []

        if event_id is not None:
            conditions.append("event_id = ?")
            params.append(event_id)

        where = ("WHERE " + " AND ".join(conditions)) if conditions else ""

        with self._database.connect() as connection:
            rows = connection.execute(
                f"""
                SELECT {ATTENDANCE_COLUMNS}
                  FROM attendance
                  {where}
              ORDER BY check_in_time DESC, id DESC
                 LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
            total = connection.execute(
                f"SELECT COUNT(*) FROM attendance {where}",
                tuple(params),
            ).fetchone()[0]

        return [_row_to_attendance(row) for row in rows], int(total or 0)

    # ------------------------------------------------------------------
    # Badges
    # ------------------------------------------------------------------
    def upsert_badge(self, badge: Badge) -> Badge:
        with self._database.connect() as connection:
            connection.execute(
                """
                INSERT INTO badges (id, registration_id, qr_payload, location, issued_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(registration_id) DO UPDATE SET
                    qr_payload = excluded.qr_payload,
                    location = excluded.location,
                    issued_at = excluded.issued_at
                """,
                (
                    badge.id,
                    badge.registration_id,
                    badge.qr_payload,
                    badge.location,
                    to_iso(badge.issued_at),
                ),
            )
            row = connection.execute(
                "SELECT id, registration_id, qr_payload, location, issued_at FROM badges WHERE registration_id = ?",
                (badge.registration_id,),
            ).fetchone()
        return _row_to_badge(row)

    def get_badge(self, registration_id: str) -> Badge | None:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT id, registration_id, qr_payload, location, issued_at FROM badges WHERE registration_id = ?",
                (registration_id,),
            ).fetchone()
        return _row_to_badge(row) if row else None

    def count_rows(self, table: str, *, where: str = "", params: Iterable[Any] = ()) -> int:
        if table not in {"events", "registrations", "attendance", "badges", "actors"}:
            raise ValueError(f"Unknown table: {table}")
        sql = f"SELECT COUNT(*) FROM {table}" + (f" WHERE {where}" if where else "")
        with self._database.connect() as connection:
            return int(connection.execute(sql, tuple(params)).fetchone()[0])
