from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from event_checkin.config.logging import configure_logging
from event_checkin.config.settings import settings
from event_checkin.data import Database, IdentityStore, LocalBlobStore
from event_checkin.errors import CheckinError
from event_checkin.models import Event, RegistrationRequest
from event_checkin.services import (
    ActorService,
    AttendanceService,
    BadgeIssuer,
    EmailSender,
    EventService,
    MessageNotifier,
    RegistrationService,
    ScanReconciler,
    SmsSender,
)
from event_checkin.utils.background import run_inline
from event_checkin.utils.time import format_relative_time, parse_timestamp


class Application:
    """Wires the services together from ``settings``."""

    def __init__(self) -> None:
        self.store = IdentityStore(
            Database(settings.database_path, busy_timeout=settings.sqlite_busy_timeout)
        )
        self.badges = BadgeIssuer(
            self.store,
            LocalBlobStore(settings.badge_dir),
            base_url=settings.base_url,
            freshness_window=settings.freshness_window,
        )
        notifier = MessageNotifier(
            SmsSender(
                settings.intouch_username,
                settings.intouch_password,
                settings.intouch_sender_id,
            ),
            EmailSender(
                settings.smtp_server,
                settings.smtp_port,
                settings.smtp_username,
                settings.smtp_password,
                settings.from_email,
            ),
        )
        self.reconciler = ScanReconciler(
            self.store,
            freshness_window=settings.freshness_window,
            timeout=settings.scan_timeout_seconds,
        )
        self.actors = ActorService(self.store)
        self.events = EventService(self.store)
        # A one-shot process would exit before a daemon thread finished.
        self.registrations = RegistrationService(
            self.store,
            badge_issuer=self.badges,
            notifier=notifier,
            dispatch=run_inline,
        )
        self.attendance = AttendanceService(self.store, self.reconciler)

    def close(self) -> None:
        self.reconciler.close()


def _cmd_init_db(app: Application, args: argparse.Namespace) -> None:
    app.store.initialize()
    print(f"Database ready at {app.store.database.path}")


def _cmd_add_actor(app: Application, args: argparse.Namespace) -> None:
    actor = app.actors.add(args.name, args.role, actor_id=args.id)
    print(f"{actor.role.value} {actor.id} ({actor.name})")


def _cmd_create_event(app: Application, args: argparse.Namespace) -> None:
    actor = app.actors.get(args.actor)
    event = app.events.create(
        actor,
        Event(
            name=args.name,
            event_type=args.type,
            date_time=parse_timestamp(args.date),
            location=args.location,
            max_capacity=args.capacity,
            financial_support=args.financial_support,
            description=args.description,
            id=args.id or "",
        ),
    )
    print(f"{event.id}  {event.display_label()}")


def _cmd_register(app: Application, args: argparse.Namespace) -> None:
    registration = app.registrations.submit(
        args.event,
        RegistrationRequest(
            full_name=args.name,
            phone_number=args.phone,
            national_id=args.national_id,
            passport=args.passport,
            email=args.email,
            organization=args.organization,
        ),
    )
    print(f"{registration.id}  {registration.status.value}")


def _cmd_approve(app: Application, args: argparse.Namespace) -> None:
    registration = app.registrations.approve(args.registration, app.actors.get(args.actor))
    print(f"{registration.id}  {registration.status.value}")


def _cmd_reject(app: Application, args: argparse.Namespace) -> None:
    registration = app.registrations.reject(args.registration, app.actors.get(args.actor))
    print(f"{registration.id}  {registration.status.value}")


def _cmd_badge(app: Application, args: argparse.Namespace) -> None:
    registration = app.registrations.get(args.registration)
    badge = app.badges.fetch(registration)
    print(badge.location)
    print(app.badges.badge_url(badge))


def _cmd_scan(app: Application, args: argparse.Namespace) -> None:
    payload = sys.stdin.read() if args.payload == "-" else args.payload
    result = app.attendance.check_in(app.actors.get(args.actor), payload)
    record = result.attendance
    if result.already_checked_in:
        print(f"{result.message}: {record.full_name} ({format_relative_time(record.check_in_time)})")
    else:
        print(f"{result.message}: {record.full_name}")


def _cmd_attendance(app: Application, args: argparse.Namespace) -> None:
    page = app.attendance.scanned_attendees(args.page, args.limit, event_id=args.event)
    for record in page.items:
        print(f"{record.check_in_time:%Y-%m-%d %H:%M}  {record.full_name}  {record.organization}")
    print(f"Page {page.page}/{max(page.total_pages, 1)} ({page.total} total)")


def _cmd_bank_info(app: Application, args: argparse.Namespace) -> None:
    record = app.attendance.update_bank_info(
        app.actors.get(args.actor),
        args.attendance,
        args.account,
        args.bank,
    )
    print(f"{record.id}  {record.bank_name} {record.bank_account_number}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="event-checkin",
        description="Event registration and QR attendance tools.",
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")
    commands = parser.add_subparsers(dest="command", required=True)

    init_db = commands.add_parser("init-db", help="Create or migrate the database")
    init_db.set_defaults(handler=_cmd_init_db)

    add_actor = commands.add_parser("add-actor", help="Add an admin, staff or public actor")
    add_actor.add_argument("name")
    add_actor.add_argument("--role", choices=["admin", "staff", "public"], default="staff")
    add_actor.add_argument("--id")
    add_actor.set_defaults(handler=_cmd_add_actor)

    create_event = commands.add_parser("create-event", help="Create an event")
    create_event.add_argument("--actor", required=True)
    create_event.add_argument("--name", required=True)
    create_event.add_argument("--type", default="conference")
    create_event.add_argument("--date", required=True, help="ISO-8601 date and time")
    create_event.add_argument("--location", required=True)
    create_event.add_argument("--capacity", type=int, default=0)
    create_event.add_argument("--description", default="")
    create_event.add_argument("--financial-support", action="store_true")
    create_event.add_argument("--id")
    create_event.set_defaults(handler=_cmd_create_event)

    register = commands.add_parser("register", help="Submit a registration")
    register.add_argument("--event", required=True)
    register.add_argument("--name", required=True)
    register.add_argument("--phone", required=True)
    register.add_argument("--national-id")
    register.add_argument("--passport")
    register.add_argument("--email")
    register.add_argument("--organization")
    register.set_defaults(handler=_cmd_register)

    for name, handler in (("approve", _cmd_approve), ("reject", _cmd_reject)):
        decide = commands.add_parser(name, help=f"{name.capitalize()} a pending registration")
        decide.add_argument("registration")
        decide.add_argument("--actor", required=True)
        decide.set_defaults(handler=handler)

    badge = commands.add_parser("badge", help="Fetch the badge of an approved registration")
    badge.add_argument("registration")
    badge.set_defaults(handler=_cmd_badge)

    scan = commands.add_parser("scan", help="Record attendance from a scanned payload")
    scan.add_argument("payload", help="Scanned text, or - to read it from stdin")
    scan.add_argument("--actor", required=True)
    scan.set_defaults(handler=_cmd_scan)

    attendance = commands.add_parser("attendance", help="List scanned attendees")
    attendance.add_argument("--event")
    attendance.add_argument("--page", type=int, default=1)
    attendance.add_argument("--limit", type=int, default=10)
    attendance.set_defaults(handler=_cmd_attendance)

    bank_info = commands.add_parser("bank-info", help="Record payout details for an attendee")
    bank_info.add_argument("attendance")
    bank_info.add_argument("--account", required=True)
    bank_info.add_argument("--bank", required=True)
    bank_info.add_argument("--actor", required=True)
    bank_info.set_defaults(handler=_cmd_bank_info)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    app = Application()
    try:
        if args.command != "init-db":
            app.store.initialize()
        args.handler(app, args)
    except CheckinError as exc:
        print(exc, file=sys.stderr)
        return 1
    finally:
        app.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
