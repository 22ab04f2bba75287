from __future__ import annotations

from datetime import datetime, timedelta, timezone


class InvalidTimestamp(ValueError):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return to_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: datetime | str | int | float) -> datetime:
    """Parse ISO-8601 text, SQLite datetime text or epoch milliseconds."""

    if isinstance(value, datetime):
        return to_utc(value)

    if isinstance(value, bool):
        raise InvalidTimestamp(f"Unsupported timestamp value: {value!r}")

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidTimestamp(f"Timestamp out of range: {value!r}") from exc

    if isinstance(value, str):
        candidate = value.strip().replace(" ", "T", 1)
        if candidate.endswith(("Z", "z")):
            candidate = candidate[:-1] + "+00:00"
        try:
            return to_utc(datetime.fromisoformat(candidate))
        except OverflowError as exc:
            raise InvalidTimestamp(f"Timestamp out of range: {value!r}") from exc
        except ValueError:
            for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M:%S.%f"):
                try:
                    return to_utc(datetime.strptime(value.strip(), fmt))
                except ValueError:
                    continue

    raise InvalidTimestamp(f"Unsupported timestamp value: {value!r}")


def parse_optional_timestamp(value: str | None) -> datetime | None:
    if value is None or value == "":
        return None
    return parse_timestamp(value)


def is_expired(issued_at: datetime, window: timedelta, *, now: datetime | None = None) -> bool:
    reference = now or utc_now()
    return to_utc(reference) - to_utc(issued_at) > window


def format_relative_time(value: datetime | str, *, now: datetime | None = None) -> str:
    reference = to_utc(now) if now else utc_now()
    moment = parse_timestamp(value)

    delta = reference - moment
    total_seconds = int(delta.total_seconds())

    if total_seconds < 60:
        return "just now"

    minutes = total_seconds // 60
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"

    hours = minutes // 60
    if hours == 1:
        return "1 hour ago"
    if hours < 24:
        return f"{hours} hours ago"

    days = hours // 24
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"

    weeks = days // 7
    if weeks == 1:
        return "1 week ago"
    if weeks < 5:
        return f"{weeks} weeks ago"

    months = days // 30
    if months == 1:
        return "1 month ago"
    if months < 12:
        return f"{months} months ago"

    years = days // 365
    if years == 1:
        return "1 year ago"
    return f"{years} years ago"
