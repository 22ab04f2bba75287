"""Badge QR payload format.

A payload is a compact JSON object::

    {"registrationId": "...", "eventId": "...", "attendee": "...", "timestamp": "..."}

``attendeeName`` is accepted in place of ``attendee`` and ``issuedAt`` in place
of ``timestamp``. The timestamp is optional; it may be ISO-8601 text or epoch
milliseconds. Scanned payloads are untrusted input.
"""

from __future__ import annotations

import json
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from event_checkin.utils.time import InvalidTimestamp, parse_timestamp, to_iso

MAX_PAYLOAD_LENGTH = 4096

REGISTRATION_KEYS = ("registrationId",)
EVENT_KEYS = ("eventId",)
ATTENDEE_KEYS = ("attendeeName", "attendee")
ISSUED_AT_KEYS = ("issuedAt", "timestamp")


class MalformedPayload(ValueError):
    """The payload is not a well-formed badge record.

    ``field`` is set when the structure parsed but a required field was
    absent or empty.
    """

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True, slots=True)
class ScanPayload:
    registration_id: str
    event_id: str
    attendee_name: str
    issued_at: Optional[datetime] = None


def _decode_symbol_data(raw: bytes | str) -> str:
    if not raw:
        return ""

    if isinstance(raw, str):
        decoded = raw
    else:
        try:
            decoded = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPayload("Payload is not valid UTF-8") from exc

    normalized = unicodedata.normalize("NFC", decoded)
    return normalized.strip()


def _first_present(data: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _required_text(data: Mapping[str, Any], keys: tuple[str, ...], label: str) -> str:
    value = _first_present(data, keys)
    if value is None:
        raise MalformedPayload(f"Missing {label}", field=label)

    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise MalformedPayload(f"{label} must be text")

    text = str(value).strip()
    if not text:
        raise MalformedPayload(f"Missing {label}", field=label)
    return text


def encode(
    registration_id: str,
    event_id: str,
    attendee_name: str,
    issued_at: Optional[datetime] = None,
) -> str:
    for label, value in (
        ("registration ID", registration_id),
        ("event ID", event_id),
        ("attendee name", attendee_name),
    ):
        if not value or not str(value).strip():
            raise MalformedPayload(f"Missing {label}", field=label)

    record: dict[str, str] = {
        "registrationId": str(registration_id).strip(),
        "eventId": str(event_id).strip(),
        "attendee": str(attendee_name).strip(),
    }
    if issued_at is not None:
        record["timestamp"] = to_iso(issued_at)

    return json.dumps(record, separators=(",", ":"), ensure_ascii=False)


def decode(payload: bytes | str) -> ScanPayload:
    if payload is None or not isinstance(payload, (bytes, bytearray, str)):
        raise MalformedPayload("Payload must be text")

    text = _decode_symbol_data(bytes(payload) if isinstance(payload, bytearray) else payload)
    if not text:
        raise MalformedPayload("Payload is empty")
    if len(text) > MAX_PAYLOAD_LENGTH:
        raise MalformedPayload("Payload is too large")

    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as exc:
        raise MalformedPayload("Payload is not JSON") from exc

    if not isinstance(data, dict):
        raise MalformedPayload("Payload must be a JSON object")

    registration_id = _required_text(data, REGISTRATION_KEYS, "registration ID")
    event_id = _required_text(data, EVENT_KEYS, "event ID")
    attendee_name = _required_text(data, ATTENDEE_KEYS, "attendee name")

    issued_at: Optional[datetime] = None
    raw_issued_at = _first_present(data, ISSUED_AT_KEYS)
    if raw_issued_at is not None:
        try:
            issued_at = parse_timestamp(raw_issued_at)
        except InvalidTimestamp as exc:
            raise MalformedPayload(f"Invalid timestamp: {raw_issued_at!r}") from exc

    return ScanPayload(
        registration_id=registration_id,
        event_id=event_id,
        attendee_name=attendee_name,
        issued_at=issued_at,
    )
