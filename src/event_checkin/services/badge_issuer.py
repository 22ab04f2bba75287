from __future__ import annotations

import io
import logging
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import qrcode
from PIL import Image, ImageDraw, ImageFont
from qrcode.constants import ERROR_CORRECT_M

from event_checkin.data.blob_store import BlobStore
from event_checkin.data.store import IdentityStore
from event_checkin.errors import BadgeNotAvailable, EventNotFound
from event_checkin.models import Badge, Event, Registration, RegistrationStatus
from event_checkin.services import qr_codec
from event_checkin.utils.time import is_expired, utc_now

logger = logging.getLogger(__name__)

BADGE_SIZE = (400, 600)
QR_SIZE = 180
HEADER_COLOR = "#4a90e2"
TEXT_COLOR = "#333333"
MUTED_COLOR = "#666666"
RULE_COLOR = "#dddddd"


def badge_key(registration_id: str) -> str:
    return f"badge_{registration_id}.pdf"


def render_qr_image(payload: str, size: int = QR_SIZE) -> Image.Image:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=10, border=1)
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    return image.resize((size, size), Image.NEAREST)


def _centered(draw: ImageDraw.ImageDraw, y: int, text: str, font, fill: str) -> None:
    left, _, right, _ = draw.textbbox((0, 0), text, font=font)
    x = max(10, (BADGE_SIZE[0] - (right - left)) // 2)
    draw.text((x, y), text, font=font, fill=fill)


def render_badge_pdf(event: Event, registration: Registration, payload: str) -> bytes:
    """Lay out a single-page badge and return it as PDF bytes."""

    width, height = BADGE_SIZE
    canvas = Image.new("RGB", BADGE_SIZE, "white")
    draw = ImageDraw.Draw(canvas)
    font = ImageFont.load_default()

    draw.rectangle((0, 0, width, 80), fill=HEADER_COLOR)
    _centered(draw, 35, event.name, font, "white")

    _centered(draw, 120, registration.full_name, font, TEXT_COLOR)
    draw.line((50, 200, 350, 200), fill=RULE_COLOR, width=2)

    canvas.paste(render_qr_image(payload), ((width - QR_SIZE) // 2, 220))

    _centered(draw, 410, registration.organization or "Guest", font, MUTED_COLOR)
    draw.text((50, 440), "Event Details:", font=font, fill=TEXT_COLOR)
    draw.text((50, 465), f"Date: {event.date_time:%d/%m/%Y}", font=font, fill=MUTED_COLOR)
    draw.text((50, 485), f"Time: {event.date_time:%H:%M}", font=font, fill=MUTED_COLOR)
    draw.text((50, 505), f"Location: {event.location}", font=font, fill=MUTED_COLOR)

    _centered(draw, 555, "Please present this badge at the event entrance", font, "#888888")
    draw.rectangle((5, 5, width - 6, height - 6), outline=RULE_COLOR, width=1)

    buffer = io.BytesIO()
    canvas.save(buffer, format="PDF", resolution=72.0)
    return buffer.getvalue()


class BadgeIssuer:
    def __init__(
        self,
        store: IdentityStore,
        blob_store: BlobStore,
        *,
        base_url: str = "http://localhost:3000",
        freshness_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._blob_store = blob_store
        self._base_url = base_url.rstrip("/")
        self._freshness_window = freshness_window
        self._clock = clock

    def issue(self, registration: Registration, event: Optional[Event] = None) -> Badge:
        """Mint a fresh payload, render the badge and store it, replacing any previous one."""

        if registration.status is not RegistrationStatus.APPROVED:
            raise BadgeNotAvailable(registration.id, registration.status.value)

        if event is None:
            event = self._store.get_event(registration.event_id)
            if event is None:
                raise EventNotFound(registration.event_id)

        issued_at = self._clock()
        payload = qr_codec.encode(registration.id, event.id, registration.full_name, issued_at)
        document = render_badge_pdf(event, registration, payload)
        location = self._blob_store.put(
            badge_key(registration.id),
            document,
            content_type="application/pdf",
        )

        badge = self._store.upsert_badge(
            Badge(
                id=str(uuid.uuid4()),
                registration_id=registration.id,
                qr_payload=payload,
                location=location,
                issued_at=issued_at,
            )
        )
        logger.info("Issued badge for registration %s", registration.id)
        return badge

    def fetch(self, registration: Registration) -> Badge:
        """Return the stored badge, re-issuing it when missing or past the freshness window."""

        badge = self._store.get_badge(registration.id)
        if badge is not None and self._is_current(badge):
            return badge

        logger.info("Re-issuing badge for registration %s", registration.id)
        return self.issue(registration)

    def badge_url(self, badge: Badge) -> str:
        return f"{self._base_url}/badges/{Path(badge.location).name}"

    def _is_current(self, badge: Badge) -> bool:
        if is_expired(badge.issued_at, self._freshness_window, now=self._clock()):
            return False
        return self._blob_store.exists(badge_key(badge.registration_id))
