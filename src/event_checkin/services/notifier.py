from __future__ import annotations

import logging
import re
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from enum import Enum
from typing import Any, Mapping, Optional, Protocol

import requests

from event_checkin.models import Registration

logger = logging.getLogger(__name__)

INTOUCH_SMS_URL = "https://www.intouchsms.co.rw/api/sendsms/.json"
RWANDA_PHONE_PATTERN = re.compile(r"^250\d{9}$")


class NotificationOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class Notifier(Protocol):
    def notify(
        self,
        registration: Registration,
        outcome: NotificationOutcome,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


def normalize_phone_number(raw: str) -> str | None:
    """Return the number as ``250XXXXXXXXX`` or None when it cannot be used."""

    phone = re.sub(r"[\s\-()]", "", raw or "")
    if phone.startswith("+250"):
        phone = phone[4:]
    elif phone.startswith("250"):
        phone = phone[3:]
    elif phone.startswith("0"):
        phone = phone[1:]

    phone = f"250{phone}"
    if not RWANDA_PHONE_PATTERN.match(phone):
        return None
    return phone


def compose_message(
    registration: Registration,
    outcome: NotificationOutcome,
    extra: Optional[Mapping[str, Any]] = None,
) -> str:
    if NotificationOutcome(outcome) is NotificationOutcome.APPROVED:
        message = f"Dear {registration.full_name}, your registration for the event has been approved. "
        badge_url = (extra or {}).get("badge_url")
        if badge_url:
            message += f"Your event badge is available at: {badge_url}"
        return message.strip()
    return (
        f"Dear {registration.full_name}, we regret to inform you that your "
        "registration for the event has been rejected."
    )


@dataclass
class SmsSender:
    username: Optional[str]
    password: Optional[str]
    sender_id: Optional[str]
    session: Optional[requests.Session] = None
    timeout: float = 10.0

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password and self.sender_id)

    def send(self, phone_number: str, message: str) -> bool:
        if not self.configured:
            logger.warning("Intouch SMS credentials not configured")
            return False

        recipient = normalize_phone_number(phone_number)
        if recipient is None:
            logger.warning("Invalid phone number format: %s", phone_number)
            return False

        params = {
            "username": self.username,
            "password": self.password,
            "sender": (self.sender_id or "").replace("+", ""),
            "recipient": recipient,
            "message": message,
        }
        http = self.session or requests
        response = http.get(INTOUCH_SMS_URL, params=params, timeout=self.timeout)
        response.raise_for_status()
        body = response.json()

        if body.get("success"):
            logger.info("SMS notification sent to %s", recipient)
            return True

        logger.warning("SMS sending failed: %s", body)
        return False


@dataclass
class EmailSender:
    server: Optional[str]
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    from_email: str = "no-reply@localhost"

    @property
    def configured(self) -> bool:
        return bool(self.server)

    def send(self, to_email: str, subject: str, body: str) -> bool:
        if not self.configured:
            logger.warning("SMTP server not configured; skipping email to %s", to_email)
            return False

        msg = MIMEMultipart()
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        with smtplib.SMTP(self.server, self.port) as smtp:
            smtp.starttls()
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(msg, to_addrs=[to_email])

        logger.info("Email sent to %s", to_email)
        return True


class MessageNotifier:
    """Sends the status-change SMS and email. Each channel fails independently."""

    def __init__(self, sms: SmsSender, email: EmailSender) -> None:
        self._sms = sms
        self._email = email

    def notify(
        self,
        registration: Registration,
        outcome: NotificationOutcome,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        outcome = NotificationOutcome(outcome)
        message = compose_message(registration, outcome, extra)

        try:
            self._sms.send(registration.phone_number, message)
        except Exception:
            logger.exception("Error sending SMS notification for registration %s", registration.id)

        if not registration.email:
            return

        subject = f"Registration {outcome.value}"
        try:
            self._email.send(registration.email, subject, message)
        except Exception:
            logger.exception("Error sending email notification for registration %s", registration.id)
