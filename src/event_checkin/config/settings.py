from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[3]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)

DOCUMENTS_PATH = Path(os.path.expanduser("~")) / "Documents"
APP_NAME = os.getenv("APP_NAME", "Event Check-in")
APP_DATA_DIR = Path(os.getenv("APP_DATA_DIR", str(DOCUMENTS_PATH / APP_NAME))).expanduser()


@dataclass(frozen=True)
class Settings:
    app_name: str = APP_NAME
    database_path: Path = Path(
        os.getenv("DATABASE_PATH", str(APP_DATA_DIR / "checkin.db"))
    )
    sqlite_busy_timeout: float = float(os.getenv("SQLITE_BUSY_TIMEOUT", "5"))
    scan_timeout_seconds: float = float(os.getenv("SCAN_TIMEOUT_SECONDS", "10"))
    qr_freshness_hours: float = float(os.getenv("QR_FRESHNESS_HOURS", "24"))
    badge_dir: Path = Path(os.getenv("BADGE_DIR", str(APP_DATA_DIR / "badges")))
    base_url: str = os.getenv("BASE_URL", "http://localhost:3000")
    intouch_username: str | None = os.getenv("INTOUCH_USERNAME")
    intouch_password: str | None = os.getenv("INTOUCH_PASSWORD")
    intouch_sender_id: str | None = os.getenv("INTOUCH_SENDER_ID")
    smtp_server: str | None = os.getenv("SMTP_SERVER")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str | None = os.getenv("SMTP_USERNAME")
    smtp_password: str | None = os.getenv("SMTP_PASSWORD")
    from_email: str = os.getenv("FROM_EMAIL", "no-reply@localhost")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def freshness_window(self) -> timedelta:
        return timedelta(hours=self.qr_freshness_hours)

    def __repr__(self) -> str:
        return (
            f"Settings(app_name={self.app_name}, "
            f"database_path={self.database_path}, "
            f"scan_timeout_seconds={self.scan_timeout_seconds}, "
            f"qr_freshness_hours={self.qr_freshness_hours}, "
            f"badge_dir={self.badge_dir}, "
            f"base_url={self.base_url}, "
            f"sms_configured={bool(self.intouch_username and self.intouch_password)}, "
            f"smtp_server={self.smtp_server})"
        )


settings = Settings()
