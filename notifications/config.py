"""Shared configuration defaults for the notification system."""
from __future__ import annotations

import os
from dataclasses import dataclass

CHANNEL_SMS = "sms"
CHANNEL_EMAIL = "email"
CHANNEL_BOTH = "both"
VALID_CHANNELS = {CHANNEL_SMS, CHANNEL_EMAIL, CHANNEL_BOTH}

EMPLOYEE_ROLE = "employee"
ACTIVE_STATUS = "active"

NO_SHIFTS_TEXT = "No shifts this week."
DEFAULT_SUBJECT = "Notification"

# First existing column wins.
SMS_PREFERENCE_COLUMNS = ("notify_sms", "sms_enabled", "is_sms_enabled", "enable_sms", "sms_notifications")
EMAIL_PREFERENCE_COLUMNS = (
    "notify_email",
    "email_enabled",
    "is_email_enabled",
    "enable_email",
    "email_notifications",
)
GLOBAL_PREFERENCE_COLUMNS = (
    "notifications_enabled",
    "notify_enabled",
    "is_notifications_enabled",
    "enable_notifications",
)

DEFAULT_SMS_DELAY_MS = 5000
DEFAULT_SEND_TIMEOUT_MS = 20000
DEFAULT_REMINDER_CHECK_SECONDS = 60
DEFAULT_PUBLISH_TEMPLATE_ID = 2
DEFAULT_FAIL_RATE_WARN = 0.10


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def default_database_url() -> str:
    data_dir = os.getenv("DATA_DIR") or os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    return f"sqlite:///{os.path.join(data_dir, 'schedule.db')}"


@dataclass(frozen=True)
class NotificationSettings:
    """Runtime knobs for one process, resolved once from the environment."""

    database_url: str
    sms_delay: float = DEFAULT_SMS_DELAY_MS / 1000
    send_timeout: float = DEFAULT_SEND_TIMEOUT_MS / 1000
    reminder_check_seconds: int = DEFAULT_REMINDER_CHECK_SECONDS
    default_publish_template_id: int = DEFAULT_PUBLISH_TEMPLATE_ID
    fail_rate_warn: float = DEFAULT_FAIL_RATE_WARN
    trigger_dedupe_seconds: float = 0.0

    @classmethod
    def from_env(cls) -> "NotificationSettings":
        database_url = (
            os.getenv("DATABASE_URL")
            or os.getenv("SQLALCHEMY_DATABASE_URI")
            or default_database_url()
        )
        return cls(
            database_url=database_url,
            sms_delay=max(0, _env_int("SMS_DELAY", DEFAULT_SMS_DELAY_MS)) / 1000,
            send_timeout=max(1, _env_int("NOTIFY_SEND_TIMEOUT_MS", DEFAULT_SEND_TIMEOUT_MS)) / 1000,
            reminder_check_seconds=max(1, _env_int("REMINDER_CHECK_SECONDS", DEFAULT_REMINDER_CHECK_SECONDS)),
            default_publish_template_id=_env_int("DEFAULT_PUBLISH_TEMPLATE_ID", DEFAULT_PUBLISH_TEMPLATE_ID),
            fail_rate_warn=_env_float("NOTIFY_FAIL_RATE_WARN", DEFAULT_FAIL_RATE_WARN),
            trigger_dedupe_seconds=max(0.0, _env_float("NOTIFY_TRIGGER_DEDUPE_SECONDS", 0.0)),
        )


def normalize_channel(value) -> str:
    slug = str(value or "").strip().lower()
    return slug if slug in VALID_CHANNELS else CHANNEL_BOTH


def includes_sms(channel: str) -> bool:
    return channel in (CHANNEL_SMS, CHANNEL_BOTH)


def includes_email(channel: str) -> bool:
    return channel in (CHANNEL_EMAIL, CHANNEL_BOTH)
