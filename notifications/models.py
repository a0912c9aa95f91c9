from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .config import CHANNEL_EMAIL, CHANNEL_SMS


@dataclass(slots=True, frozen=True)
class Template:
    """Message template as stored by the configuration store."""

    id: int
    type: str
    body: str
    subject: Optional[str] = None
    opening_text: Optional[str] = None
    ending_text: Optional[str] = None
    name: Optional[str] = None


@dataclass(slots=True, frozen=True)
class ShiftSummary:
    date: str
    day_name: str
    start: str
    end: str


@dataclass(slots=True)
class RecipientGroup:
    """Output of the recipient resolver: a name plus zero or more shifts."""

    recipient_id: int
    name: Optional[str] = None
    shifts: List[ShiftSummary] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ChannelPreferences:
    sms_enabled: bool = True
    email_enabled: bool = True
    globally_enabled: bool = True

    @property
    def sms_allowed(self) -> bool:
        return self.sms_enabled and self.globally_enabled

    @property
    def email_allowed(self) -> bool:
        return self.email_enabled and self.globally_enabled


@dataclass(slots=True, frozen=True)
class Recipient:
    """Contact and eligibility state of a user at enrichment time."""

    id: int
    display_name: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    role: Optional[str]
    status: Optional[str]
    preferences: ChannelPreferences = field(default_factory=ChannelPreferences)
    active_employee: bool = False


@dataclass(slots=True, frozen=True)
class Reminder:
    id: int
    week_code: str
    template_id: int
    send_at: datetime
    channel: str
    is_active: bool = True
    is_sent: bool = False


@dataclass(slots=True, frozen=True)
class RenderedMessage:
    sms_text: str
    email_html: str
    subject: str


@dataclass(slots=True)
class RecipientOutcome:
    recipient_id: int
    name: str
    shifts_count: int
    sms: Optional[str] = None
    email: Optional[str] = None
    skipped: Optional[str] = None


@dataclass(slots=True)
class DispatchRun:
    """In-memory record of one dispatch run. Never persisted."""

    run_id: str
    template_id: int
    channel: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    aborted: Optional[str] = None
    recipients_total: int = 0
    recipients_without_shifts: int = 0
    skipped_invalid_state: int = 0
    skipped_no_phone: int = 0
    skipped_no_email: int = 0
    skipped_sms_disabled: int = 0
    skipped_email_disabled: int = 0
    sent_sms: int = 0
    failed_sms: int = 0
    sent_email: int = 0
    failed_email: int = 0
    outcomes: List[RecipientOutcome] = field(default_factory=list)

    def failure_rate(self, channel: str) -> Optional[float]:
        if channel == CHANNEL_SMS:
            sent, failed = self.sent_sms, self.failed_sms
        elif channel == CHANNEL_EMAIL:
            sent, failed = self.sent_email, self.failed_email
        else:
            raise ValueError(f"Unknown channel {channel!r}")
        attempts = sent + failed
        if not attempts:
            return None
        return failed / attempts

    def summary(self) -> Dict[str, object]:
        return {
            "runId": self.run_id,
            "templateId": self.template_id,
            "channel": self.channel,
            "employeesTotal": self.recipients_total,
            "employeesWithoutShifts": self.recipients_without_shifts,
            "skippedInvalidState": self.skipped_invalid_state,
            "skippedNoPhone": self.skipped_no_phone,
            "skippedNoEmail": self.skipped_no_email,
            "skippedSmsDisabled": self.skipped_sms_disabled,
            "skippedEmailDisabled": self.skipped_email_disabled,
            "sentSms": self.sent_sms,
            "failSms": self.failed_sms,
            "sentEmail": self.sent_email,
            "failEmail": self.failed_email,
        }
