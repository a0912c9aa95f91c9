from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Sequence, Set

from .collectors import is_active_employee
from .config import EMAIL_PREFERENCE_COLUMNS, GLOBAL_PREFERENCE_COLUMNS, SMS_PREFERENCE_COLUMNS
from .events import log_event, short_error
from .models import ChannelPreferences, Recipient
from .store import EMAIL_FLAG, GLOBAL_FLAG, SMS_FLAG, ScheduleStore

LOGGER = logging.getLogger(__name__)

FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}


@dataclass(slots=True, frozen=True)
class PreferenceColumns:
    """Resolved opt-in column names; ``None`` means "absent, default enabled"."""

    sms: Optional[str] = None
    email: Optional[str] = None
    global_: Optional[str] = None


def pick_column(candidates: Sequence[str], existing: Set[str]) -> Optional[str]:
    return next((name for name in candidates if name in existing), None)


def resolve_preference_columns(existing: Iterable[str]) -> PreferenceColumns:
    names = set(existing)
    return PreferenceColumns(
        sms=pick_column(SMS_PREFERENCE_COLUMNS, names),
        email=pick_column(EMAIL_PREFERENCE_COLUMNS, names),
        global_=pick_column(GLOBAL_PREFERENCE_COLUMNS, names),
    )


def probe_preference_columns(store: ScheduleStore) -> PreferenceColumns:
    """Inspect the users table once at startup. Never fatal."""
    try:
        columns = resolve_preference_columns(store.user_column_names())
    except Exception as exc:
        log_event("NOTIFY_PREFS_COLUMNS_ERROR", level=logging.WARNING, error=short_error(exc))
        return PreferenceColumns()
    log_event("NOTIFY_PREFS_COLUMNS", smsCol=columns.sms, emailCol=columns.email, globalCol=columns.global_)
    return columns


def preference_flag(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_VALUES
    return bool(value)


class ContactResolver:
    def __init__(self, store: ScheduleStore, columns: PreferenceColumns) -> None:
        self.store = store
        self.columns = columns

    def enrich(self, recipient_ids: Iterable[int]) -> Dict[int, Recipient]:
        """Current contact, role/status and opt-in state, loaded in one batch.

        Users missing from the store are absent from the result.
        """
        rows = self.store.users_by_ids(
            recipient_ids,
            sms_column=self.columns.sms,
            email_column=self.columns.email,
            global_column=self.columns.global_,
        )
        recipients: Dict[int, Recipient] = {}
        for row in rows:
            prefs = ChannelPreferences(
                sms_enabled=preference_flag(row.get(SMS_FLAG)),
                email_enabled=preference_flag(row.get(EMAIL_FLAG)),
                globally_enabled=preference_flag(row.get(GLOBAL_FLAG)),
            )
            recipients[int(row["id"])] = Recipient(
                id=int(row["id"]),
                display_name=row.get("full_name"),
                phone=(row.get("phone") or "").strip() or None,
                email=(row.get("email") or "").strip() or None,
                role=row.get("role"),
                status=row.get("status"),
                preferences=prefs,
                active_employee=is_active_employee(row.get("role"), row.get("status")),
            )
        return recipients
