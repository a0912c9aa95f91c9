"""Process-wide wiring: settings, store, probed columns and channel clients."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable

from .channels import EmailRelay, SmsGateway
from .config import NotificationSettings
from .db import create_db_engine, create_session_factory, init_db
from .preferences import PreferenceColumns, probe_preference_columns
from .service import DeliveryEngine
from .store import ScheduleStore

LOGGER = logging.getLogger(__name__)


@dataclass
class NotificationRuntime:
    settings: NotificationSettings
    store: ScheduleStore
    columns: PreferenceColumns
    sms_send: Callable[[str, str], Any]
    email_send: Callable[[str, str, str], Any]

    def build_engine(self) -> DeliveryEngine:
        """A fresh engine per event loop; its SMS queue worker lives on that loop."""
        return DeliveryEngine(
            self.store,
            self.columns,
            sms_send=self.sms_send,
            email_send=self.email_send,
            sms_delay=self.settings.sms_delay,
            send_timeout=self.settings.send_timeout,
            fail_rate_warn=self.settings.fail_rate_warn,
        )


def create_runtime(settings: NotificationSettings, *, create_tables: bool = False) -> NotificationRuntime:
    engine = create_db_engine(settings.database_url)
    if create_tables:
        init_db(engine)
    store = ScheduleStore(engine, create_session_factory(engine))
    # Probed once per process; restart to pick up new preference columns.
    columns = probe_preference_columns(store)
    return NotificationRuntime(
        settings=settings,
        store=store,
        columns=columns,
        sms_send=SmsGateway(timeout=settings.send_timeout).send,
        email_send=EmailRelay(timeout=settings.send_timeout).send,
    )


@lru_cache(maxsize=1)
def get_runtime() -> NotificationRuntime:
    return create_runtime(NotificationSettings.from_env())
