"""Due-reminder scan, run on every beat tick.

A reminder moves pending -> due (``send_at <= now``) -> fired (``is_sent``).
The persisted ``is_sent`` flag is the only guard against double firing: it is
read fresh by every tick's query and written as soon as the reminder's
dispatch has been started, so a slow dispatch can never be picked up again
by a later, overlapping tick.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from .db import utcnow
from .events import log_event, make_run_id, short_error
from .models import Reminder
from .service import DeliveryEngine
from .store import ScheduleStore

LOGGER = logging.getLogger(__name__)


class ReminderScheduler:
    def __init__(
        self,
        store: ScheduleStore,
        engine: DeliveryEngine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.engine = engine
        self.clock = clock

    async def tick(self) -> int:
        """Fire every due reminder once. Returns how many were fired."""
        try:
            due = self.store.due_reminders(self.clock())
        except Exception as exc:
            log_event("REMINDER_LOOP_ERROR", level=logging.ERROR, error=short_error(exc))
            return 0

        fired = 0
        for reminder in due:
            try:
                if await self._fire(reminder):
                    fired += 1
            except Exception as exc:
                log_event(
                    "REMINDER_ERROR",
                    level=logging.ERROR,
                    reminderId=reminder.id,
                    weekCode=reminder.week_code,
                    error=short_error(exc),
                )
        return fired

    async def _fire(self, reminder: Reminder) -> bool:
        # Zero shifts still fires: the engine adds every active employee.
        shift_ids = self.store.shift_ids_for_week(reminder.week_code)
        run_id = make_run_id("reminder", reminder.id)
        dispatch = asyncio.ensure_future(
            self.engine.dispatch(shift_ids, reminder.template_id, reminder.channel, run_id=run_id)
        )
        # The task has not run yet; losing or failing the claim cancels it before any send.
        try:
            claimed = self.store.mark_reminder_sent(reminder.id)
        except Exception:
            dispatch.cancel()
            raise
        if not claimed:
            dispatch.cancel()
            log_event("REMINDER_ALREADY_FIRED", reminderId=reminder.id, weekCode=reminder.week_code)
            return False

        run = await dispatch
        log_event(
            "REMINDER_FIRED",
            reminderId=reminder.id,
            weekCode=reminder.week_code,
            runId=run_id,
            shiftIdsLen=len(shift_ids),
            aborted=run.aborted,
        )
        return True


async def run_tick(store: ScheduleStore, engine: DeliveryEngine, now: Optional[datetime] = None) -> int:
    clock = (lambda: now) if now is not None else utcnow
    try:
        return await ReminderScheduler(store, engine, clock).tick()
    finally:
        await engine.aclose()
