from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from celery import shared_task

from .events import log_event, short_error
from .runtime import NotificationRuntime, get_runtime
from .scheduler import run_tick

LOGGER = logging.getLogger(__name__)

MODE_PUBLISH = "publish"
MODE_NOTIFY = "notify"


async def _dispatch_week(
    runtime: NotificationRuntime,
    week_code: str,
    template_id: int,
    channel: str,
    mode: str,
    run_id: Optional[str],
) -> Dict[str, Any]:
    prefix = "PUBLISH_BG" if mode == MODE_PUBLISH else "WEEK_NOTIFY_BG"
    base = {"bgRunId": run_id, "weekCode": week_code}
    engine = runtime.build_engine()
    try:
        log_event(f"{prefix}_START", templateId=template_id, channel=channel, mode="SEND_ALL_WEEK_SHIFTS", **base)
        shift_ids = runtime.store.shift_ids_for_week(week_code)
        if not shift_ids:
            log_event(f"{prefix}_NO_SHIFTS", willNotifyAllActiveEmployees=True, **base)
        run = await engine.dispatch(shift_ids, template_id, channel, run_id=run_id)
        log_event(f"{prefix}_DONE", shiftIdsLen=len(shift_ids), aborted=run.aborted, **base)
        return run.summary()
    except Exception as exc:
        log_event(f"{prefix}_ERROR", level=logging.ERROR, error=short_error(exc), **base)
        return {"runId": run_id, "error": str(exc)}
    finally:
        await engine.aclose()


async def _dispatch_recipients(
    runtime: NotificationRuntime,
    recipient_ids: List[int],
    template_id: int,
    channel: str,
    week_code: Optional[str],
    run_id: Optional[str],
) -> Dict[str, Any]:
    base = {"bgRunId": run_id, "weekCode": week_code}
    engine = runtime.build_engine()
    try:
        log_event("MANUAL_NOTIFY_BG_START", templateId=template_id, channel=channel, recipientsLen=len(recipient_ids), **base)
        run = await engine.dispatch_to(recipient_ids, template_id, channel, week_code=week_code, run_id=run_id)
        log_event("MANUAL_NOTIFY_BG_DONE", aborted=run.aborted, **base)
        return run.summary()
    except Exception as exc:
        log_event("MANUAL_NOTIFY_BG_ERROR", level=logging.ERROR, error=short_error(exc), **base)
        return {"runId": run_id, "error": str(exc)}
    finally:
        await engine.aclose()


@shared_task(name="notifications.tasks.dispatch_week")
def dispatch_week(
    week_code: str,
    template_id: int,
    channel: str = "both",
    mode: str = MODE_NOTIFY,
    run_id: Optional[str] = None,
) -> Dict[str, Any]:
    return asyncio.run(_dispatch_week(get_runtime(), week_code, template_id, channel, mode, run_id))


@shared_task(name="notifications.tasks.dispatch_recipients")
def dispatch_recipients(
    recipient_ids: List[int],
    template_id: int,
    channel: str = "both",
    week_code: Optional[str] = None,
    run_id: Optional[str] = None,
) -> Dict[str, Any]:
    return asyncio.run(_dispatch_recipients(get_runtime(), recipient_ids, template_id, channel, week_code, run_id))


@shared_task(name="notifications.tasks.scan_due_reminders")
def scan_due_reminders() -> str:
    try:
        runtime = get_runtime()
        fired = asyncio.run(run_tick(runtime.store, runtime.build_engine()))
    except Exception as exc:
        log_event("REMINDER_LOOP_ERROR", level=logging.ERROR, error=short_error(exc))
        return "0"
    if fired:
        LOGGER.info("Fired %d due reminders", fired)
    return str(fired)
