"""Entry points that accept a notification request and hand it to a worker.

Each call validates synchronously, launches the dispatch as a background
Celery task and returns straight away with the run id. The outcome of the run
is visible only through the structured logs.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Optional, Tuple

from .collectors import normalize_ids
from .config import CHANNEL_BOTH, normalize_channel
from .errors import InvalidTrigger, TemplateNotFound
from .events import log_event, make_run_id
from .runtime import NotificationRuntime, get_runtime
from .weeks import is_week_code
from . import tasks

LOGGER = logging.getLogger(__name__)

KIND_PUBLISH = "publish"
KIND_WEEK = "week_notify"
KIND_MANUAL = "manual_notify"


@dataclass(slots=True, frozen=True)
class Acknowledgement:
    run_id: str
    kind: str
    template_id: int
    channel: str
    week_code: Optional[str] = None
    recipients: int = 0
    deduplicated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": True,
            "message": "Notification process started",
            "runId": self.run_id,
            "kind": self.kind,
            "weekCode": self.week_code,
            "templateId": self.template_id,
            "channel": self.channel,
            "recipients": self.recipients,
            "deduplicated": self.deduplicated,
        }


class TriggerGuard:
    """Remembers recent triggers so identical ones inside a window are not re-run."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._seen: Dict[Hashable, Tuple[float, str]] = {}

    def claim(self, key: Hashable, run_id: str, window: float) -> Optional[str]:
        """Return the earlier run id for a duplicate, else record ``run_id``."""
        if window <= 0:
            return None
        now = self._clock()
        with self._lock:
            self._seen = {k: v for k, v in self._seen.items() if now - v[0] < window}
            previous = self._seen.get(key)
            if previous is not None:
                return previous[1]
            self._seen[key] = (now, run_id)
            return None

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()


guard = TriggerGuard()


def parse_template_id(value: Any) -> int:
    try:
        template_id = int(str(value).strip())
    except (TypeError, ValueError):
        raise InvalidTrigger(f"Invalid template id: {value!r}") from None
    if template_id <= 0:
        raise InvalidTrigger(f"Invalid template id: {value!r}")
    return template_id


def _require_template(runtime: NotificationRuntime, template_id: int) -> None:
    if runtime.store.get_template(template_id) is None:
        raise TemplateNotFound(template_id)


def _require_week(week_code: Any) -> str:
    if not is_week_code(week_code):
        raise InvalidTrigger(f"Invalid week code: {week_code!r}")
    return str(week_code).strip()


def _deduplicated(runtime: NotificationRuntime, key: Hashable, ack: Acknowledgement) -> Optional[Acknowledgement]:
    previous = guard.claim(key, ack.run_id, runtime.settings.trigger_dedupe_seconds)
    if previous is None:
        return None
    log_event("TRIGGER_DEDUPLICATED", kind=ack.kind, weekCode=ack.week_code, runId=previous)
    return Acknowledgement(
        run_id=previous,
        kind=ack.kind,
        template_id=ack.template_id,
        channel=ack.channel,
        week_code=ack.week_code,
        recipients=ack.recipients,
        deduplicated=True,
    )


def notify_week(
    week_code: Any,
    template_id: Any,
    channel: Any = CHANNEL_BOTH,
    *,
    mode: str = tasks.MODE_NOTIFY,
    runtime: Optional[NotificationRuntime] = None,
) -> Acknowledgement:
    """Notify everyone about one week's shifts (active employees included)."""
    runtime = runtime or get_runtime()
    week_code = _require_week(week_code)
    template_id = parse_template_id(template_id)
    _require_template(runtime, template_id)

    kind = KIND_PUBLISH if mode == tasks.MODE_PUBLISH else KIND_WEEK
    ack = Acknowledgement(
        run_id=make_run_id(kind, week_code),
        kind=kind,
        template_id=template_id,
        channel=normalize_channel(channel),
        week_code=week_code,
    )
    duplicate = _deduplicated(runtime, (kind, week_code, template_id, ack.channel), ack)
    if duplicate is not None:
        return duplicate

    tasks.dispatch_week.apply_async(
        kwargs={
            "week_code": week_code,
            "template_id": template_id,
            "channel": ack.channel,
            "mode": mode,
            "run_id": ack.run_id,
        },
        task_id=ack.run_id,
    )
    log_event("TRIGGER_ACCEPTED", **ack.to_dict())
    return ack


def publish_week(
    week_code: Any,
    template_id: Any = None,
    *,
    runtime: Optional[NotificationRuntime] = None,
) -> Tuple[Dict[str, Any], Acknowledgement]:
    """Flip the week's publish flag, then notify in the background over both channels."""
    runtime = runtime or get_runtime()
    week_code = _require_week(week_code)
    template_id = parse_template_id(template_id or runtime.settings.default_publish_template_id)
    _require_template(runtime, template_id)

    status = runtime.store.publish_week(week_code)
    ack = notify_week(week_code, template_id, CHANNEL_BOTH, mode=tasks.MODE_PUBLISH, runtime=runtime)
    return status, ack


def notify_recipients(
    recipient_ids: Optional[Iterable[Any]],
    template_id: Any,
    channel: Any = CHANNEL_BOTH,
    week_code: Any = None,
    *,
    runtime: Optional[NotificationRuntime] = None,
) -> Acknowledgement:
    """Notify an explicit recipient list, optionally with one week's shift lines."""
    runtime = runtime or get_runtime()
    template_id = parse_template_id(template_id)
    ids = normalize_ids(recipient_ids)
    if not ids:
        raise InvalidTrigger("No valid recipient ids given")
    week = _require_week(week_code) if week_code else None
    _require_template(runtime, template_id)

    ack = Acknowledgement(
        run_id=make_run_id(KIND_MANUAL, week or "adhoc"),
        kind=KIND_MANUAL,
        template_id=template_id,
        channel=normalize_channel(channel),
        week_code=week,
        recipients=len(ids),
    )
    key = (KIND_MANUAL, week, template_id, ack.channel, tuple(sorted(ids)))
    duplicate = _deduplicated(runtime, key, ack)
    if duplicate is not None:
        return duplicate

    tasks.dispatch_recipients.apply_async(
        kwargs={
            "recipient_ids": ids,
            "template_id": template_id,
            "channel": ack.channel,
            "week_code": week,
            "run_id": ack.run_id,
        },
        task_id=ack.run_id,
    )
    log_event("TRIGGER_ACCEPTED", **ack.to_dict())
    return ack
