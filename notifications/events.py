"""Structured, PII-masked event logging for dispatch runs."""
from __future__ import annotations

import json
import logging
import smtplib
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from .errors import SendError

LOGGER = logging.getLogger("notifications.events")

RESPONSE_PREVIEW_LIMIT = 1500
REQUEST_ID_HEADERS = (
    "x-request-id",
    "x-amzn-requestid",
    "x-correlation-id",
    "x-trace-id",
    "trace-id",
    "request-id",
)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_run_id(prefix: str, extra: Any = "") -> str:
    stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"{prefix}_{extra}_{stamp}_{uuid.uuid4().hex[:6]}"


def log_event(event: str, *, level: int = logging.INFO, **data: Any) -> Dict[str, Any]:
    """Emit one JSON line and return the payload that was logged."""
    entry = {"ts": now_iso(), "event": event, **data}
    LOGGER.log(level, json.dumps(entry, ensure_ascii=False, default=str))
    return entry


def mask_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    value = str(phone)
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"


def mask_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    value = str(email)
    at = value.find("@")
    if at <= 1:
        return "***@***"
    return f"{value[0]}***{value[at:]}"


def _preview(data: Any) -> Optional[str]:
    if data is None:
        return None
    text = data if isinstance(data, str) else json.dumps(data, default=str)
    return text[:RESPONSE_PREVIEW_LIMIT]


def short_error(exc: BaseException) -> Dict[str, Any]:
    """Compact, log-safe summary of a send failure."""
    summary: Dict[str, Any] = {
        "message": str(exc) or exc.__class__.__name__,
        "code": None,
        "status": None,
        "requestId": None,
        "response": None,
    }

    if isinstance(exc, SendError):
        summary.update(
            code=exc.code,
            status=exc.status,
            requestId=exc.request_id,
            response=_preview(exc.response),
        )
    elif isinstance(exc, requests.RequestException):
        response = exc.response
        if response is not None:
            headers = {k.lower(): v for k, v in response.headers.items()}
            summary["status"] = response.status_code
            summary["requestId"] = next((headers[h] for h in REQUEST_ID_HEADERS if headers.get(h)), None)
            summary["response"] = _preview(response.text)
        summary["code"] = exc.__class__.__name__
    elif isinstance(exc, smtplib.SMTPResponseException):
        summary["status"] = exc.smtp_code
        summary["code"] = "SMTP"
        summary["response"] = _preview(
            exc.smtp_error.decode("utf-8", "replace") if isinstance(exc.smtp_error, bytes) else exc.smtp_error
        )
    else:
        summary["code"] = getattr(exc, "code", None) or exc.__class__.__name__
    return summary
