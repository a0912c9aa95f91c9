import json
import logging

import requests

from notifications import events
from notifications.errors import ChannelTimeout, SendError


def test_mask_phone():
    assert events.mask_phone("0501234567") == "05***67"
    assert events.mask_phone("1234") == "***"
    assert events.mask_phone(None) is None


def test_mask_email():
    assert events.mask_email("john@example.com") == "j***@example.com"
    assert events.mask_email("j@example.com") == "***@***"
    assert events.mask_email("") is None


def test_log_event_emits_json_line(caplog):
    caplog.set_level(logging.INFO, logger="notifications.events")
    entry = events.log_event("NOTIFY_START", runId="r1", shiftIdsLen=2)

    record = caplog.records[-1]
    assert json.loads(record.getMessage()) == entry
    assert entry["event"] == "NOTIFY_START"
    assert entry["runId"] == "r1"
    assert "ts" in entry


def test_make_run_id_is_unique():
    first = events.make_run_id("publish", "2025-W07")
    second = events.make_run_id("publish", "2025-W07")
    assert first.startswith("publish_2025-W07_")
    assert first != second


def test_short_error_truncates_send_error_response():
    exc = SendError("boom", status=502, code="EBAD", request_id="req-1", response="x" * 5000)
    summary = events.short_error(exc)
    assert summary["message"] == "boom"
    assert summary["status"] == 502
    assert summary["code"] == "EBAD"
    assert summary["requestId"] == "req-1"
    assert len(summary["response"]) == events.RESPONSE_PREVIEW_LIMIT


def test_short_error_reads_http_response():
    response = requests.Response()
    response.status_code = 503
    response._content = b'{"error":"unavailable"}'
    response.headers["X-Request-Id"] = "abc123"
    summary = events.short_error(requests.HTTPError("503 Server Error", response=response))

    assert summary["status"] == 503
    assert summary["requestId"] == "abc123"
    assert summary["code"] == "HTTPError"
    assert "unavailable" in summary["response"]


def test_short_error_for_timeout():
    summary = events.short_error(ChannelTimeout("sms", 20))
    assert summary["code"] == "ETIMEDOUT"
    assert "timed out" in summary["message"]


def test_short_error_for_plain_exception():
    summary = events.short_error(RuntimeError())
    assert summary["message"] == "RuntimeError"
    assert summary["code"] == "RuntimeError"
