import asyncio
import smtplib
import time

import pytest

from notifications import channels
from notifications.errors import ChannelTimeout, SendError


class FakeResponse:
    def __init__(self, status_code=200, text="{}", headers=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return self.response


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0501234567", "+972501234567"),
        ("050-123 4567", "+972501234567"),
        ("+972501234567", "+972501234567"),
        ("00972501234567", "+972501234567"),
        ("972501234567", "+972501234567"),
    ],
)
def test_normalize_phone(raw, expected):
    assert channels.normalize_phone(raw) == expected


def test_sms_gateway_posts_provider_payload():
    session = FakeSession(FakeResponse())
    gateway = channels.SmsGateway(
        endpoint="https://sms.example/api/send",
        api_key="k",
        sender_name="Shifts",
        session=session,
        timeout=7,
    )
    gateway.send("0501234567", "hello")

    call = session.calls[0]
    assert call["url"] == "https://sms.example/api/send"
    assert call["headers"]["APIKey"] == "k"
    assert call["timeout"] == 7
    data = call["json"]["smsSendData"]
    assert data["fromNumber"] == "Shifts"
    assert data["toNumberList"] == ["+972501234567"]
    assert data["textList"] == ["hello"]
    assert data["referenceList"] == [f"{call['json']['sendId']}-0"]


def test_sms_gateway_error_status_raises():
    response = FakeResponse(status_code=429, text="slow down", headers={"x-request-id": "r-9"})
    gateway = channels.SmsGateway(endpoint="https://sms.example", session=FakeSession(response))
    with pytest.raises(SendError) as info:
        gateway.send("0501234567", "hello")
    assert info.value.status == 429
    assert info.value.request_id == "r-9"
    assert info.value.response == "slow down"


def test_sms_gateway_without_endpoint(monkeypatch):
    monkeypatch.delenv("SMS_GATEWAY_URL", raising=False)
    with pytest.raises(SendError) as info:
        channels.SmsGateway(session=FakeSession(FakeResponse())).send("050", "x")
    assert info.value.code == "ECONFIG"


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def starttls(self):
        raise AssertionError("TLS disabled in this test")

    def login(self, username, password):
        self.credentials = (username, password)

    def send_message(self, message):
        FakeSMTP.sent.append(message)

    def quit(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_email_relay_sends_html_with_text_part(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    monkeypatch.setenv("SMTP_HOST", "smtp.example")
    monkeypatch.setenv("SMTP_USE_TLS", "0")
    monkeypatch.setenv("NOTIFY_FROM_EMAIL", "shifts@example.com")

    channels.EmailRelay().send("dana@example.com", "Shifts Published", "Hi<br>there")

    message = FakeSMTP.sent[0]
    assert message["To"] == "dana@example.com"
    assert message["Subject"] == "Shifts Published"
    plain = message.get_body(preferencelist=("plain",)).get_content()
    html = message.get_body(preferencelist=("html",)).get_content()
    assert plain.strip() == "Hi\nthere"
    assert "Hi<br>there" in html


def test_email_relay_without_host(monkeypatch):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    monkeypatch.setenv("NOTIFY_FROM_EMAIL", "shifts@example.com")
    with pytest.raises(SendError) as info:
        channels.EmailRelay().send("dana@example.com", "s", "b")
    assert info.value.code == "ECONFIG"


def test_call_with_timeout_raises_channel_timeout():
    with pytest.raises(ChannelTimeout) as info:
        asyncio.run(channels.call_with_timeout("email", 0.05, time.sleep, 0.3))
    assert info.value.channel == "email"
    assert info.value.code == "ETIMEDOUT"


def test_call_with_timeout_propagates_client_errors():
    def broken():
        raise SendError("nope", status=500)

    with pytest.raises(SendError):
        asyncio.run(channels.call_with_timeout("sms", 1, broken))
