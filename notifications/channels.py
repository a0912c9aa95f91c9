from __future__ import annotations

import asyncio
import logging
import os
import re
import smtplib
import time
from email.message import EmailMessage
from typing import Any, Callable, Optional

import requests

from .errors import ChannelTimeout, SendError
from .events import REQUEST_ID_HEADERS, mask_email, mask_phone
from .rendering import html_to_text

LOGGER = logging.getLogger(__name__)

DEFAULT_COUNTRY_CODE = "972"


def normalize_phone(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Local or bare-international number -> ``+<country><number>``."""
    phone = re.sub(r"[\s\-()]", "", str(raw or "").strip())
    if phone.startswith("+"):
        phone = phone[1:]
    elif phone.startswith("00"):
        phone = phone[2:]
    if phone.startswith("0"):
        phone = country_code + phone[1:]
    return "+" + phone


async def call_with_timeout(channel: str, timeout: float, fn: Callable[..., Any], *args: Any) -> None:
    """Run a blocking channel client off the loop; overrunning ``timeout`` is a failed send."""
    try:
        await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout)
    except asyncio.TimeoutError as exc:
        raise ChannelTimeout(channel, timeout) from exc


def _request_id(response: requests.Response) -> Optional[str]:
    return next((response.headers[h] for h in REQUEST_ID_HEADERS if response.headers.get(h)), None)


class SmsGateway:
    """HTTP client for the bulk SMS provider."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        sender_name: Optional[str] = None,
        country_code: Optional[str] = None,
        timeout: float = 20,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint or os.getenv("SMS_GATEWAY_URL")
        self.api_key = api_key or os.getenv("SMS_GATEWAY_API_KEY")
        self.sender_name = sender_name or os.getenv("SMS_SENDER_NAME")
        self.country_code = country_code or os.getenv("SMS_COUNTRY_CODE", DEFAULT_COUNTRY_CODE)
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(self, phone_number: str, message: str) -> dict:
        digits = re.sub(r"\D+", "", phone_number)
        send_id = f"sms-{digits}-{int(time.time() * 1000)}"
        return {
            "sendId": send_id,
            "isAsync": False,
            "smsSendData": {
                "fromNumber": self.sender_name,
                "toNumberList": [phone_number],
                "referenceList": [f"{send_id}-0"],
                "textList": [message],
            },
        }

    def send(self, phone: str, message: str) -> None:
        if not self.endpoint:
            raise SendError("SMS_GATEWAY_URL not configured", code="ECONFIG")

        phone_number = normalize_phone(phone, self.country_code)
        headers = {"Content-Type": "application/json", "APIKey": self.api_key or ""}
        resp = self.session.post(
            self.endpoint,
            json=self.build_payload(phone_number, message),
            headers=headers,
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            raise SendError(
                f"SMS gateway responded with {resp.status_code}",
                status=resp.status_code,
                request_id=_request_id(resp),
                response=resp.text,
            )
        LOGGER.debug("SMS accepted by gateway for %s", mask_phone(phone_number))


class EmailRelay:
    """SMTP relay client. Reads the same SMTP_* variables as the rest of the app."""

    def __init__(self, timeout: float = 20) -> None:
        self.timeout = timeout

    def _smtp_connection(self) -> Optional[smtplib.SMTP]:
        host = os.getenv("SMTP_HOST")
        port = int(os.getenv("SMTP_PORT", "587"))
        username = os.getenv("SMTP_USERNAME")
        password = os.getenv("SMTP_PASSWORD")
        use_tls = os.getenv("SMTP_USE_TLS", "1") not in {"0", "false", "False"}

        if not host:
            return None

        server = smtplib.SMTP(host, port, timeout=self.timeout)
        try:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
        except Exception:
            server.quit()
            raise
        return server

    def send(self, address: str, subject: str, html: str) -> None:
        sender = os.getenv("NOTIFY_FROM_EMAIL") or os.getenv("SMTP_DEFAULT_SENDER")
        if not sender:
            raise SendError("NOTIFY_FROM_EMAIL not configured", code="ECONFIG")

        email = EmailMessage()
        email["Subject"] = subject
        email["From"] = sender
        email["To"] = address
        email.set_content(html_to_text(html))
        email.add_alternative(html, subtype="html")

        server = self._smtp_connection()
        if server is None:
            raise SendError("SMTP_HOST not configured", code="ECONFIG")
        with server:
            server.send_message(email)
        LOGGER.debug("Email '%s' handed to relay for %s", subject, mask_email(address))
