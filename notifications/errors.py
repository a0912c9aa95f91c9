from __future__ import annotations

from typing import Optional


class NotificationError(Exception):
    """Base class for notification pipeline failures."""


class TemplateNotFound(NotificationError):
    def __init__(self, template_id) -> None:
        super().__init__(f"Template {template_id} not found")
        self.template_id = template_id


class InvalidTrigger(NotificationError, ValueError):
    """Raised by the synchronous pre-check of a trigger."""


class SendError(NotificationError):
    """A single channel send failed."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
        response: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.request_id = request_id
        self.response = response


class ChannelTimeout(SendError):
    def __init__(self, channel: str, timeout: float) -> None:
        super().__init__(f"{channel} send timed out after {timeout:g}s", code="ETIMEDOUT")
        self.channel = channel
        self.timeout = timeout
