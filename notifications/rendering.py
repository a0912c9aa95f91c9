"""Pure template rendering: template + recipient data -> final message text."""
from __future__ import annotations

import re
from typing import List, Optional, Sequence

from .config import DEFAULT_SUBJECT, NO_SHIFTS_TEXT
from .models import RenderedMessage, ShiftSummary, Template

NAME_PLACEHOLDER = "{{employeeName}}"
SHIFTS_PLACEHOLDER = "{{shifts}}"
PLACEHOLDER_RE = re.compile(re.escape(NAME_PLACEHOLDER) + "|" + re.escape(SHIFTS_PLACEHOLDER))
UNPARSEABLE_MINUTES = 48 * 60


def time_to_minutes(value: str) -> int:
    hours, _, minutes = (value or "").strip().partition(":")
    try:
        return int(hours) * 60 + int(minutes or 0)
    except ValueError:
        return UNPARSEABLE_MINUTES


def sort_shifts(shifts: Sequence[ShiftSummary]) -> List[ShiftSummary]:
    # sorted() is stable, so equal (date, start) pairs keep input order.
    return sorted(shifts, key=lambda s: (s.date, time_to_minutes(s.start)))


def format_shift_line(shift: ShiftSummary) -> str:
    return f"{shift.date} {shift.start}-{shift.end} ({shift.day_name or '???'})"


def shift_block(shifts: Optional[Sequence[ShiftSummary]]) -> str:
    """Newline-joined shift lines.

    ``None`` means the message has no week context and the block is empty;
    an empty list means the recipient has no shifts that week.
    """
    if shifts is None:
        return ""
    if not shifts:
        return NO_SHIFTS_TEXT
    return "\n".join(format_shift_line(s) for s in sort_shifts(shifts))


def display_name(name: Optional[str], recipient_id=None) -> str:
    if name and str(name).strip():
        return str(name).strip()
    return f"Employee#{recipient_id}"


def render_text(template: Template, recipient_name: str, shifts: Optional[Sequence[ShiftSummary]]) -> str:
    values = {NAME_PLACEHOLDER: recipient_name, SHIFTS_PLACEHOLDER: shift_block(shifts)}
    # One pass, so substituted values are never scanned for placeholders again.
    text = PLACEHOLDER_RE.sub(lambda m: values[m.group(0)], template.body or "")
    if template.opening_text:
        text = f"{template.opening_text}\n\n{text}"
    if template.ending_text:
        text = f"{text}\n\n{template.ending_text}"
    return text


def text_to_html(text: str) -> str:
    # Template authors are trusted; only line breaks are converted.
    return text.replace("\r\n", "\n").replace("\n", "<br>")


def html_to_text(html: str) -> str:
    return (html or "").replace("<br>", "\n")


def render_message(
    template: Template,
    recipient_name: Optional[str],
    shifts: Optional[Sequence[ShiftSummary]],
    *,
    recipient_id=None,
) -> RenderedMessage:
    text = render_text(template, display_name(recipient_name, recipient_id), shifts)
    return RenderedMessage(
        sms_text=text,
        email_html=text_to_html(text),
        subject=template.subject or DEFAULT_SUBJECT,
    )
