"""Delivery engine: fan a template out to every resolved recipient.

Per-recipient and per-send failures are counted and logged but never abort a
run. Only a missing template or a failing top-level store read aborts it, and
even then ``dispatch`` returns the (aborted) run instead of raising.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Optional

from .channels import call_with_timeout
from .collectors import RecipientResolver, normalize_ids
from .config import (
    CHANNEL_EMAIL,
    CHANNEL_SMS,
    DEFAULT_FAIL_RATE_WARN,
    includes_email,
    includes_sms,
    normalize_channel,
)
from .db import utcnow
from .events import log_event, make_run_id, mask_email, mask_phone, short_error
from .models import DispatchRun, Recipient, RecipientGroup, RecipientOutcome, Template
from .preferences import ContactResolver, PreferenceColumns
from .queue import SmsQueue
from .rendering import display_name, render_message
from .store import ScheduleStore

LOGGER = logging.getLogger(__name__)

SmsSender = Callable[[str, str], Any]
EmailSender = Callable[[str, str, str], Any]


def _coerce_id(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class DeliveryEngine:
    def __init__(
        self,
        store: ScheduleStore,
        columns: PreferenceColumns,
        *,
        sms_send: SmsSender,
        email_send: EmailSender,
        sms_delay: float = 5.0,
        send_timeout: float = 20.0,
        fail_rate_warn: float = DEFAULT_FAIL_RATE_WARN,
    ) -> None:
        self.store = store
        self.recipients = RecipientResolver(store)
        self.contacts = ContactResolver(store, columns)
        self._sms_send = sms_send
        self._email_send = email_send
        self.send_timeout = send_timeout
        self.fail_rate_warn = fail_rate_warn
        self.sms_queue = SmsQueue(self._send_sms, delay=sms_delay)

    async def _send_sms(self, phone: str, text: str) -> None:
        await call_with_timeout(CHANNEL_SMS, self.send_timeout, self._sms_send, phone, text)

    async def _send_email(self, address: str, subject: str, html: str) -> None:
        await call_with_timeout(CHANNEL_EMAIL, self.send_timeout, self._email_send, address, subject, html)

    async def aclose(self) -> None:
        await self.sms_queue.aclose()

    # ------------------------------------------------------------ entry points
    async def dispatch(
        self,
        shift_ids: Optional[Iterable[Any]],
        template_id: Any,
        channel: str = "both",
        *,
        run_id: Optional[str] = None,
    ) -> DispatchRun:
        """Notify the owners of ``shift_ids`` plus every active employee."""
        ids = normalize_ids(shift_ids)
        run = self._new_run(template_id, channel, run_id)
        log_event("NOTIFY_START", runId=run.run_id, templateId=run.template_id, channel=run.channel, shiftIdsLen=len(ids))
        try:
            template = self._load_template(run)
            if template is None:
                return run
            if not ids:
                log_event("NOTIFY_NO_SHIFTIDS", runId=run.run_id, willNotifyAllActiveEmployees=True)
            groups = self.recipients.resolve(ids)
            if ids:
                log_event(
                    "NOTIFY_SHIFTS_LOADED",
                    runId=run.run_id,
                    rows=sum(len(g.shifts) for g in groups.values()),
                )
            contacts = self.contacts.enrich(groups.keys())
        except Exception as exc:
            self._abort(run, "store_error", exc)
            return run

        await self._deliver(run, template, groups, contacts, week_context=True)
        return run

    async def dispatch_to(
        self,
        recipient_ids: Iterable[Any],
        template_id: Any,
        channel: str = "both",
        *,
        week_code: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> DispatchRun:
        """Notify an explicit recipient list, optionally with one week's shift lines."""
        run = self._new_run(template_id, channel, run_id)
        ids = normalize_ids(recipient_ids)
        log_event(
            "NOTIFY_START",
            runId=run.run_id,
            templateId=run.template_id,
            channel=run.channel,
            recipientIdsLen=len(ids),
            weekCode=week_code,
        )
        try:
            template = self._load_template(run)
            if template is None:
                return run
            groups = self.recipients.resolve_explicit(ids, week_code)
            contacts = self.contacts.enrich(groups.keys())
        except Exception as exc:
            self._abort(run, "store_error", exc)
            return run

        await self._deliver(run, template, groups, contacts, week_context=bool(week_code))
        return run

    # --------------------------------------------------------------- helpers
    def _new_run(self, template_id: Any, channel: str, run_id: Optional[str]) -> DispatchRun:
        return DispatchRun(
            run_id=run_id or make_run_id("notify", template_id),
            template_id=_coerce_id(template_id) or 0,
            channel=normalize_channel(channel),
            started_at=utcnow(),
        )

    def _load_template(self, run: DispatchRun) -> Optional[Template]:
        template = self.store.get_template(run.template_id) if run.template_id else None
        if template is None:
            run.aborted = "template_not_found"
            run.finished_at = utcnow()
            log_event("NOTIFY_FATAL_NO_TEMPLATE", level=logging.ERROR, runId=run.run_id, templateId=run.template_id)
        return template

    def _abort(self, run: DispatchRun, reason: str, exc: BaseException) -> None:
        run.aborted = reason
        run.finished_at = utcnow()
        log_event("NOTIFY_FATAL", level=logging.ERROR, runId=run.run_id, reason=reason, err=short_error(exc))

    async def _deliver(
        self,
        run: DispatchRun,
        template: Template,
        groups: Dict[int, RecipientGroup],
        contacts: Dict[int, Recipient],
        *,
        week_context: bool,
    ) -> None:
        run.recipients_total = len(groups)
        run.recipients_without_shifts = sum(1 for g in groups.values() if not g.shifts)
        log_event(
            "NOTIFY_EMP_GROUPED",
            runId=run.run_id,
            employeesTotal=run.recipients_total,
            employeesWithoutShifts=run.recipients_without_shifts,
        )

        for emp_id, group in groups.items():
            try:
                await self._deliver_one(run, template, group, contacts.get(emp_id), week_context)
            except Exception as exc:
                log_event("NOTIFY_EMP_ERROR", level=logging.WARNING, runId=run.run_id, empId=emp_id, err=short_error(exc))

        for channel in (CHANNEL_SMS, CHANNEL_EMAIL):
            rate = run.failure_rate(channel)
            if rate is not None and rate >= self.fail_rate_warn:
                log_event(
                    f"NOTIFY_WARN_{channel.upper()}_FAIL_RATE",
                    level=logging.WARNING,
                    runId=run.run_id,
                    failRate=round(rate, 4),
                    sent=run.sent_sms if channel == CHANNEL_SMS else run.sent_email,
                    failed=run.failed_sms if channel == CHANNEL_SMS else run.failed_email,
                )

        run.finished_at = utcnow()
        log_event("NOTIFY_DONE", **run.summary())

    async def _deliver_one(
        self,
        run: DispatchRun,
        template: Template,
        group: RecipientGroup,
        recipient: Optional[Recipient],
        week_context: bool,
    ) -> None:
        emp_id = group.recipient_id
        name = display_name(group.name or (recipient.display_name if recipient else None), emp_id)
        outcome = RecipientOutcome(recipient_id=emp_id, name=name, shifts_count=len(group.shifts))
        run.outcomes.append(outcome)
        base = {"runId": run.run_id, "empId": emp_id, "employeeName": name}
        log_event("NOTIFY_EMP_START", shiftsCount=len(group.shifts), **base)

        if recipient is None or not recipient.active_employee:
            run.skipped_invalid_state += 1
            outcome.skipped = "user_not_found" if recipient is None else "not_active_employee"
            log_event(
                "NOTIFY_EMP_SKIP_INVALID_STATE",
                role=recipient.role if recipient else None,
                status=recipient.status if recipient else None,
                reason=outcome.skipped,
                **base,
            )
            return

        if week_context and not group.shifts:
            log_event("NOTIFY_EMP_NO_SHIFTS", **base)
        message = render_message(template, name, group.shifts if week_context else None, recipient_id=emp_id)
        log_event("NOTIFY_EMP_RENDERED", channel=run.channel, **base)

        if includes_sms(run.channel):
            await self._deliver_sms(run, outcome, recipient, message.sms_text, base)
        if includes_email(run.channel):
            await self._deliver_email(run, outcome, recipient, message.subject, message.email_html, base)

        log_event("NOTIFY_EMP_DONE", **base)

    async def _deliver_sms(
        self, run: DispatchRun, outcome: RecipientOutcome, recipient: Recipient, text: str, base: dict
    ) -> None:
        if not recipient.phone:
            run.skipped_no_phone += 1
            outcome.sms = "skipped_no_phone"
            log_event("NOTIFY_SMS_SKIP_NO_PHONE", **base)
            return
        if not recipient.preferences.sms_allowed:
            run.skipped_sms_disabled += 1
            outcome.sms = "skipped_disabled"
            log_event(
                "NOTIFY_SMS_SKIP_DISABLED",
                smsEnabled=recipient.preferences.sms_enabled,
                globallyEnabled=recipient.preferences.globally_enabled,
                **base,
            )
            return

        to = mask_phone(recipient.phone)
        log_event("NOTIFY_SMS_SEND", to=to, **base)
        try:
            # Awaiting here keeps SMS strictly one-at-a-time across recipients.
            await self.sms_queue.enqueue(recipient.phone, text)
        except Exception as exc:
            run.failed_sms += 1
            outcome.sms = "failed"
            log_event("NOTIFY_SMS_FAIL", level=logging.WARNING, to=to, err=short_error(exc), **base)
        else:
            run.sent_sms += 1
            outcome.sms = "sent"
            log_event("NOTIFY_SMS_OK", to=to, **base)

    async def _deliver_email(
        self,
        run: DispatchRun,
        outcome: RecipientOutcome,
        recipient: Recipient,
        subject: str,
        html: str,
        base: dict,
    ) -> None:
        if not recipient.email:
            run.skipped_no_email += 1
            outcome.email = "skipped_no_email"
            log_event("NOTIFY_EMAIL_SKIP_NO_EMAIL", **base)
            return
        if not recipient.preferences.email_allowed:
            run.skipped_email_disabled += 1
            outcome.email = "skipped_disabled"
            log_event(
                "NOTIFY_EMAIL_SKIP_DISABLED",
                emailEnabled=recipient.preferences.email_enabled,
                globallyEnabled=recipient.preferences.globally_enabled,
                **base,
            )
            return

        to = mask_email(recipient.email)
        log_event("NOTIFY_EMAIL_SEND", to=to, **base)
        try:
            await self._send_email(recipient.email, subject, html)
        except Exception as exc:
            run.failed_email += 1
            outcome.email = "failed"
            log_event("NOTIFY_EMAIL_FAIL", level=logging.WARNING, to=to, err=short_error(exc), **base)
        else:
            run.sent_email += 1
            outcome.email = "sent"
            log_event("NOTIFY_EMAIL_OK", to=to, **base)
