"""Read/write access to the schedule store used by the dispatch pipeline."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import column, func, inspect, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .db import SCHEMA, ReminderModel, ShiftModel, TemplateModel, UserModel, WeekStatusModel, utcnow
from .models import Reminder, Template

LOGGER = logging.getLogger(__name__)

SMS_FLAG = "notify_sms_flag"
EMAIL_FLAG = "notify_email_flag"
GLOBAL_FLAG = "notify_global_flag"


def _ids(values: Iterable[Any]) -> List[int]:
    return sorted({int(v) for v in values})


def _template_to_model(row: TemplateModel) -> Template:
    return Template(
        id=row.id,
        type=row.template_type or "both",
        body=row.body or "",
        subject=row.subject,
        opening_text=row.opening_text,
        ending_text=row.ending_text,
        name=row.template_name,
    )


class ScheduleStore:
    def __init__(self, engine: Engine, session_factory: sessionmaker) -> None:
        self.engine = engine
        self._session_factory = session_factory

    # ----------------------------------------------------------- templates
    def get_template(self, template_id: int) -> Optional[Template]:
        with self._session_factory() as session:
            row = session.get(TemplateModel, int(template_id))
            return _template_to_model(row) if row else None

    # -------------------------------------------------------------- shifts
    def shift_rows(self, shift_ids: Iterable[int]) -> List[Dict[str, Any]]:
        ids = _ids(shift_ids)
        if not ids:
            return []
        stmt = (
            select(
                ShiftModel.id.label("shift_id"),
                ShiftModel.week_code,
                ShiftModel.day_name,
                ShiftModel.start_time,
                ShiftModel.end_time,
                UserModel.id.label("employee_id"),
                UserModel.full_name.label("employee_name"),
            )
            .join(UserModel, UserModel.id == ShiftModel.employee_id)
            .where(ShiftModel.id.in_(ids))
            .order_by(ShiftModel.id)
        )
        with self._session_factory() as session:
            return [dict(row) for row in session.execute(stmt).mappings()]

    def shift_rows_for_week(self, week_code: str, employee_ids: Iterable[int]) -> List[Dict[str, Any]]:
        ids = _ids(employee_ids)
        if not ids:
            return []
        stmt = (
            select(
                ShiftModel.id.label("shift_id"),
                ShiftModel.week_code,
                ShiftModel.day_name,
                ShiftModel.start_time,
                ShiftModel.end_time,
                UserModel.id.label("employee_id"),
                UserModel.full_name.label("employee_name"),
            )
            .join(UserModel, UserModel.id == ShiftModel.employee_id)
            .where(ShiftModel.week_code == week_code, UserModel.id.in_(ids))
            .order_by(ShiftModel.id)
        )
        with self._session_factory() as session:
            return [dict(row) for row in session.execute(stmt).mappings()]

    def shift_ids_for_week(self, week_code: str) -> List[int]:
        stmt = select(ShiftModel.id).where(ShiftModel.week_code == week_code).order_by(ShiftModel.id)
        with self._session_factory() as session:
            return list(session.execute(stmt).scalars())

    # --------------------------------------------------------------- users
    def active_employee_candidates(self) -> List[Dict[str, Any]]:
        """Users whose role and status may qualify; callers apply the exact predicate."""
        stmt = (
            select(UserModel.id, UserModel.full_name, UserModel.role, UserModel.status)
            .where(
                func.lower(UserModel.status) == "active",
                func.lower(UserModel.role).like("%employee%"),
            )
            .order_by(UserModel.id)
        )
        with self._session_factory() as session:
            return [dict(row) for row in session.execute(stmt).mappings()]

    def users_by_ids(
        self,
        user_ids: Iterable[int],
        *,
        sms_column: Optional[str] = None,
        email_column: Optional[str] = None,
        global_column: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        ids = _ids(user_ids)
        if not ids:
            return []
        users = UserModel.__table__
        columns = [users.c.id, users.c.full_name, users.c.role, users.c.status, users.c.phone, users.c.email]
        for name, label in ((sms_column, SMS_FLAG), (email_column, EMAIL_FLAG), (global_column, GLOBAL_FLAG)):
            if name:
                columns.append(column(name).label(label))
        stmt = select(*columns).select_from(users).where(users.c.id.in_(ids)).order_by(users.c.id)
        with self._session_factory() as session:
            return [dict(row) for row in session.execute(stmt).mappings()]

    def user_column_names(self) -> Set[str]:
        return {col["name"] for col in inspect(self.engine).get_columns("users", schema=SCHEMA)}

    # ----------------------------------------------------------- reminders
    def due_reminders(self, now: Optional[datetime] = None) -> List[Reminder]:
        now = now or utcnow()
        stmt = (
            select(ReminderModel, TemplateModel.template_type)
            .join(TemplateModel, TemplateModel.id == ReminderModel.template_id)
            .where(
                ReminderModel.is_active.is_(True),
                ReminderModel.is_sent.is_(False),
                ReminderModel.send_at <= now,
            )
            .order_by(ReminderModel.send_at, ReminderModel.id)
        )
        with self._session_factory() as session:
            return [
                Reminder(
                    id=row.id,
                    week_code=row.week_code,
                    template_id=row.template_id,
                    send_at=row.send_at,
                    channel=template_type or "both",
                    is_active=row.is_active,
                    is_sent=row.is_sent,
                )
                for row, template_type in session.execute(stmt)
            ]

    def mark_reminder_sent(self, reminder_id: int) -> bool:
        """Flip ``is_sent``; False when another tick already did it."""
        stmt = (
            update(ReminderModel)
            .where(ReminderModel.id == int(reminder_id), ReminderModel.is_sent.is_(False))
            .values(is_sent=True)
        )
        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    # ---------------------------------------------------------- week state
    def publish_week(self, week_code: str) -> Dict[str, Any]:
        changed_at = utcnow()
        with self._session_factory() as session:
            session.execute(
                update(ShiftModel).where(ShiftModel.week_code == week_code).values(ispublished=True)
            )
            status = session.get(WeekStatusModel, week_code)
            if status is None:
                status = WeekStatusModel(week_code=week_code)
                session.add(status)
            status.is_published = True
            status.status_changed_at = changed_at
            session.commit()
            LOGGER.info("Week %s marked published", week_code)
            return {
                "week_code": status.week_code,
                "is_published": status.is_published,
                "status_changed_at": status.status_changed_at.isoformat(),
            }
