import threading

import pytest
from sqlalchemy import text

from celery_app import celery_app
from notifications import tasks, triggers
from notifications.config import NotificationSettings
from notifications.db import (
    ReminderModel,
    ShiftModel,
    TemplateModel,
    UserModel,
    create_db_engine,
    create_session_factory,
    init_db,
)
from notifications.errors import SendError
from notifications.runtime import create_runtime

WEEK = "2025-W07"
PREFERENCE_COLUMNS = ("notify_sms", "notify_email", "notifications_enabled")


class Outbox:
    """Records channel sends instead of talking to a gateway or relay."""

    def __init__(self):
        self.sms = []
        self.emails = []
        self.failing = set()
        self._lock = threading.Lock()

    def send_sms(self, phone, message):
        if phone in self.failing:
            raise SendError("gateway rejected number", status=400, response='{"error":"bad number"}')
        with self._lock:
            self.sms.append((phone, message))

    def send_email(self, address, subject, html):
        if address in self.failing:
            raise SendError("relay refused recipient", status=550)
        with self._lock:
            self.emails.append((address, subject, html))

    def sms_to(self, phone):
        return [message for to, message in self.sms if to == phone]


class Seeder:
    def __init__(self, engine):
        self.engine = engine
        self.sessions = create_session_factory(engine)

    def _add(self, row):
        with self.sessions() as session:
            session.add(row)
            session.commit()
            return row

    def user(self, user_id, name, role="Employee", status="Active", phone=None, email=None, **prefs):
        self._add(UserModel(id=user_id, full_name=name, role=role, status=status, phone=phone, email=email))
        if prefs:
            assignments = ", ".join(f"{column} = :{column}" for column in prefs)
            with self.engine.begin() as conn:
                conn.execute(text(f"UPDATE users SET {assignments} WHERE id = :id"), {"id": user_id, **prefs})

    def shift(self, shift_id, employee_id, day_name="Sunday", start="09:00", end="17:00", week_code=WEEK):
        self._add(
            ShiftModel(
                id=shift_id,
                week_code=week_code,
                day_name=day_name,
                employee_id=employee_id,
                start_time=start,
                end_time=end,
            )
        )

    def template(self, template_id, body, template_type="both", subject=None, opening_text=None, ending_text=None):
        self._add(
            TemplateModel(
                id=template_id,
                template_name=f"template-{template_id}",
                template_type=template_type,
                subject=subject,
                body=body,
                opening_text=opening_text,
                ending_text=ending_text,
            )
        )

    def reminder(self, reminder_id, template_id, send_at, week_code=WEEK, is_active=True, is_sent=False):
        self._add(
            ReminderModel(
                id=reminder_id,
                week_code=week_code,
                template_id=template_id,
                send_at=send_at,
                is_active=is_active,
                is_sent=is_sent,
            )
        )

    def reminder_sent(self, reminder_id):
        with self.sessions() as session:
            return session.get(ReminderModel, reminder_id).is_sent


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def runtime(tmp_path, outbox):
    settings = NotificationSettings(
        database_url=f"sqlite:///{tmp_path / 'schedule.db'}",
        sms_delay=0,
        send_timeout=2,
    )
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    with engine.begin() as conn:
        for column in PREFERENCE_COLUMNS:
            conn.execute(text(f"ALTER TABLE users ADD COLUMN {column} BOOLEAN"))
    engine.dispose()

    rt = create_runtime(settings)
    rt.sms_send = outbox.send_sms
    rt.email_send = outbox.send_email
    yield rt
    rt.store.engine.dispose()


@pytest.fixture
def seed(runtime):
    return Seeder(runtime.store.engine)


@pytest.fixture
def team(seed):
    """Eight users covering every eligibility and opt-in case, one shift, one template."""
    seed.user(1, "Emp With Shift", phone="0500000001", email="e1@test.com")
    seed.user(2, "Emp No Shift", phone="0500000002", email="e2@test.com")
    seed.user(3, "Emp No Phone", email="e3@test.com")
    seed.user(4, "Emp Multi Role", role="Employee,Manager", phone="0500000004", email="e4@test.com")
    seed.user(5, "Manager Only", role="Manager", phone="0500000005", email="m1@test.com")
    seed.user(6, "Inactive Employee", status="Inactive", phone="0500000006", email="e6@test.com")
    seed.user(7, "Emp Sms Disabled", phone="0500000007", email="e7@test.com", notify_sms=False)
    seed.user(8, "Emp Global Disabled", phone="0500000008", email="e8@test.com", notifications_enabled=False)
    seed.shift(101, 1)
    seed.template(1, "Hello {{employeeName}}\n{{shifts}}", subject="Shifts Published")
    return seed


@pytest.fixture
def wired(runtime, monkeypatch):
    """Triggers and Celery tasks run eagerly against the test runtime."""
    monkeypatch.setattr(tasks, "get_runtime", lambda: runtime)
    monkeypatch.setattr(triggers, "get_runtime", lambda: runtime)
    monkeypatch.setattr(celery_app.conf, "task_always_eager", True)
    return runtime


@pytest.fixture(autouse=True)
def _reset_trigger_guard():
    triggers.guard.clear()
    yield
    triggers.guard.clear()
