from datetime import timedelta

from celery_app import celery_app
from notifications import config
from notifications.config import NotificationSettings
from notifications.models import DispatchRun


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("SMS_DELAY", "250")
    monkeypatch.setenv("NOTIFY_SEND_TIMEOUT_MS", "not-a-number")
    monkeypatch.setenv("REMINDER_CHECK_SECONDS", "30")
    monkeypatch.setenv("NOTIFY_TRIGGER_DEDUPE_SECONDS", "15")

    settings = NotificationSettings.from_env()
    assert settings.database_url == "sqlite:///:memory:"
    assert settings.sms_delay == 0.25
    assert settings.send_timeout == 20
    assert settings.reminder_check_seconds == 30
    assert settings.trigger_dedupe_seconds == 15
    assert settings.default_publish_template_id == config.DEFAULT_PUBLISH_TEMPLATE_ID


def test_defaults_without_env(monkeypatch, tmp_path):
    for name in ("DATABASE_URL", "SQLALCHEMY_DATABASE_URI", "SMS_DELAY", "NOTIFY_TRIGGER_DEDUPE_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path))

    settings = NotificationSettings.from_env()
    assert settings.database_url == f"sqlite:///{tmp_path / 'schedule.db'}"
    assert settings.sms_delay == 5
    assert settings.trigger_dedupe_seconds == 0


def test_normalize_channel():
    assert config.normalize_channel(" SMS ") == "sms"
    assert config.normalize_channel("email") == "email"
    assert config.normalize_channel("fax") == "both"
    assert config.normalize_channel(None) == "both"


def test_failure_rate_needs_attempts():
    run = DispatchRun(run_id="r", template_id=1, channel="both", started_at=None)
    assert run.failure_rate("sms") is None
    run.sent_email, run.failed_email = 3, 1
    assert run.failure_rate("email") == 0.25


def test_celery_serializes_work_and_schedules_reminder_scan():
    conf = celery_app.conf
    assert conf.worker_concurrency == 1
    assert conf.worker_prefetch_multiplier == 1
    entry = conf.beat_schedule["scan-due-reminders"]
    assert entry["task"] == "notifications.tasks.scan_due_reminders"
    assert isinstance(entry["schedule"], timedelta)
