"""SQLAlchemy mapping of the schedule tables the notification pipeline reads."""
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Text,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

SCHEMA: Optional[str] = os.getenv("NOTIFY_DB_SCHEMA") or None

Base = declarative_base(metadata=MetaData(schema=SCHEMA))


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the ``timestamp without time zone`` columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UserModel(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    full_name = Column(String(120), nullable=False)
    email = Column(String(255))
    phone = Column(String(32))
    role = Column(String(64), nullable=False, default="Employee")
    status = Column(String(32))


class ShiftModel(Base):
    __tablename__ = "shifts"
    id = Column(Integer, primary_key=True)
    week_code = Column(String(10), nullable=False, index=True)
    day_name = Column(String(20), nullable=False)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    note = Column(Text)
    issent = Column(Boolean, default=False, nullable=False)
    ispublished = Column(Boolean, default=False, nullable=False)


class TemplateModel(Base):
    __tablename__ = "templates"
    id = Column(Integer, primary_key=True)
    template_name = Column(String(120), nullable=False)
    template_type = Column(String(10), nullable=False, default="both")
    subject = Column(String(255))
    body = Column(Text, nullable=False)
    opening_text = Column(Text)
    ending_text = Column(Text)


class ReminderModel(Base):
    __tablename__ = "reminders"
    id = Column(Integer, primary_key=True)
    week_code = Column(String(10), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("templates.id", ondelete="CASCADE"), nullable=False)
    send_at = Column(DateTime, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_sent = Column(Boolean, default=False, nullable=False)


class WeekStatusModel(Base):
    __tablename__ = "week_status"
    week_code = Column(String(10), primary_key=True)
    is_published = Column(Boolean, default=False, nullable=False)
    status_changed_at = Column(DateTime)


def create_db_engine(database_url: str) -> Engine:
    engine_kwargs: dict[str, Any] = {"future": True}
    if str(database_url).startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        pool_pre_ping = False
    else:
        pool_pre_ping = True
    return create_engine(database_url, pool_pre_ping=pool_pre_ping, **engine_kwargs)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
