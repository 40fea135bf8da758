from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class SessionStatus(str, Enum):
    PLANNED = "PLANNED"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class TeachingSlotStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    ON_LEAVE = "ON_LEAVE"
    SUBSTITUTED = "SUBSTITUTED"
    CANCELLED = "CANCELLED"


class ClassSession(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    class_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    course_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    time_slot_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[SessionStatus] = mapped_column(
        SAEnum(SessionStatus, name="session_status"),
        nullable=False,
        default=SessionStatus.PLANNED,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())


class TeachingSlot(Base):
    __tablename__ = "teaching_slots"
    __table_args__ = (
        UniqueConstraint("session_id", "teacher_id", name="uq_teaching_slots_session_teacher"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[TeachingSlotStatus] = mapped_column(
        SAEnum(TeachingSlotStatus, name="teaching_slot_status"),
        nullable=False,
        default=TeachingSlotStatus.SCHEDULED,
    )


class SessionResource(Base):
    __tablename__ = "session_resources"
    __table_args__ = (
        # A session is bound to at most one room or virtual link.
        UniqueConstraint("session_id", name="uq_session_resources_session"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
