import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.request_status import RequestStatus


class TeacherRequestType(str, Enum):
    SWAP = "SWAP"
    RESCHEDULE = "RESCHEDULE"
    MODALITY_CHANGE = "MODALITY_CHANGE"


class TeacherRequest(Base):
    __tablename__ = "teacher_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    request_type: Mapped[TeacherRequestType] = mapped_column(
        SAEnum(TeacherRequestType, name="teacher_request_type"),
        nullable=False,
    )
    status: Mapped[RequestStatus] = mapped_column(
        SAEnum(RequestStatus, name="teacher_request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    replacement_teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    new_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    new_time_slot_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    new_resource_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    new_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    request_reason: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    decided_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
