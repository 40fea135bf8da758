import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.request_status import RequestStatus


class StudentRequestType(str, Enum):
    ABSENCE = "ABSENCE"
    MAKEUP = "MAKEUP"
    TRANSFER = "TRANSFER"


class StudentRequest(Base):
    __tablename__ = "student_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    request_type: Mapped[StudentRequestType] = mapped_column(
        SAEnum(StudentRequestType, name="student_request_type"),
        nullable=False,
    )
    status: Mapped[RequestStatus] = mapped_column(
        SAEnum(RequestStatus, name="student_request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
        index=True,
    )
    target_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    makeup_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    current_class_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    target_class_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_session_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    request_reason: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_by_id: Mapped[str] = mapped_column(String(36), nullable=False)
    decided_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
