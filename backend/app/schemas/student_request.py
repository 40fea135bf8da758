from datetime import date, datetime, time
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from app.models.class_entity import ClassModality
from app.models.request_status import RequestStatus
from app.models.student_request import StudentRequestType


class AbsencePayload(BaseModel):
    request_type: Literal["ABSENCE"]
    target_session_id: str = Field(min_length=1, max_length=36)
    request_reason: str = Field(max_length=2000)
    note: str | None = Field(default=None, max_length=2000)


class MakeupPayload(BaseModel):
    request_type: Literal["MAKEUP"]
    target_session_id: str = Field(min_length=1, max_length=36)
    makeup_session_id: str = Field(min_length=1, max_length=36)
    request_reason: str = Field(max_length=2000)
    note: str | None = Field(default=None, max_length=2000)


class TransferPayload(BaseModel):
    request_type: Literal["TRANSFER"]
    current_class_id: str = Field(min_length=1, max_length=36)
    target_class_id: str = Field(min_length=1, max_length=36)
    effective_date: date
    request_reason: str = Field(max_length=2000)
    note: str | None = Field(default=None, max_length=2000)


StudentRequestPayload = Annotated[
    AbsencePayload | MakeupPayload | TransferPayload,
    Field(discriminator="request_type"),
]


class StudentRequestOnBehalf(BaseModel):
    student_id: str = Field(min_length=1, max_length=36)
    request: StudentRequestPayload
    override_reason: str | None = Field(default=None, max_length=1000)


class StudentRequestApprove(BaseModel):
    note: str | None = Field(default=None, max_length=2000)
    target_session_id: str | None = Field(default=None, max_length=36)
    makeup_session_id: str | None = Field(default=None, max_length=36)
    override_reason: str | None = Field(default=None, max_length=1000)


class RequestReject(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)


class StudentRequestOut(BaseModel):
    id: str
    student_id: str
    request_type: StudentRequestType
    status: RequestStatus
    target_session_id: str | None = None
    makeup_session_id: str | None = None
    current_class_id: str | None = None
    target_class_id: str | None = None
    effective_date: date | None = None
    effective_session_id: str | None = None
    request_reason: str
    note: str | None = None
    submitted_by_id: str
    decided_by_id: str | None = None
    submitted_at: datetime | None = None
    decided_at: datetime | None = None

    model_config = {"from_attributes": True}


class MissedSessionOut(BaseModel):
    session_id: str
    class_id: str
    class_code: str
    date: date
    course_session_id: str | None = None
    sequence_no: int | None = None
    topic: str | None = None

    model_config = {"from_attributes": True}


class MakeupOptionOut(BaseModel):
    session_id: str
    class_id: str
    class_code: str
    branch_id: str
    modality: ClassModality
    date: date
    start_time: time
    end_time: time
    available_slots: int
    branch_match: bool
    modality_match: bool
    score: int
    priority: Literal["HIGH", "MEDIUM", "LOW"]

    model_config = {"from_attributes": True}


class TransferQuotaOut(BaseModel):
    used: int
    limit: int
    remaining: int

    model_config = {"from_attributes": True}


class TransferEnrollmentOut(BaseModel):
    enrollment_id: str
    class_id: str
    class_code: str
    course_id: str
    branch_id: str
    modality: ClassModality
    quota: TransferQuotaOut
    has_pending_transfer: bool
    can_transfer: bool

    model_config = {"from_attributes": True}


class TransferEligibilityOut(BaseModel):
    eligible: bool
    ineligibility_reason: str | None = None
    enrollments: list[TransferEnrollmentOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class GapSessionOut(BaseModel):
    course_session_id: str
    sequence_no: int
    topic: str

    model_config = {"from_attributes": True}


class ContentGapOut(BaseModel):
    missed_sessions: int
    gap_level: Literal["NONE", "MINOR", "MAJOR"]
    gap_sessions: list[GapSessionOut] = Field(default_factory=list)
    recommendation: str
    impact_description: str

    model_config = {"from_attributes": True}


class UpcomingSessionOut(BaseModel):
    session_id: str
    date: date
    time_slot_id: str
    sequence_no: int | None = None
    topic: str | None = None

    model_config = {"from_attributes": True}


class TransferOptionOut(BaseModel):
    class_id: str
    class_code: str
    class_name: str
    branch_id: str
    modality: ClassModality
    max_capacity: int
    enrolled_count: int
    available_slots: int
    can_transfer: bool
    requires_staff_approval: bool
    content_gap: ContentGapOut
    upcoming_sessions: list[UpcomingSessionOut] = Field(default_factory=list)

    model_config = {"from_attributes": True}
