from datetime import date, datetime, time
from typing import Annotated, Literal

from pydantic import BaseModel, Field

from app.models.request_status import RequestStatus
from app.models.resource import ResourceType
from app.models.teacher_request import TeacherRequestType


class SwapPayload(BaseModel):
    request_type: Literal["SWAP"]
    session_id: str = Field(min_length=1, max_length=36)
    request_reason: str = Field(max_length=2000)
    replacement_teacher_id: str | None = Field(default=None, max_length=36)


class ReschedulePayload(BaseModel):
    request_type: Literal["RESCHEDULE"]
    session_id: str = Field(min_length=1, max_length=36)
    request_reason: str = Field(max_length=2000)
    new_date: date | None = None
    new_time_slot_id: str | None = Field(default=None, max_length=36)
    new_resource_id: str | None = Field(default=None, max_length=36)


class ModalityChangePayload(BaseModel):
    request_type: Literal["MODALITY_CHANGE"]
    session_id: str = Field(min_length=1, max_length=36)
    request_reason: str = Field(max_length=2000)
    new_resource_id: str | None = Field(default=None, max_length=36)


TeacherRequestPayload = Annotated[
    SwapPayload | ReschedulePayload | ModalityChangePayload,
    Field(discriminator="request_type"),
]


class TeacherRequestApprove(BaseModel):
    note: str | None = Field(default=None, max_length=2000)
    replacement_teacher_id: str | None = Field(default=None, max_length=36)
    new_date: date | None = None
    new_time_slot_id: str | None = Field(default=None, max_length=36)
    new_resource_id: str | None = Field(default=None, max_length=36)


class SwapDecline(BaseModel):
    reason: str = Field(min_length=1, max_length=1000)


class TeacherRequestOut(BaseModel):
    id: str
    teacher_id: str
    session_id: str
    request_type: TeacherRequestType
    status: RequestStatus
    replacement_teacher_id: str | None = None
    new_date: date | None = None
    new_time_slot_id: str | None = None
    new_resource_id: str | None = None
    new_session_id: str | None = None
    request_reason: str
    note: str | None = None
    submitted_by_id: str
    decided_by_id: str | None = None
    submitted_at: datetime | None = None
    decided_at: datetime | None = None

    model_config = {"from_attributes": True}


class SlotSuggestionOut(BaseModel):
    time_slot_id: str
    name: str
    start_time: time
    end_time: time

    model_config = {"from_attributes": True}


class ResourceSuggestionOut(BaseModel):
    resource_id: str
    name: str
    resource_type: ResourceType
    capacity: int | None = None
    branch_id: str
    is_current: bool = False

    model_config = {"from_attributes": True}


class SwapCandidateOut(BaseModel):
    teacher_id: str
    name: str
    email: str
    skill_priority: int
    availability_priority: int
    has_conflict: bool

    model_config = {"from_attributes": True}


class TeacherSessionOut(BaseModel):
    session_id: str
    class_id: str
    class_code: str
    date: date
    time_slot_id: str
    start_time: time
    end_time: time
    has_pending_request: bool

    model_config = {"from_attributes": True}
