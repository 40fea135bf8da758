from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles, require_staff
from app.models.request_status import RequestStatus
from app.models.teacher_request import TeacherRequestType
from app.models.user import User, UserRole
from app.schemas.student_request import RequestReject
from app.schemas.teacher_request import (
    ResourceSuggestionOut,
    SlotSuggestionOut,
    SwapCandidateOut,
    SwapDecline,
    TeacherRequestApprove,
    TeacherRequestOut,
    TeacherRequestPayload,
    TeacherSessionOut,
)
from app.services import teacher_requests

router = APIRouter()


@router.post("/teacher-requests", response_model=TeacherRequestOut, status_code=status.HTTP_201_CREATED)
def create_request(
    payload: TeacherRequestPayload,
    current_user: User = Depends(require_roles(UserRole.teacher)),
    db: Session = Depends(get_db),
) -> TeacherRequestOut:
    request = teacher_requests.create_teacher_request(db, actor=current_user, payload=payload)
    db.commit()
    db.refresh(request)
    return request


@router.get("/teacher-requests", response_model=list[TeacherRequestOut])
def list_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    request_type: TeacherRequestType | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TeacherRequestOut]:
    return teacher_requests.list_teacher_requests(
        db,
        actor=current_user,
        status=status_filter,
        request_type=request_type,
    )


@router.get("/teacher-requests/upcoming-sessions", response_model=list[TeacherSessionOut])
def upcoming_sessions(
    on_date: date | None = Query(default=None, alias="date"),
    current_user: User = Depends(require_roles(UserRole.teacher)),
    db: Session = Depends(get_db),
) -> list[TeacherSessionOut]:
    return teacher_requests.list_upcoming_sessions(db, actor=current_user, on_date=on_date)


@router.get("/teacher-requests/sessions/{session_id}/slot-suggestions", response_model=list[SlotSuggestionOut])
def slot_suggestions(
    session_id: str,
    on_date: date = Query(alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SlotSuggestionOut]:
    slots = teacher_requests.suggest_slots(db, session_id=session_id, actor=current_user, on_date=on_date)
    return [
        SlotSuggestionOut(time_slot_id=slot.id, name=slot.name, start_time=slot.start_time, end_time=slot.end_time)
        for slot in slots
    ]


@router.get(
    "/teacher-requests/sessions/{session_id}/resource-suggestions",
    response_model=list[ResourceSuggestionOut],
)
def resource_suggestions(
    session_id: str,
    on_date: date = Query(alias="date"),
    time_slot_id: str = Query(min_length=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ResourceSuggestionOut]:
    return teacher_requests.suggest_resources(
        db,
        session_id=session_id,
        actor=current_user,
        on_date=on_date,
        time_slot_id=time_slot_id,
    )


@router.get(
    "/teacher-requests/sessions/{session_id}/modality-resources",
    response_model=list[ResourceSuggestionOut],
)
def modality_resources(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ResourceSuggestionOut]:
    return teacher_requests.suggest_modality_resources(db, session_id=session_id, actor=current_user)


@router.get("/teacher-requests/sessions/{session_id}/swap-candidates", response_model=list[SwapCandidateOut])
def swap_candidates(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[SwapCandidateOut]:
    candidates = teacher_requests.suggest_swap_candidates(db, session_id=session_id, actor=current_user)
    return [SwapCandidateOut.model_validate(item) for item in candidates]


@router.get("/teacher-requests/{request_id}", response_model=TeacherRequestOut)
def get_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TeacherRequestOut:
    return teacher_requests.get_teacher_request(db, request_id=request_id, actor=current_user)


@router.put("/teacher-requests/{request_id}/approve", response_model=TeacherRequestOut)
def approve_request(
    request_id: str,
    payload: TeacherRequestApprove,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> TeacherRequestOut:
    request = teacher_requests.approve_teacher_request(
        db,
        request_id=request_id,
        actor=current_user,
        payload=payload,
    )
    db.commit()
    db.refresh(request)
    return request


@router.put("/teacher-requests/{request_id}/reject", response_model=TeacherRequestOut)
def reject_request(
    request_id: str,
    payload: RequestReject,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> TeacherRequestOut:
    request = teacher_requests.reject_teacher_request(
        db,
        request_id=request_id,
        actor=current_user,
        reason=payload.reason,
    )
    db.commit()
    db.refresh(request)
    return request


@router.put("/teacher-requests/{request_id}/confirm", response_model=TeacherRequestOut)
def confirm_swap(
    request_id: str,
    current_user: User = Depends(require_roles(UserRole.teacher)),
    db: Session = Depends(get_db),
) -> TeacherRequestOut:
    request = teacher_requests.confirm_swap_request(db, request_id=request_id, actor=current_user)
    db.commit()
    db.refresh(request)
    return request


@router.put("/teacher-requests/{request_id}/decline", response_model=TeacherRequestOut)
def decline_swap(
    request_id: str,
    payload: SwapDecline,
    current_user: User = Depends(require_roles(UserRole.teacher)),
    db: Session = Depends(get_db),
) -> TeacherRequestOut:
    request = teacher_requests.decline_swap_request(
        db,
        request_id=request_id,
        actor=current_user,
        reason=payload.reason,
    )
    db.commit()
    db.refresh(request)
    return request
