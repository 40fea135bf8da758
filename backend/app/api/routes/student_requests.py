from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_roles, require_staff
from app.core.exceptions import AccessDeniedError, InvalidInputError
from app.models.request_status import RequestStatus
from app.models.student_request import StudentRequestType
from app.models.user import User, UserRole
from app.schemas.student_request import (
    MakeupOptionOut,
    MissedSessionOut,
    RequestReject,
    StudentRequestApprove,
    StudentRequestOnBehalf,
    StudentRequestOut,
    StudentRequestPayload,
    TransferEligibilityOut,
    TransferOptionOut,
)
from app.services import makeup_planner, student_requests, transfer_gap
from app.services.timetable_queries import get_student, student_for_user

router = APIRouter()


def _resolve_student_id(db: Session, current_user: User, student_id: str | None) -> str:
    if current_user.is_staff:
        if not student_id:
            raise InvalidInputError("student_id is required when acting as staff")
        return get_student(db, student_id).id
    own = student_for_user(db, current_user.id)
    if student_id and student_id != own.id:
        raise AccessDeniedError("You can only view your own data")
    return own.id


@router.post("/student-requests", response_model=StudentRequestOut, status_code=status.HTTP_201_CREATED)
def submit_request(
    payload: StudentRequestPayload,
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> StudentRequestOut:
    request = student_requests.submit_student_request(db, actor=current_user, payload=payload)
    db.commit()
    db.refresh(request)
    return request


@router.post(
    "/student-requests/on-behalf",
    response_model=StudentRequestOut,
    status_code=status.HTTP_201_CREATED,
)
def submit_request_on_behalf(
    payload: StudentRequestOnBehalf,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> StudentRequestOut:
    request = student_requests.submit_student_request(
        db,
        actor=current_user,
        payload=payload.request,
        student_id=payload.student_id,
        override_reason=payload.override_reason,
    )
    db.commit()
    db.refresh(request)
    return request


@router.get("/student-requests", response_model=list[StudentRequestOut])
def list_requests(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    request_type: StudentRequestType | None = Query(default=None),
    student_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[StudentRequestOut]:
    return student_requests.list_student_requests(
        db,
        actor=current_user,
        status=status_filter,
        request_type=request_type,
        student_id=student_id,
    )


@router.get("/student-requests/missed-sessions", response_model=list[MissedSessionOut])
def missed_sessions(
    student_id: str | None = Query(default=None),
    weeks_back: int | None = Query(default=None, ge=1, le=52),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MissedSessionOut]:
    resolved = _resolve_student_id(db, current_user, student_id)
    return makeup_planner.get_missed_sessions(db, student_id=resolved, weeks_back=weeks_back)


@router.get("/student-requests/makeup-options", response_model=list[MakeupOptionOut])
def makeup_options(
    target_session_id: str = Query(min_length=1),
    student_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MakeupOptionOut]:
    resolved = _resolve_student_id(db, current_user, student_id)
    return makeup_planner.get_makeup_options(db, student_id=resolved, target_session_id=target_session_id)


@router.get("/student-requests/transfer-eligibility", response_model=TransferEligibilityOut)
def transfer_eligibility(
    student_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TransferEligibilityOut:
    resolved = _resolve_student_id(db, current_user, student_id)
    return transfer_gap.get_transfer_eligibility(db, student_id=resolved)


@router.get("/student-requests/transfer-options", response_model=list[TransferOptionOut])
def transfer_options(
    current_class_id: str = Query(min_length=1),
    student_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TransferOptionOut]:
    resolved = _resolve_student_id(db, current_user, student_id)
    return transfer_gap.get_transfer_options(db, student_id=resolved, current_class_id=current_class_id)


@router.get("/student-requests/{request_id}", response_model=StudentRequestOut)
def get_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StudentRequestOut:
    return student_requests.get_student_request(db, request_id=request_id, actor=current_user)


@router.put("/student-requests/{request_id}/approve", response_model=StudentRequestOut)
def approve_request(
    request_id: str,
    payload: StudentRequestApprove,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> StudentRequestOut:
    request = student_requests.approve_student_request(
        db,
        request_id=request_id,
        actor=current_user,
        payload=payload,
    )
    db.commit()
    db.refresh(request)
    return request


@router.put("/student-requests/{request_id}/reject", response_model=StudentRequestOut)
def reject_request(
    request_id: str,
    payload: RequestReject,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> StudentRequestOut:
    request = student_requests.reject_student_request(
        db,
        request_id=request_id,
        actor=current_user,
        reason=payload.reason,
    )
    db.commit()
    db.refresh(request)
    return request


@router.put("/student-requests/{request_id}/cancel", response_model=StudentRequestOut)
def cancel_request(
    request_id: str,
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> StudentRequestOut:
    request = student_requests.cancel_student_request(db, request_id=request_id, actor=current_user)
    db.commit()
    db.refresh(request)
    return request
