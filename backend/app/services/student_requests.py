"""Student request workflow for ABSENCE, MAKEUP and TRANSFER requests.

Submission validates against the timetable and persists a PENDING row.
Approval hands the request to the mutation executor and only then stamps
APPROVED, so a failed mutation leaves the request untouched once the
caller rolls back.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    AccessDeniedError,
    BusinessRuleError,
    DuplicateRequestError,
    InvalidInputError,
    ResourceNotFoundError,
    SchedulingConflictError,
)
from app.models.class_session import ClassSession, SessionStatus
from app.models.enrollment import AttendanceStatus, StudentSession
from app.models.request_status import OPEN_REQUEST_STATUSES, RequestStatus
from app.models.student import Student
from app.models.student_request import StudentRequest, StudentRequestType
from app.models.time_slot import TimeSlot
from app.models.user import STAFF_ROLES, User
from app.schemas.student_request import (
    AbsencePayload,
    MakeupPayload,
    StudentRequestApprove,
    TransferPayload,
)
from app.services import capacity, timetable_mutations
from app.services.audit import log_request_transition
from app.services.conflict_service import students_are_free
from app.services.notifications import notify_roles, notify_users
from app.services.request_states import ensure_status, transition
from app.services.timetable_mutations import TRANSFERABLE_CLASS_STATUSES
from app.services.timetable_queries import (
    active_enrollment,
    get_class,
    get_session,
    get_student,
    student_for_user,
    student_session,
)

settings = get_settings()
logger = logging.getLogger(__name__)

AUTO_APPROVED_NOTE = "Auto-approved by Academic Affairs"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


@dataclass(frozen=True)
class Submission:
    student: Student
    actor: User
    reason: str
    note: str | None
    on_behalf: bool
    override_reason: str | None

    def new_request(self, request_type: StudentRequestType, **references) -> StudentRequest:
        return StudentRequest(
            student_id=self.student.id,
            request_type=request_type,
            status=RequestStatus.PENDING,
            request_reason=self.reason,
            note=self.note,
            submitted_by_id=self.actor.id,
            **references,
        )


def _validate_reason(reason: str | None) -> str:
    normalized = (reason or "").strip()
    if len(normalized) < settings.request_reason_min_length:
        raise BusinessRuleError(
            "REASON_TOO_SHORT",
            f"Request reason must be at least {settings.request_reason_min_length} characters",
        )
    return normalized


def _ensure_no_open_request(
    db: Session,
    *,
    student_id: str,
    request_type: StudentRequestType,
    target_session_id: str | None = None,
    current_class_id: str | None = None,
) -> None:
    query = select(StudentRequest.id).where(
        StudentRequest.student_id == student_id,
        StudentRequest.request_type == request_type,
        StudentRequest.status.in_(OPEN_REQUEST_STATUSES),
    )
    if target_session_id is not None:
        query = query.where(StudentRequest.target_session_id == target_session_id)
    if current_class_id is not None:
        query = query.where(StudentRequest.current_class_id == current_class_id)
    if db.execute(query.limit(1)).first() is not None:
        raise DuplicateRequestError(
            f"An open {request_type.value} request already exists for this student",
            details={"student_id": student_id, "request_type": request_type.value},
        )


def absence_rate(db: Session, *, student_id: str, class_id: str) -> float:
    rows = db.execute(
        select(StudentSession.attendance_status, func.count())
        .join(ClassSession, ClassSession.id == StudentSession.session_id)
        .where(
            StudentSession.student_id == student_id,
            ClassSession.class_id == class_id,
            ClassSession.date < date.today(),
        )
        .group_by(StudentSession.attendance_status)
    ).all()
    total = sum(count for _, count in rows)
    if total == 0:
        return 0.0
    absent = sum(count for status, count in rows if status == AttendanceStatus.ABSENT)
    return absent * 100.0 / total


def validate_makeup_session(db: Session, *, target: ClassSession, makeup: ClassSession) -> None:
    if makeup.id == target.id:
        raise BusinessRuleError("INVALID_MAKEUP_SESSION", "Makeup session must differ from the missed session")
    if makeup.status != SessionStatus.PLANNED:
        raise BusinessRuleError("INVALID_MAKEUP_STATUS", "Makeup session must be planned")
    if makeup.date < date.today():
        raise BusinessRuleError("PAST_SESSION", "Makeup session is in the past")
    if makeup.course_session_id is None or makeup.course_session_id != target.course_session_id:
        raise BusinessRuleError("COURSE_SESSION_MISMATCH", "Makeup session must cover the same course session")


def _ensure_absence_target(db: Session, *, student_id: str, session: ClassSession, by_staff: bool) -> None:
    active_enrollment(db, student_id=student_id, class_id=session.class_id)

    allowed = (SessionStatus.PLANNED, SessionStatus.DONE) if by_staff else (SessionStatus.PLANNED,)
    if session.status not in allowed:
        raise BusinessRuleError("INVALID_SESSION_STATUS", f"Cannot request absence for a {session.status.value} session")

    today = date.today()
    earliest = today - timedelta(days=settings.absence_lookback_days) if by_staff else today
    if session.date < earliest:
        raise BusinessRuleError("PAST_SESSION", "Cannot request absence for a past session")

    _ensure_no_open_request(
        db,
        student_id=student_id,
        request_type=StudentRequestType.ABSENCE,
        target_session_id=session.id,
    )


def _ensure_makeup_target(db: Session, *, student_id: str, target: ClassSession) -> None:
    active_enrollment(db, student_id=student_id, class_id=target.class_id)

    missed = student_session(db, student_id=student_id, session_id=target.id)
    if missed is None or missed.attendance_status != AttendanceStatus.ABSENT:
        raise BusinessRuleError("NOT_ABSENT", "Can only makeup absent sessions")
    if missed.makeup_session_id is not None:
        raise BusinessRuleError("ALREADY_MADE_UP", "A makeup session is already booked for this absence")
    if target.date < date.today() - timedelta(weeks=settings.makeup_window_weeks):
        raise BusinessRuleError(
            "SESSION_TOO_OLD",
            f"Can only makeup sessions missed within the last {settings.makeup_window_weeks} weeks",
        )


def _submit_absence(db: Session, submission: Submission, payload: AbsencePayload) -> StudentRequest:
    session = get_session(db, payload.target_session_id)
    student = submission.student
    _ensure_absence_target(db, student_id=student.id, session=session, by_staff=submission.on_behalf)
    today = date.today()

    if (session.date - today).days < settings.absence_lead_time_days:
        logger.warning("Absence for session %s requested with short notice by student %s", session.id, student.id)
    rate = absence_rate(db, student_id=student.id, class_id=session.class_id)
    if rate > settings.absence_rate_warning_percent:
        logger.warning("Student %s absence rate %.1f%% in class %s", student.id, rate, session.class_id)

    return submission.new_request(
        StudentRequestType.ABSENCE,
        target_session_id=session.id,
        current_class_id=session.class_id,
    )


def _submit_makeup(db: Session, submission: Submission, payload: MakeupPayload) -> StudentRequest:
    student = submission.student
    target = get_session(db, payload.target_session_id)
    makeup = get_session(db, payload.makeup_session_id)
    _ensure_makeup_target(db, student_id=student.id, target=target)

    validate_makeup_session(db, target=target, makeup=makeup)
    makeup_class = get_class(db, makeup.class_id)
    capacity.ensure_seat_available(
        enrolled=capacity.count_session_students(db, makeup.id),
        max_capacity=makeup_class.max_capacity,
        override_reason=submission.override_reason if submission.on_behalf else None,
        code="SESSION_FULL",
        message="Makeup session is full",
    )

    slot = db.get(TimeSlot, makeup.time_slot_id)
    if not students_are_free(db, student_ids=[student.id], on_date=makeup.date, slot=slot):
        raise SchedulingConflictError("Makeup session overlaps another session of the student")

    _ensure_no_open_request(
        db,
        student_id=student.id,
        request_type=StudentRequestType.MAKEUP,
        target_session_id=target.id,
    )
    return submission.new_request(
        StudentRequestType.MAKEUP,
        target_session_id=target.id,
        makeup_session_id=makeup.id,
        current_class_id=target.class_id,
    )


def _submit_transfer(db: Session, submission: Submission, payload: TransferPayload) -> StudentRequest:
    student = submission.student
    current_class = get_class(db, payload.current_class_id)
    target_class = get_class(db, payload.target_class_id)
    active_enrollment(db, student_id=student.id, class_id=current_class.id)

    if (
        target_class.id == current_class.id
        or target_class.course_id != current_class.course_id
        or target_class.status not in TRANSFERABLE_CLASS_STATUSES
    ):
        raise BusinessRuleError("INVALID_TRANSFER", "Target class is not a valid transfer option")
    capacity.ensure_seat_available(
        enrolled=capacity.count_enrolled(db, target_class.id),
        max_capacity=target_class.max_capacity,
        override_reason=submission.override_reason if submission.on_behalf else None,
        code="INVALID_TRANSFER",
        message="Target class has no free capacity",
    )
    capacity.ensure_transfer_quota(
        capacity.count_approved_transfers(db, student_id=student.id, course_id=current_class.course_id)
    )

    if payload.effective_date < date.today():
        raise BusinessRuleError("PAST_EFFECTIVE_DATE", "Effective date cannot be in the past")
    effective_session = db.execute(
        select(ClassSession)
        .where(
            ClassSession.class_id == target_class.id,
            ClassSession.date == payload.effective_date,
            ClassSession.status == SessionStatus.PLANNED,
        )
        .limit(1)
    ).scalar_one_or_none()
    if effective_session is None:
        raise BusinessRuleError("NO_SESSION_ON_DATE", "Target class has no session on the effective date")

    _ensure_no_open_request(
        db,
        student_id=student.id,
        request_type=StudentRequestType.TRANSFER,
        current_class_id=current_class.id,
    )
    if capacity.requires_staff_approval(current_class, target_class) and not submission.on_behalf:
        raise BusinessRuleError(
            "REQUIRES_AA_APPROVAL",
            "Cross-branch or cross-modality transfers must be submitted by Academic Affairs",
        )

    return submission.new_request(
        StudentRequestType.TRANSFER,
        current_class_id=current_class.id,
        target_class_id=target_class.id,
        effective_date=payload.effective_date,
        effective_session_id=effective_session.id,
    )


def _execute_absence(db: Session, request: StudentRequest, *, actor: User, override_reason: str | None) -> None:
    timetable_mutations.mark_absent(
        db,
        student_id=request.student_id,
        session_id=request.target_session_id,
        note="Excused absence approved",
    )


def _execute_makeup(db: Session, request: StudentRequest, *, actor: User, override_reason: str | None) -> None:
    timetable_mutations.assign_makeup(
        db,
        student_id=request.student_id,
        target_session_id=request.target_session_id,
        makeup_session_id=request.makeup_session_id,
        override_reason=override_reason,
    )


def _execute_transfer(db: Session, request: StudentRequest, *, actor: User, override_reason: str | None) -> None:
    timetable_mutations.execute_transfer(
        db,
        student_id=request.student_id,
        current_class_id=request.current_class_id,
        target_class_id=request.target_class_id,
        effective_date=request.effective_date,
        actor_id=actor.id,
        override_reason=override_reason,
    )


_SUBMIT_HANDLERS: dict[StudentRequestType, Callable[..., StudentRequest]] = {
    StudentRequestType.ABSENCE: _submit_absence,
    StudentRequestType.MAKEUP: _submit_makeup,
    StudentRequestType.TRANSFER: _submit_transfer,
}

_EXECUTORS: dict[StudentRequestType, Callable[..., None]] = {
    StudentRequestType.ABSENCE: _execute_absence,
    StudentRequestType.MAKEUP: _execute_makeup,
    StudentRequestType.TRANSFER: _execute_transfer,
}


def _student_user_id(db: Session, student_id: str) -> str | None:
    student = db.get(Student, student_id)
    return student.user_id if student is not None else None


def _lock_request(db: Session, request_id: str) -> StudentRequest:
    request = db.execute(
        select(StudentRequest).where(StudentRequest.id == request_id).with_for_update()
    ).scalar_one_or_none()
    if request is None:
        raise ResourceNotFoundError("Student request", request_id)
    return request


def _apply_approval(
    db: Session,
    request: StudentRequest,
    *,
    actor: User,
    note: str | None,
    override_reason: str | None,
) -> None:
    _EXECUTORS[request.request_type](db, request, actor=actor, override_reason=override_reason)
    transition(request, RequestStatus.APPROVED)
    request.decided_by_id = actor.id
    request.decided_at = _utc_now()
    if note:
        request.note = note


def submit_student_request(
    db: Session,
    *,
    actor: User,
    payload: AbsencePayload | MakeupPayload | TransferPayload,
    student_id: str | None = None,
    override_reason: str | None = None,
) -> StudentRequest:
    request_type = StudentRequestType(payload.request_type)
    on_behalf = student_id is not None
    if on_behalf:
        if not actor.is_staff:
            raise AccessDeniedError("Only academic staff can submit requests on behalf of a student")
        student = get_student(db, student_id)
    else:
        student = student_for_user(db, actor.id)

    submission = Submission(
        student=student,
        actor=actor,
        reason=_validate_reason(payload.request_reason),
        note=_normalize_text(payload.note),
        on_behalf=on_behalf,
        override_reason=_normalize_text(override_reason),
    )
    request = _SUBMIT_HANDLERS[request_type](db, submission, payload)
    db.add(request)
    db.flush()
    log_request_transition(db, user=actor, request=request, action="submit", details={"on_behalf": on_behalf})
    logger.info("Student %s submitted %s request %s", student.id, request_type.value, request.id)

    if on_behalf:
        _apply_approval(
            db,
            request,
            actor=actor,
            note=AUTO_APPROVED_NOTE,
            override_reason=submission.override_reason,
        )
        log_request_transition(db, user=actor, request=request, action="approve", details={"on_behalf": True})
        notify_users(
            db,
            user_ids=[student.user_id],
            title=f"{request_type.value.title()} request approved",
            message=f"Academic Affairs recorded a {request_type.value} request on your behalf.",
            entity_id=request.id,
        )
    else:
        notify_roles(
            db,
            roles=STAFF_ROLES,
            title=f"New {request_type.value.lower()} request",
            message=f"{student.name} submitted a {request_type.value} request awaiting review.",
            entity_id=request.id,
        )
    db.flush()
    return request


def _retarget(db: Session, request: StudentRequest, session_id: str) -> None:
    """Point an ABSENCE or MAKEUP request at another session chosen by staff."""
    session = get_session(db, session_id)
    if request.request_type == StudentRequestType.ABSENCE:
        _ensure_absence_target(db, student_id=request.student_id, session=session, by_staff=True)
    elif request.request_type == StudentRequestType.MAKEUP:
        _ensure_makeup_target(db, student_id=request.student_id, target=session)
        _ensure_no_open_request(
            db,
            student_id=request.student_id,
            request_type=StudentRequestType.MAKEUP,
            target_session_id=session.id,
        )
    else:
        raise InvalidInputError("Only ABSENCE and MAKEUP requests can change their target session")
    request.target_session_id = session.id
    request.current_class_id = session.class_id


def approve_student_request(
    db: Session,
    *,
    request_id: str,
    actor: User,
    payload: StudentRequestApprove,
) -> StudentRequest:
    request = _lock_request(db, request_id)
    ensure_status(request, RequestStatus.PENDING)

    retargeted = bool(payload.target_session_id) and payload.target_session_id != request.target_session_id
    if retargeted:
        _retarget(db, request, payload.target_session_id)
    if request.request_type == StudentRequestType.MAKEUP and (
        retargeted or (payload.makeup_session_id and payload.makeup_session_id != request.makeup_session_id)
    ):
        target = get_session(db, request.target_session_id)
        makeup = get_session(db, payload.makeup_session_id or request.makeup_session_id)
        validate_makeup_session(db, target=target, makeup=makeup)
        request.makeup_session_id = makeup.id

    _apply_approval(
        db,
        request,
        actor=actor,
        note=_normalize_text(payload.note),
        override_reason=_normalize_text(payload.override_reason),
    )
    log_request_transition(
        db,
        user=actor,
        request=request,
        action="approve",
        details={"override": bool(payload.override_reason)},
    )
    notify_users(
        db,
        user_ids=[_student_user_id(db, request.student_id)],
        title=f"{request.request_type.value.title()} request approved",
        message=f"Your {request.request_type.value} request was approved.",
        entity_id=request.id,
    )
    db.flush()
    return request


def reject_student_request(db: Session, *, request_id: str, actor: User, reason: str) -> StudentRequest:
    request = _lock_request(db, request_id)
    ensure_status(request, RequestStatus.PENDING)
    transition(request, RequestStatus.REJECTED)
    request.note = reason.strip()
    request.decided_by_id = actor.id
    request.decided_at = _utc_now()
    log_request_transition(db, user=actor, request=request, action="reject", details={"reason": request.note})
    notify_users(
        db,
        user_ids=[_student_user_id(db, request.student_id)],
        title=f"{request.request_type.value.title()} request rejected",
        message=f"Your {request.request_type.value} request was rejected: {request.note}",
        entity_id=request.id,
    )
    db.flush()
    return request


def cancel_student_request(db: Session, *, request_id: str, actor: User) -> StudentRequest:
    request = _lock_request(db, request_id)
    student = db.execute(select(Student).where(Student.user_id == actor.id)).scalar_one_or_none()
    if student is None or student.id != request.student_id:
        raise AccessDeniedError("Only the owning student can cancel this request")
    ensure_status(request, RequestStatus.PENDING, message="Only pending requests can be cancelled")
    transition(request, RequestStatus.CANCELLED)
    log_request_transition(db, user=actor, request=request, action="cancel")
    db.flush()
    return request


def list_student_requests(
    db: Session,
    *,
    actor: User,
    status: RequestStatus | None = None,
    request_type: StudentRequestType | None = None,
    student_id: str | None = None,
) -> list[StudentRequest]:
    query = select(StudentRequest).order_by(StudentRequest.submitted_at.desc())
    if actor.is_staff:
        if student_id:
            query = query.where(StudentRequest.student_id == student_id)
    else:
        query = query.where(StudentRequest.student_id == student_for_user(db, actor.id).id)
    if status is not None:
        query = query.where(StudentRequest.status == status)
    if request_type is not None:
        query = query.where(StudentRequest.request_type == request_type)
    return list(db.execute(query).scalars())


def get_student_request(db: Session, *, request_id: str, actor: User) -> StudentRequest:
    request = db.get(StudentRequest, request_id)
    if request is None:
        raise ResourceNotFoundError("Student request", request_id)
    if not actor.is_staff and _student_user_id(db, request.student_id) != actor.id:
        raise AccessDeniedError("You can only view your own requests")
    return request
