"""Teacher request workflow for SWAP, RESCHEDULE and MODALITY_CHANGE."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import (
    AccessDeniedError,
    BusinessRuleError,
    DuplicateRequestError,
    InvalidInputError,
    ResourceNotFoundError,
)
from app.models.class_entity import ClassEntity
from app.models.class_session import ClassSession, SessionStatus, TeachingSlot
from app.models.notification import NotificationType
from app.models.request_status import OPEN_REQUEST_STATUSES, RequestStatus
from app.models.resource import Resource
from app.models.student import Student
from app.models.teacher import Teacher
from app.models.teacher_request import TeacherRequest, TeacherRequestType
from app.models.time_slot import TimeSlot
from app.models.user import STAFF_ROLES, User
from app.schemas.teacher_request import (
    ModalityChangePayload,
    ReschedulePayload,
    SwapPayload,
    TeacherRequestApprove,
)
from app.services import capacity, swap_coordinator, timetable_mutations
from app.services.audit import log_request_transition
from app.services.conflict_service import (
    ACTIVE_TEACHING_STATUSES,
    ensure_resource_available,
    ensure_teacher_available,
    resource_is_free,
    students_are_free,
    teacher_is_free,
)
from app.services.notifications import notify_roles, notify_users
from app.services.request_states import ensure_status, transition
from app.services.resource_rules import (
    ensure_resource_fits,
    resource_keeps_modality,
    resource_seats,
    resource_switches_modality,
)
from app.services.timetable_queries import (
    active_teacher_ids,
    active_teaching_slot,
    get_class,
    get_resource,
    get_session,
    get_teacher,
    get_time_slot,
    session_resource,
    session_student_ids,
    teacher_for_user,
)

settings = get_settings()
logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _validate_reason(reason: str | None) -> str:
    normalized = (reason or "").strip()
    if len(normalized) < settings.request_reason_min_length:
        raise BusinessRuleError(
            "REASON_TOO_SHORT",
            f"Request reason must be at least {settings.request_reason_min_length} characters",
        )
    return normalized


def _teacher_of(db: Session, actor: User) -> Teacher:
    teacher = db.execute(select(Teacher).where(Teacher.user_id == actor.id)).scalar_one_or_none()
    if teacher is None:
        raise AccessDeniedError("Only teachers can perform this action", code="FORBIDDEN")
    return teacher


def _ensure_request_window(session: ClassSession) -> None:
    if session.status != SessionStatus.PLANNED:
        raise BusinessRuleError("INVALID_SESSION_STATUS", "Only planned sessions accept teacher requests")
    today = date.today()
    if not today <= session.date <= today + timedelta(days=settings.teacher_request_window_days):
        raise BusinessRuleError(
            "SESSION_NOT_IN_TIME_WINDOW",
            f"Session must take place within the next {settings.teacher_request_window_days} days",
        )


def _ensure_session_access(db: Session, *, actor: User, session: ClassSession) -> Teacher | None:
    if actor.is_staff:
        return None
    teacher = _teacher_of(db, actor)
    if active_teaching_slot(db, session_id=session.id, teacher_id=teacher.id) is None:
        raise AccessDeniedError("You are not assigned to this session", code="FORBIDDEN")
    return teacher


def _ensure_no_open_request(db: Session, *, session_id: str, request_type: TeacherRequestType) -> None:
    existing = db.execute(
        select(TeacherRequest.id)
        .where(
            TeacherRequest.session_id == session_id,
            TeacherRequest.request_type == request_type,
            TeacherRequest.status.in_(OPEN_REQUEST_STATUSES),
        )
        .limit(1)
    ).first()
    if existing is not None:
        raise DuplicateRequestError(
            f"An open {request_type.value} request already exists for this session",
            details={"session_id": session_id, "request_type": request_type.value},
        )


def _validate_swap(db: Session, teacher: Teacher, session: ClassSession, payload: SwapPayload) -> dict:
    if payload.replacement_teacher_id:
        if payload.replacement_teacher_id == teacher.id:
            raise InvalidInputError("Replacement teacher must differ from the requesting teacher")
        get_teacher(db, payload.replacement_teacher_id)
    return {"replacement_teacher_id": payload.replacement_teacher_id}


def _validate_reschedule(db: Session, teacher: Teacher, session: ClassSession, payload: ReschedulePayload) -> dict:
    if payload.new_date is None or not payload.new_time_slot_id:
        raise InvalidInputError("A new date and time slot are required to reschedule a session")
    if payload.new_date < date.today():
        raise BusinessRuleError("PAST_DATE", "Cannot reschedule a session into the past")
    slot = get_time_slot(db, payload.new_time_slot_id)
    ensure_teacher_available(
        db,
        teacher_id=teacher.id,
        on_date=payload.new_date,
        slot=slot,
        exclude_session_id=session.id,
    )
    if payload.new_resource_id:
        resource = get_resource(db, payload.new_resource_id)
        ensure_resource_fits(
            resource,
            get_class(db, session.class_id),
            headcount=capacity.count_session_students(db, session.id),
            switching_modality=False,
        )
        resource_id = resource.id
    else:
        # The session keeps its current resource at the new time.
        binding = session_resource(db, session.id)
        resource_id = binding.resource_id if binding else None
    if resource_id is not None:
        ensure_resource_available(
            db,
            resource_id=resource_id,
            on_date=payload.new_date,
            slot=slot,
            exclude_session_id=session.id,
        )
    return {
        "new_date": payload.new_date,
        "new_time_slot_id": slot.id,
        "new_resource_id": payload.new_resource_id,
    }


def _validate_modality_change(
    db: Session, teacher: Teacher, session: ClassSession, payload: ModalityChangePayload
) -> dict:
    if not payload.new_resource_id:
        raise InvalidInputError("A new resource is required for a modality change")
    resource = get_resource(db, payload.new_resource_id)
    ensure_resource_fits(
        resource,
        get_class(db, session.class_id),
        headcount=capacity.count_session_students(db, session.id),
        switching_modality=True,
    )
    ensure_resource_available(
        db,
        resource_id=resource.id,
        on_date=session.date,
        slot=db.get(TimeSlot, session.time_slot_id),
        exclude_session_id=session.id,
    )
    return {"new_resource_id": resource.id}


_VALIDATORS: dict[TeacherRequestType, Callable[..., dict]] = {
    TeacherRequestType.SWAP: _validate_swap,
    TeacherRequestType.RESCHEDULE: _validate_reschedule,
    TeacherRequestType.MODALITY_CHANGE: _validate_modality_change,
}


def create_teacher_request(
    db: Session,
    *,
    actor: User,
    payload: SwapPayload | ReschedulePayload | ModalityChangePayload,
) -> TeacherRequest:
    request_type = TeacherRequestType(payload.request_type)
    teacher = _teacher_of(db, actor)
    reason = _validate_reason(payload.request_reason)

    session = get_session(db, payload.session_id)
    if active_teaching_slot(db, session_id=session.id, teacher_id=teacher.id) is None:
        raise AccessDeniedError("You are not assigned to this session", code="FORBIDDEN")
    _ensure_request_window(session)
    _ensure_no_open_request(db, session_id=session.id, request_type=request_type)

    fields = _VALIDATORS[request_type](db, teacher, session, payload)
    request = TeacherRequest(
        teacher_id=teacher.id,
        session_id=session.id,
        request_type=request_type,
        status=RequestStatus.PENDING,
        request_reason=reason,
        submitted_by_id=actor.id,
        **fields,
    )
    db.add(request)
    db.flush()

    log_request_transition(db, user=actor, request=request, action="submit")
    logger.info("Teacher %s submitted %s request %s", teacher.id, request_type.value, request.id)
    notify_roles(
        db,
        roles=STAFF_ROLES,
        title=f"New {request_type.value.lower().replace('_', ' ')} request",
        message=f"{teacher.name} submitted a {request_type.value} request for session on {session.date.isoformat()}.",
        entity_id=request.id,
    )
    db.flush()
    return request


def _lock_request(db: Session, request_id: str) -> TeacherRequest:
    request = db.execute(
        select(TeacherRequest).where(TeacherRequest.id == request_id).with_for_update()
    ).scalar_one_or_none()
    if request is None:
        raise ResourceNotFoundError("Teacher request", request_id)
    return request


def _teacher_user_id(db: Session, teacher_id: str | None) -> str | None:
    if not teacher_id:
        return None
    teacher = db.get(Teacher, teacher_id)
    return teacher.user_id if teacher is not None else None


def _student_user_ids(db: Session, session_id: str) -> list[str]:
    student_ids = session_student_ids(db, session_id)
    if not student_ids:
        return []
    return list(db.execute(select(Student.user_id).where(Student.id.in_(student_ids))).scalars())


def _approve_modality_change(db: Session, request: TeacherRequest, payload: TeacherRequestApprove) -> None:
    resource_id = payload.new_resource_id or request.new_resource_id
    if not resource_id:
        raise InvalidInputError("A resource is required to approve a modality change")
    timetable_mutations.change_session_resource(
        db,
        session_id=request.session_id,
        resource=get_resource(db, resource_id),
    )
    request.new_resource_id = resource_id
    transition(request, RequestStatus.APPROVED)


def _approve_reschedule(db: Session, request: TeacherRequest, payload: TeacherRequestApprove) -> None:
    new_date = payload.new_date or request.new_date
    time_slot_id = payload.new_time_slot_id or request.new_time_slot_id
    resource_id = payload.new_resource_id or request.new_resource_id
    if new_date is None or not time_slot_id:
        raise InvalidInputError("A new date and time slot are required to approve a reschedule")
    new_session = timetable_mutations.reschedule_session(
        db,
        session_id=request.session_id,
        new_date=new_date,
        slot=get_time_slot(db, time_slot_id),
        resource=get_resource(db, resource_id) if resource_id else None,
    )
    request.new_date = new_date
    request.new_time_slot_id = time_slot_id
    request.new_resource_id = resource_id
    request.new_session_id = new_session.id
    transition(request, RequestStatus.APPROVED)

    notify_users(
        db,
        user_ids=_student_user_ids(db, new_session.id),
        title="Session rescheduled",
        message=f"A session of your class moved to {new_date.isoformat()}.",
        notification_type=NotificationType.schedule,
        entity_id=new_session.id,
    )


def _approve_swap(db: Session, request: TeacherRequest, payload: TeacherRequestApprove) -> None:
    swap_coordinator.approve_swap(db, request, replacement_teacher_id=payload.replacement_teacher_id)
    notify_users(
        db,
        user_ids=[_teacher_user_id(db, request.replacement_teacher_id)],
        title="Swap awaiting your confirmation",
        message="You were proposed as the replacement teacher for a session. Please confirm or decline.",
        notification_type=NotificationType.swap,
        entity_id=request.id,
    )


_APPROVERS: dict[TeacherRequestType, Callable[[Session, TeacherRequest, TeacherRequestApprove], None]] = {
    TeacherRequestType.SWAP: _approve_swap,
    TeacherRequestType.RESCHEDULE: _approve_reschedule,
    TeacherRequestType.MODALITY_CHANGE: _approve_modality_change,
}


def approve_teacher_request(
    db: Session,
    *,
    request_id: str,
    actor: User,
    payload: TeacherRequestApprove,
) -> TeacherRequest:
    request = _lock_request(db, request_id)
    ensure_status(request, RequestStatus.PENDING)

    _APPROVERS[request.request_type](db, request, payload)
    request.decided_by_id = actor.id
    if request.status == RequestStatus.APPROVED:
        request.decided_at = _utc_now()
    if payload.note:
        request.note = payload.note.strip() if not request.note else f"{request.note}\n{payload.note.strip()}"

    log_request_transition(db, user=actor, request=request, action="approve")
    notify_users(
        db,
        user_ids=[_teacher_user_id(db, request.teacher_id)],
        title=f"{request.request_type.value.title().replace('_', ' ')} request approved",
        message=(
            "Your swap was approved and is waiting for the replacement teacher."
            if request.status == RequestStatus.WAITING_CONFIRM
            else f"Your {request.request_type.value} request was approved."
        ),
        entity_id=request.id,
    )
    db.flush()
    return request


def reject_teacher_request(db: Session, *, request_id: str, actor: User, reason: str) -> TeacherRequest:
    request = _lock_request(db, request_id)
    ensure_status(request, RequestStatus.PENDING)
    transition(request, RequestStatus.REJECTED)
    request.note = reason.strip()
    request.decided_by_id = actor.id
    request.decided_at = _utc_now()
    log_request_transition(db, user=actor, request=request, action="reject", details={"reason": request.note})
    notify_users(
        db,
        user_ids=[_teacher_user_id(db, request.teacher_id)],
        title=f"{request.request_type.value.title().replace('_', ' ')} request rejected",
        message=f"Your {request.request_type.value} request was rejected: {request.note}",
        entity_id=request.id,
    )
    db.flush()
    return request


def confirm_swap_request(db: Session, *, request_id: str, actor: User) -> TeacherRequest:
    request = _lock_request(db, request_id)
    swap_coordinator.confirm_swap(db, request, actor_user_id=actor.id)
    log_request_transition(db, user=actor, request=request, action="swap.confirm")
    notify_users(
        db,
        user_ids=[_teacher_user_id(db, request.teacher_id)],
        title="Swap confirmed",
        message="The replacement teacher accepted your session.",
        notification_type=NotificationType.swap,
        entity_id=request.id,
    )
    db.flush()
    return request


def decline_swap_request(db: Session, *, request_id: str, actor: User, reason: str) -> TeacherRequest:
    request = _lock_request(db, request_id)
    swap_coordinator.decline_swap(db, request, actor_user_id=actor.id, reason=reason)
    log_request_transition(db, user=actor, request=request, action="swap.decline", details={"reason": reason})
    notify_roles(
        db,
        roles=STAFF_ROLES,
        title="Swap declined",
        message="The replacement teacher declined a swap. Please assign another teacher.",
        notification_type=NotificationType.swap,
        entity_id=request.id,
    )
    db.flush()
    return request


def list_teacher_requests(
    db: Session,
    *,
    actor: User,
    status: RequestStatus | None = None,
    request_type: TeacherRequestType | None = None,
) -> list[TeacherRequest]:
    query = select(TeacherRequest).order_by(TeacherRequest.submitted_at.desc())
    if not actor.is_staff:
        teacher = teacher_for_user(db, actor.id)
        query = query.where(
            or_(
                TeacherRequest.teacher_id == teacher.id,
                TeacherRequest.replacement_teacher_id == teacher.id,
            )
        )
    if status is not None:
        query = query.where(TeacherRequest.status == status)
    if request_type is not None:
        query = query.where(TeacherRequest.request_type == request_type)
    return list(db.execute(query).scalars())


def get_teacher_request(db: Session, *, request_id: str, actor: User) -> TeacherRequest:
    request = db.get(TeacherRequest, request_id)
    if request is None:
        raise ResourceNotFoundError("Teacher request", request_id)
    if actor.is_staff:
        return request
    teacher = _teacher_of(db, actor)
    if teacher.id not in {request.teacher_id, request.replacement_teacher_id}:
        raise AccessDeniedError("You can only view your own requests")
    return request


def list_upcoming_sessions(db: Session, *, actor: User, on_date: date | None = None) -> list[dict]:
    teacher = _teacher_of(db, actor)
    today = date.today()
    query = (
        select(ClassSession, ClassEntity, TimeSlot)
        .join(TeachingSlot, TeachingSlot.session_id == ClassSession.id)
        .join(ClassEntity, ClassEntity.id == ClassSession.class_id)
        .join(TimeSlot, TimeSlot.id == ClassSession.time_slot_id)
        .where(
            TeachingSlot.teacher_id == teacher.id,
            TeachingSlot.status.in_(ACTIVE_TEACHING_STATUSES),
            ClassSession.status == SessionStatus.PLANNED,
        )
        .order_by(ClassSession.date, TimeSlot.start_time)
    )
    if on_date is not None:
        query = query.where(ClassSession.date == on_date)
    else:
        query = query.where(
            ClassSession.date >= today,
            ClassSession.date <= today + timedelta(days=settings.teacher_request_window_days),
        )
    rows = db.execute(query).all()

    pending = set(
        db.execute(
            select(TeacherRequest.session_id).where(
                TeacherRequest.teacher_id == teacher.id,
                TeacherRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
        ).scalars()
    )
    return [
        {
            "session_id": session.id,
            "class_id": class_entity.id,
            "class_code": class_entity.code,
            "date": session.date,
            "time_slot_id": slot.id,
            "start_time": slot.start_time,
            "end_time": slot.end_time,
            "has_pending_request": session.id in pending,
        }
        for session, class_entity, slot in rows
    ]


def suggest_slots(db: Session, *, session_id: str, actor: User, on_date: date) -> list[TimeSlot]:
    session = get_session(db, session_id)
    _ensure_session_access(db, actor=actor, session=session)
    teacher_ids = active_teacher_ids(db, session.id)
    student_ids = session_student_ids(db, session.id)

    suggestions = []
    for slot in db.execute(select(TimeSlot).order_by(TimeSlot.start_time)).scalars():
        if on_date == session.date and slot.id == session.time_slot_id:
            continue
        teachers_free = all(
            teacher_is_free(db, teacher_id=teacher_id, on_date=on_date, slot=slot, exclude_session_id=session.id)
            for teacher_id in teacher_ids
        )
        if not teachers_free:
            continue
        if not students_are_free(
            db, student_ids=student_ids, on_date=on_date, slot=slot, exclude_session_id=session.id
        ):
            continue
        suggestions.append(slot)
    return suggestions


def _rank_resources(
    db: Session,
    *,
    session: ClassSession,
    on_date: date,
    slot: TimeSlot,
    fits: Callable[[Resource, ClassEntity], bool],
) -> list[dict]:
    class_entity = get_class(db, session.class_id)
    headcount = capacity.count_session_students(db, session.id)
    binding = session_resource(db, session.id)
    current_id = binding.resource_id if binding else None

    suggestions = []
    resources = db.execute(select(Resource).where(Resource.branch_id == class_entity.branch_id)).scalars()
    for resource in resources:
        if not fits(resource, class_entity) or not resource_seats(resource, headcount):
            continue
        if not resource_is_free(
            db, resource_id=resource.id, on_date=on_date, slot=slot, exclude_session_id=session.id
        ):
            continue
        suggestions.append(
            {
                "resource_id": resource.id,
                "name": resource.name,
                "resource_type": resource.resource_type,
                "capacity": resource.capacity,
                "branch_id": resource.branch_id,
                "is_current": resource.id == current_id,
            }
        )
    suggestions.sort(key=lambda item: (not item["is_current"], item["name"].lower()))
    return suggestions


def suggest_resources(
    db: Session,
    *,
    session_id: str,
    actor: User,
    on_date: date,
    time_slot_id: str,
) -> list[dict]:
    session = get_session(db, session_id)
    _ensure_session_access(db, actor=actor, session=session)
    return _rank_resources(
        db,
        session=session,
        on_date=on_date,
        slot=get_time_slot(db, time_slot_id),
        fits=resource_keeps_modality,
    )


def suggest_modality_resources(db: Session, *, session_id: str, actor: User) -> list[dict]:
    session = get_session(db, session_id)
    _ensure_session_access(db, actor=actor, session=session)
    return _rank_resources(
        db,
        session=session,
        on_date=session.date,
        slot=get_time_slot(db, session.time_slot_id),
        fits=resource_switches_modality,
    )


def suggest_swap_candidates(db: Session, *, session_id: str, actor: User) -> list[swap_coordinator.SwapCandidate]:
    session = get_session(db, session_id)
    teacher = _ensure_session_access(db, actor=actor, session=session)
    return swap_coordinator.suggest_swap_candidates(
        db,
        session_id=session.id,
        requester_id=teacher.id if teacher is not None else None,
    )
