from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import AccessDeniedError, BusinessRuleError, InvalidInputError
from app.models.course import Course
from app.models.request_status import RequestStatus
from app.models.teacher import Teacher
from app.models.teacher_request import TeacherRequest, TeacherRequestType
from app.models.time_slot import TimeSlot
from app.services import timetable_mutations
from app.services.conflict_service import ensure_teacher_available, teacher_is_free
from app.services.request_states import ensure_status, transition
from app.services.timetable_queries import active_teacher_ids, get_class, get_session, get_teacher

logger = logging.getLogger(__name__)

DECLINE_MARKER = "DECLINED_BY_TEACHER_ID_"
_DECLINE_PATTERN = re.compile(re.escape(DECLINE_MARKER) + r"([0-9A-Za-z-]+)")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SwapCandidate:
    teacher_id: str
    name: str
    email: str
    skill_priority: int
    availability_priority: int
    has_conflict: bool


def declined_teacher_ids(notes: list[str | None]) -> set[str]:
    found: set[str] = set()
    for note in notes:
        if note:
            found.update(_DECLINE_PATTERN.findall(note))
    return found


def append_decline_marker(note: str | None, teacher_id: str, reason: str) -> str:
    marker = f"{DECLINE_MARKER}{teacher_id}: {reason.strip()}"
    if note:
        return f"{note}\n{marker}"
    return marker


def _ensure_swap(request: TeacherRequest) -> None:
    if request.request_type != TeacherRequestType.SWAP:
        raise BusinessRuleError("INVALID_REQUEST", "Only SWAP requests go through replacement confirmation")


def approve_swap(db: Session, request: TeacherRequest, *, replacement_teacher_id: str | None) -> None:
    """Record the replacement and wait for them to accept; slots stay untouched."""
    replacement_id = replacement_teacher_id or request.replacement_teacher_id
    if not replacement_id:
        raise InvalidInputError("A replacement teacher is required to approve a swap")
    if replacement_id == request.teacher_id:
        raise InvalidInputError("Replacement teacher must differ from the requesting teacher")
    get_teacher(db, replacement_id)

    session = get_session(db, request.session_id)
    timetable_mutations.ensure_session_planned(session, "Only planned sessions can be swapped")
    slot = db.get(TimeSlot, session.time_slot_id)
    ensure_teacher_available(
        db,
        teacher_id=replacement_id,
        on_date=session.date,
        slot=slot,
        exclude_session_id=session.id,
    )
    request.replacement_teacher_id = replacement_id
    transition(request, RequestStatus.WAITING_CONFIRM)


def _replacement_request(db: Session, request: TeacherRequest, *, actor_user_id: str) -> Teacher:
    _ensure_swap(request)
    ensure_status(request, RequestStatus.WAITING_CONFIRM, message="Swap is not waiting for confirmation")
    replacement = (
        db.get(Teacher, request.replacement_teacher_id) if request.replacement_teacher_id else None
    )
    if replacement is None or replacement.user_id != actor_user_id:
        raise AccessDeniedError("Only the designated replacement teacher can respond to this swap", code="FORBIDDEN")
    return replacement


def confirm_swap(db: Session, request: TeacherRequest, *, actor_user_id: str) -> TeacherRequest:
    replacement = _replacement_request(db, request, actor_user_id=actor_user_id)
    timetable_mutations.substitute_teacher(
        db,
        session_id=request.session_id,
        original_teacher_id=request.teacher_id,
        replacement_teacher_id=replacement.id,
    )
    transition(request, RequestStatus.APPROVED)
    request.decided_at = _utc_now()
    logger.info("Swap %s confirmed by teacher %s", request.id, replacement.id)
    return request


def decline_swap(db: Session, request: TeacherRequest, *, actor_user_id: str, reason: str) -> TeacherRequest:
    replacement = _replacement_request(db, request, actor_user_id=actor_user_id)
    request.note = append_decline_marker(request.note, replacement.id, reason)
    request.replacement_teacher_id = None
    request.decided_by_id = None
    transition(request, RequestStatus.PENDING)
    logger.info("Swap %s declined by teacher %s", request.id, replacement.id)
    return request


def suggest_swap_candidates(
    db: Session, *, session_id: str, requester_id: str | None = None
) -> list[SwapCandidate]:
    """Rank teachers who could take over the session.

    Teachers already on the session and anyone who declined a swap for it
    are left out.
    """
    session = get_session(db, session_id)
    class_entity = get_class(db, session.class_id)
    course = db.get(Course, class_entity.course_id)
    course_code = course.code.upper() if course else None
    slot = db.get(TimeSlot, session.time_slot_id)

    notes = list(
        db.execute(
            select(TeacherRequest.note).where(
                TeacherRequest.session_id == session_id,
                TeacherRequest.request_type == TeacherRequestType.SWAP,
            )
        ).scalars()
    )
    excluded = declined_teacher_ids(notes) | set(active_teacher_ids(db, session_id))
    if requester_id:
        excluded.add(requester_id)

    candidates: list[SwapCandidate] = []
    for teacher in db.execute(select(Teacher)).scalars():
        if teacher.id in excluded:
            continue
        skills = {item.upper() for item in (teacher.skills or [])}
        has_conflict = not teacher_is_free(
            db,
            teacher_id=teacher.id,
            on_date=session.date,
            slot=slot,
            exclude_session_id=session.id,
        )
        candidates.append(
            SwapCandidate(
                teacher_id=teacher.id,
                name=teacher.name,
                email=teacher.email,
                skill_priority=1 if course_code and course_code in skills else 0,
                availability_priority=0 if has_conflict else 1,
                has_conflict=has_conflict,
            )
        )
    candidates.sort(key=lambda item: (-item.skill_priority, -item.availability_priority, item.name.lower()))
    return candidates
