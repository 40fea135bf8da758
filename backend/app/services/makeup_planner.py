from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.class_entity import ClassEntity
from app.models.class_session import ClassSession, SessionStatus
from app.models.course import CourseSession
from app.models.enrollment import AttendanceStatus, StudentSession
from app.models.request_status import OPEN_REQUEST_STATUSES
from app.models.student_request import StudentRequest, StudentRequestType
from app.models.time_slot import TimeSlot
from app.services import capacity
from app.services.conflict_service import students_are_free
from app.services.timetable_queries import active_enrollment, get_class, get_session

settings = get_settings()

BRANCH_MATCH_SCORE = 10
MODALITY_MATCH_SCORE = 5
ROOMY_SESSION_SEATS = 5


def _proximity_score(days_ahead: int) -> int:
    if days_ahead <= 7:
        return 3
    if days_ahead <= 14:
        return 2
    if days_ahead <= 21:
        return 1
    return 0


def _priority(score: int) -> str:
    if score >= 15:
        return "HIGH"
    if score >= 8:
        return "MEDIUM"
    return "LOW"


def get_missed_sessions(db: Session, *, student_id: str, weeks_back: int | None = None) -> list[dict]:
    """Absences still eligible for a makeup: inside the window, none booked, none requested."""
    weeks = weeks_back if weeks_back is not None else settings.makeup_window_weeks
    today = date.today()
    since = today - timedelta(weeks=weeks)

    requested = set(
        db.execute(
            select(StudentRequest.target_session_id).where(
                StudentRequest.student_id == student_id,
                StudentRequest.request_type == StudentRequestType.MAKEUP,
                StudentRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
        ).scalars()
    )

    rows = db.execute(
        select(ClassSession, ClassEntity, CourseSession)
        .join(StudentSession, StudentSession.session_id == ClassSession.id)
        .join(ClassEntity, ClassEntity.id == ClassSession.class_id)
        .outerjoin(CourseSession, CourseSession.id == ClassSession.course_session_id)
        .where(
            StudentSession.student_id == student_id,
            StudentSession.attendance_status == AttendanceStatus.ABSENT,
            StudentSession.makeup_session_id.is_(None),
            ClassSession.date >= since,
            ClassSession.date <= today,
        )
        .order_by(ClassSession.date.desc())
    ).all()

    missed: list[dict] = []
    for session, class_entity, course_session in rows:
        if session.id in requested:
            continue
        missed.append(
            {
                "session_id": session.id,
                "class_id": class_entity.id,
                "class_code": class_entity.code,
                "date": session.date,
                "course_session_id": session.course_session_id,
                "sequence_no": course_session.sequence_no if course_session else None,
                "topic": course_session.topic if course_session else None,
            }
        )
    return missed


def get_makeup_options(db: Session, *, student_id: str, target_session_id: str) -> list[dict]:
    target = get_session(db, target_session_id)
    home_class = get_class(db, target.class_id)
    active_enrollment(db, student_id=student_id, class_id=home_class.id)
    if target.course_session_id is None:
        return []

    today = date.today()
    rows = db.execute(
        select(ClassSession, ClassEntity, TimeSlot)
        .join(ClassEntity, ClassEntity.id == ClassSession.class_id)
        .join(TimeSlot, TimeSlot.id == ClassSession.time_slot_id)
        .where(
            ClassSession.course_session_id == target.course_session_id,
            ClassSession.class_id != home_class.id,
            ClassSession.status == SessionStatus.PLANNED,
            ClassSession.date >= today,
        )
    ).all()

    options: list[dict] = []
    for session, class_entity, slot in rows:
        available = capacity.seats_left(capacity.count_session_students(db, session.id), class_entity.max_capacity)
        if available <= 0:
            continue
        if not students_are_free(db, student_ids=[student_id], on_date=session.date, slot=slot):
            continue

        branch_match = class_entity.branch_id == home_class.branch_id
        modality_match = class_entity.modality == home_class.modality
        score = _proximity_score((session.date - today).days)
        if branch_match:
            score += BRANCH_MATCH_SCORE
        if modality_match:
            score += MODALITY_MATCH_SCORE
        if available >= ROOMY_SESSION_SEATS:
            score += 1

        options.append(
            {
                "session_id": session.id,
                "class_id": class_entity.id,
                "class_code": class_entity.code,
                "branch_id": class_entity.branch_id,
                "modality": class_entity.modality,
                "date": session.date,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "available_slots": available,
                "branch_match": branch_match,
                "modality_match": modality_match,
                "score": score,
                "priority": _priority(score),
            }
        )
    options.sort(key=lambda item: (-item["score"], item["date"], item["start_time"]))
    return options
