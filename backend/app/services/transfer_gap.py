"""Advisory reads for class transfers: eligibility, options and content gap.

Nothing here locks or writes. Submission re-checks tier, quota and
capacity on its own.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.class_entity import ClassEntity
from app.models.class_session import ClassSession, SessionStatus
from app.models.course import CourseSession
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.request_status import OPEN_REQUEST_STATUSES
from app.models.student_request import StudentRequest, StudentRequestType
from app.services import capacity
from app.services.timetable_mutations import TRANSFERABLE_CLASS_STATUSES
from app.services.timetable_queries import active_enrollment, get_class

settings = get_settings()

# Cancelled sessions count as covered, the same as held ones.
COMPLETED_SESSION_STATUSES = (SessionStatus.DONE, SessionStatus.CANCELLED)
MAJOR_GAP_THRESHOLD = 3
UPCOMING_SESSION_LIMIT = 5


def gap_level(missed: int) -> str:
    if missed <= 0:
        return "NONE"
    if missed < MAJOR_GAP_THRESHOLD:
        return "MINOR"
    return "MAJOR"


def analyze_content_gap(
    current_completed: Iterable[CourseSession],
    target_completed: Iterable[CourseSession],
) -> dict:
    covered = {item.sequence_no for item in current_completed}
    gap_by_sequence = {
        item.sequence_no: item for item in target_completed if item.sequence_no not in covered
    }
    gap_sessions = [gap_by_sequence[key] for key in sorted(gap_by_sequence)]
    level = gap_level(len(gap_sessions))

    if level == "NONE":
        recommendation = "No content gap. The student can join the target class directly."
        impact = "The target class has not covered any topic the student has not completed."
    elif level == "MINOR":
        recommendation = "Review the materials of the missed topics before the effective date."
        impact = f"The student will miss {len(gap_sessions)} session(s): " + ", ".join(
            item.topic for item in gap_sessions
        )
    else:
        recommendation = "Arrange a counseling session with Academic Affairs before transferring."
        impact = (
            f"The target class is {len(gap_sessions)} sessions ahead; "
            "the student needs a catch-up plan to follow the class."
        )

    return {
        "missed_sessions": len(gap_sessions),
        "gap_level": level,
        "gap_sessions": [
            {"course_session_id": item.id, "sequence_no": item.sequence_no, "topic": item.topic}
            for item in gap_sessions
        ],
        "recommendation": recommendation,
        "impact_description": impact,
    }


def completed_course_sessions(db: Session, class_id: str) -> list[CourseSession]:
    return list(
        db.execute(
            select(CourseSession)
            .join(ClassSession, ClassSession.course_session_id == CourseSession.id)
            .where(
                ClassSession.class_id == class_id,
                ClassSession.status.in_(COMPLETED_SESSION_STATUSES),
            )
            .distinct()
        ).scalars()
    )


def held_course_sessions(db: Session, class_id: str) -> list[CourseSession]:
    """Units a class has already reached, whatever happened to the session."""
    return list(
        db.execute(
            select(CourseSession)
            .join(ClassSession, ClassSession.course_session_id == CourseSession.id)
            .where(
                ClassSession.class_id == class_id,
                ClassSession.date < date.today(),
            )
            .distinct()
        ).scalars()
    )


def _has_open_transfer(db: Session, *, student_id: str, class_id: str) -> bool:
    return (
        db.execute(
            select(StudentRequest.id)
            .where(
                StudentRequest.student_id == student_id,
                StudentRequest.request_type == StudentRequestType.TRANSFER,
                StudentRequest.current_class_id == class_id,
                StudentRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
            .limit(1)
        ).first()
        is not None
    )


def get_transfer_eligibility(db: Session, *, student_id: str) -> dict:
    rows = db.execute(
        select(Enrollment, ClassEntity)
        .join(ClassEntity, ClassEntity.id == Enrollment.class_id)
        .where(Enrollment.student_id == student_id, Enrollment.status == EnrollmentStatus.ENROLLED)
        .order_by(ClassEntity.code)
    ).all()

    limit = settings.transfer_quota_per_course
    enrollments = []
    for enrollment, class_entity in rows:
        used = capacity.count_approved_transfers(db, student_id=student_id, course_id=class_entity.course_id)
        pending = _has_open_transfer(db, student_id=student_id, class_id=class_entity.id)
        enrollments.append(
            {
                "enrollment_id": enrollment.id,
                "class_id": class_entity.id,
                "class_code": class_entity.code,
                "course_id": class_entity.course_id,
                "branch_id": class_entity.branch_id,
                "modality": class_entity.modality,
                "quota": {"used": used, "limit": limit, "remaining": max(limit - used, 0)},
                "has_pending_transfer": pending,
                "can_transfer": used < limit and not pending,
            }
        )

    reason = None
    if not enrollments:
        reason = "Student has no active enrollment"
    elif not any(item["can_transfer"] for item in enrollments):
        reason = "Transfer quota is used up or a transfer is already pending for every enrolled class"
    return {"eligible": reason is None, "ineligibility_reason": reason, "enrollments": enrollments}


def _upcoming_sessions(db: Session, class_id: str) -> list[dict]:
    rows = db.execute(
        select(ClassSession, CourseSession)
        .outerjoin(CourseSession, CourseSession.id == ClassSession.course_session_id)
        .where(
            ClassSession.class_id == class_id,
            ClassSession.status == SessionStatus.PLANNED,
            ClassSession.date >= date.today(),
        )
        .order_by(ClassSession.date)
        .limit(UPCOMING_SESSION_LIMIT)
    ).all()
    return [
        {
            "session_id": session.id,
            "date": session.date,
            "time_slot_id": session.time_slot_id,
            "sequence_no": course_session.sequence_no if course_session else None,
            "topic": course_session.topic if course_session else None,
        }
        for session, course_session in rows
    ]


def get_transfer_options(db: Session, *, student_id: str, current_class_id: str) -> list[dict]:
    current_class = get_class(db, current_class_id)
    active_enrollment(db, student_id=student_id, class_id=current_class.id)
    current_completed = completed_course_sessions(db, current_class.id)

    candidates = db.execute(
        select(ClassEntity)
        .where(
            ClassEntity.course_id == current_class.course_id,
            ClassEntity.id != current_class.id,
            ClassEntity.status.in_(TRANSFERABLE_CLASS_STATUSES),
        )
        .order_by(ClassEntity.code)
    ).scalars()

    options = []
    for target in candidates:
        enrolled = capacity.count_enrolled(db, target.id)
        available = capacity.seats_left(enrolled, target.max_capacity)
        options.append(
            {
                "class_id": target.id,
                "class_code": target.code,
                "class_name": target.name,
                "branch_id": target.branch_id,
                "modality": target.modality,
                "max_capacity": target.max_capacity,
                "enrolled_count": enrolled,
                "available_slots": available,
                "can_transfer": available > 0,
                "requires_staff_approval": capacity.requires_staff_approval(current_class, target),
                "content_gap": analyze_content_gap(current_completed, held_course_sessions(db, target.id)),
                "upcoming_sessions": _upcoming_sessions(db, target.id),
            }
        )
    return options
