"""Applies approved decisions to the shared timetable.

Every function here locks its aggregate root (the session or the target
class row) before re-validating, and only flushes. The caller owns the
transaction: one commit on success, rollback on any raised error.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.exceptions import BusinessRuleError, SchedulingConflictError
from app.models.class_entity import ClassStatus
from app.models.class_session import (
    ClassSession,
    SessionResource,
    SessionStatus,
    TeachingSlot,
    TeachingSlotStatus,
)
from app.models.enrollment import AttendanceStatus, Enrollment, EnrollmentStatus, StudentSession
from app.models.resource import Resource
from app.models.time_slot import TimeSlot
from app.services import capacity
from app.services.conflict_service import (
    ensure_resource_available,
    ensure_teacher_available,
    students_are_free,
)
from app.services.resource_rules import ensure_resource_fits
from app.services.timetable_queries import (
    active_enrollment,
    active_teacher_ids,
    active_teaching_slot,
    get_class,
    lock_class,
    lock_session,
    session_resource,
    student_session,
)

logger = logging.getLogger(__name__)

TRANSFERABLE_CLASS_STATUSES = (ClassStatus.SCHEDULED, ClassStatus.ONGOING)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_session_planned(session: ClassSession, message: str) -> None:
    if session.status != SessionStatus.PLANNED:
        raise BusinessRuleError("INVALID_SESSION_STATUS", message)


def mark_absent(db: Session, *, student_id: str, session_id: str, note: str) -> StudentSession:
    lock_session(db, session_id)
    row = student_session(db, student_id=student_id, session_id=session_id)
    if row is None:
        row = StudentSession(student_id=student_id, session_id=session_id)
        db.add(row)
    row.attendance_status = AttendanceStatus.ABSENT
    row.note = note
    db.flush()
    return row


def assign_makeup(
    db: Session,
    *,
    student_id: str,
    target_session_id: str,
    makeup_session_id: str,
    override_reason: str | None = None,
) -> StudentSession:
    makeup_session = lock_session(db, makeup_session_id)
    if makeup_session.status != SessionStatus.PLANNED:
        raise BusinessRuleError("INVALID_MAKEUP_STATUS", "Makeup session is no longer planned")

    makeup_class = get_class(db, makeup_session.class_id)
    capacity.ensure_seat_available(
        enrolled=capacity.count_session_students(db, makeup_session.id),
        max_capacity=makeup_class.max_capacity,
        override_reason=override_reason,
        code="SESSION_FULL",
        message="Makeup session became full",
    )

    slot = db.get(TimeSlot, makeup_session.time_slot_id)
    if not students_are_free(db, student_ids=[student_id], on_date=makeup_session.date, slot=slot):
        raise SchedulingConflictError("Student already has a session overlapping the makeup session")

    original = student_session(db, student_id=student_id, session_id=target_session_id)
    if original is None or original.attendance_status != AttendanceStatus.ABSENT:
        raise BusinessRuleError("NOT_ABSENT", "Can only makeup absent sessions")
    original.makeup_session_id = makeup_session.id
    original.note = f"Makeup scheduled in session {makeup_session.id}"

    makeup_row = StudentSession(
        student_id=student_id,
        session_id=makeup_session.id,
        attendance_status=AttendanceStatus.PLANNED,
        is_makeup=True,
        original_session_id=target_session_id,
        note="Makeup attendance",
    )
    db.add(makeup_row)
    db.flush()
    logger.info("Student %s booked into makeup session %s", student_id, makeup_session.id)
    return makeup_row


def execute_transfer(
    db: Session,
    *,
    student_id: str,
    current_class_id: str,
    target_class_id: str,
    effective_date: date,
    actor_id: str,
    override_reason: str | None = None,
) -> Enrollment:
    target_class = lock_class(db, target_class_id)
    current_class = get_class(db, current_class_id)
    if target_class.course_id != current_class.course_id or target_class.status not in TRANSFERABLE_CLASS_STATUSES:
        raise BusinessRuleError("TRANSFER_NO_LONGER_VALID", "Target class no longer accepts this transfer")

    capacity.ensure_transfer_quota(
        capacity.count_approved_transfers(db, student_id=student_id, course_id=target_class.course_id)
    )
    overridden = capacity.ensure_seat_available(
        enrolled=capacity.count_enrolled(db, target_class.id),
        max_capacity=target_class.max_capacity,
        override_reason=override_reason,
    )

    try:
        old_enrollment = active_enrollment(db, student_id=student_id, class_id=current_class.id)
    except BusinessRuleError as exc:
        raise BusinessRuleError("TRANSFER_NO_LONGER_VALID", "Student is no longer enrolled in the current class") from exc

    target_sessions = list(
        db.execute(
            select(ClassSession)
            .where(
                ClassSession.class_id == target_class.id,
                ClassSession.date >= effective_date,
                ClassSession.status == SessionStatus.PLANNED,
            )
            .order_by(ClassSession.date)
        ).scalars()
    )
    if not target_sessions or target_sessions[0].date != effective_date:
        raise BusinessRuleError("NO_SESSION_ON_DATE", "Target class has no session on the effective date")
    join_session = target_sessions[0]

    left_sessions = list(
        db.execute(
            select(ClassSession)
            .where(
                ClassSession.class_id == current_class.id,
                ClassSession.date >= effective_date,
                ClassSession.status == SessionStatus.PLANNED,
            )
            .order_by(ClassSession.date)
        ).scalars()
    )

    now = _utc_now()
    old_enrollment.status = EnrollmentStatus.TRANSFERRED
    old_enrollment.left_at = now
    old_enrollment.left_session_id = left_sessions[0].id if left_sessions else None
    old_enrollment.note = f"Transferred to class {target_class.code}"

    new_enrollment = Enrollment(
        student_id=student_id,
        class_id=target_class.id,
        status=EnrollmentStatus.ENROLLED,
        join_session_id=join_session.id,
        enrolled_by_id=actor_id,
        enrolled_at=now,
        capacity_override=overridden,
        override_reason=override_reason if overridden else None,
        note=f"Transferred from class {current_class.code}",
    )
    db.add(new_enrollment)

    left_ids = [item.id for item in left_sessions]
    if left_ids:
        db.execute(
            update(StudentSession)
            .where(
                StudentSession.student_id == student_id,
                StudentSession.session_id.in_(left_ids),
                StudentSession.attendance_status == AttendanceStatus.PLANNED,
            )
            .values(attendance_status=AttendanceStatus.ABSENT, note=f"Transferred out to {target_class.code}")
        )

    existing = set(
        db.execute(
            select(StudentSession.session_id).where(
                StudentSession.student_id == student_id,
                StudentSession.session_id.in_([item.id for item in target_sessions]),
            )
        ).scalars()
    )
    for session in target_sessions:
        if session.id in existing:
            continue
        db.add(
            StudentSession(
                student_id=student_id,
                session_id=session.id,
                attendance_status=AttendanceStatus.PLANNED,
                note=f"Joined by transfer from {current_class.code}",
            )
        )
    db.flush()
    logger.info(
        "Transferred student %s from %s to %s effective %s",
        student_id,
        current_class.code,
        target_class.code,
        effective_date.isoformat(),
    )
    return new_enrollment


def change_session_resource(db: Session, *, session_id: str, resource: Resource) -> None:
    session = lock_session(db, session_id)
    ensure_session_planned(session, "Only planned sessions can change resource")
    class_entity = get_class(db, session.class_id)
    slot = db.get(TimeSlot, session.time_slot_id)
    ensure_resource_fits(
        resource,
        class_entity,
        headcount=capacity.count_session_students(db, session.id),
        switching_modality=True,
    )
    ensure_resource_available(
        db,
        resource_id=resource.id,
        on_date=session.date,
        slot=slot,
        exclude_session_id=session.id,
    )

    binding = session_resource(db, session.id)
    if binding is None:
        db.add(SessionResource(session_id=session.id, resource_id=resource.id))
    else:
        binding.resource_id = resource.id
    db.flush()


def reschedule_session(
    db: Session,
    *,
    session_id: str,
    new_date: date,
    slot: TimeSlot,
    resource: Resource | None,
) -> ClassSession:
    old_session = lock_session(db, session_id)
    ensure_session_planned(old_session, "Only planned sessions can be rescheduled")
    if new_date < date.today():
        raise BusinessRuleError("PAST_DATE", "Cannot reschedule a session into the past")

    for teacher_id in active_teacher_ids(db, old_session.id):
        ensure_teacher_available(
            db,
            teacher_id=teacher_id,
            on_date=new_date,
            slot=slot,
            exclude_session_id=old_session.id,
        )

    binding = session_resource(db, old_session.id)
    resource_id = resource.id if resource is not None else (binding.resource_id if binding else None)
    if resource is not None:
        ensure_resource_fits(
            resource,
            get_class(db, old_session.class_id),
            headcount=capacity.count_session_students(db, old_session.id),
            switching_modality=False,
        )
    if resource_id is not None:
        ensure_resource_available(
            db,
            resource_id=resource_id,
            on_date=new_date,
            slot=slot,
            exclude_session_id=old_session.id,
        )

    new_session = ClassSession(
        class_id=old_session.class_id,
        course_session_id=old_session.course_session_id,
        time_slot_id=slot.id,
        date=new_date,
        status=SessionStatus.PLANNED,
    )
    db.add(new_session)
    db.flush()

    db.execute(
        update(TeachingSlot).where(TeachingSlot.session_id == old_session.id).values(session_id=new_session.id)
    )
    db.execute(
        update(StudentSession).where(StudentSession.session_id == old_session.id).values(session_id=new_session.id)
    )
    db.execute(
        update(StudentSession)
        .where(StudentSession.makeup_session_id == old_session.id)
        .values(makeup_session_id=new_session.id)
    )
    if binding is not None:
        binding.session_id = new_session.id
        binding.resource_id = resource_id
    elif resource_id is not None:
        db.add(SessionResource(session_id=new_session.id, resource_id=resource_id))

    old_session.status = SessionStatus.CANCELLED
    db.flush()
    logger.info("Rescheduled session %s to %s (%s)", old_session.id, new_session.id, new_date.isoformat())
    return new_session


def substitute_teacher(
    db: Session,
    *,
    session_id: str,
    original_teacher_id: str,
    replacement_teacher_id: str,
) -> TeachingSlot:
    session = lock_session(db, session_id)
    ensure_session_planned(session, "Only planned sessions can change teacher")
    slot = db.get(TimeSlot, session.time_slot_id)
    ensure_teacher_available(
        db,
        teacher_id=replacement_teacher_id,
        on_date=session.date,
        slot=slot,
        exclude_session_id=session.id,
    )

    original = active_teaching_slot(db, session_id=session.id, teacher_id=original_teacher_id)
    if original is None:
        raise BusinessRuleError("TEACHER_SCHEDULE_NOT_FOUND", "Original teacher is no longer assigned to this session")
    original.status = TeachingSlotStatus.ON_LEAVE

    replacement = db.execute(
        select(TeachingSlot).where(
            TeachingSlot.session_id == session.id,
            TeachingSlot.teacher_id == replacement_teacher_id,
        )
    ).scalar_one_or_none()
    if replacement is None:
        replacement = TeachingSlot(session_id=session.id, teacher_id=replacement_teacher_id)
        db.add(replacement)
    replacement.status = TeachingSlotStatus.SUBSTITUTED
    db.flush()
    return replacement
