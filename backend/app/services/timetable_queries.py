from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import BusinessRuleError, ResourceNotFoundError
from app.models.class_entity import ClassEntity
from app.models.class_session import ClassSession, SessionResource, TeachingSlot
from app.models.enrollment import Enrollment, EnrollmentStatus, StudentSession
from app.models.resource import Resource
from app.models.student import Student
from app.models.teacher import Teacher
from app.models.time_slot import TimeSlot
from app.services.conflict_service import ACTIVE_TEACHING_STATUSES


def _get_or_404(db: Session, model, entity_id: str, label: str):
    entity = db.get(model, entity_id)
    if entity is None:
        raise ResourceNotFoundError(label, entity_id)
    return entity


def get_session(db: Session, session_id: str) -> ClassSession:
    return _get_or_404(db, ClassSession, session_id, "Session")


def get_class(db: Session, class_id: str) -> ClassEntity:
    return _get_or_404(db, ClassEntity, class_id, "Class")


def get_time_slot(db: Session, time_slot_id: str) -> TimeSlot:
    return _get_or_404(db, TimeSlot, time_slot_id, "Time slot")


def get_resource(db: Session, resource_id: str) -> Resource:
    return _get_or_404(db, Resource, resource_id, "Resource")


def get_teacher(db: Session, teacher_id: str) -> Teacher:
    return _get_or_404(db, Teacher, teacher_id, "Teacher")


def get_student(db: Session, student_id: str) -> Student:
    return _get_or_404(db, Student, student_id, "Student")


def student_for_user(db: Session, user_id: str) -> Student:
    student = db.execute(select(Student).where(Student.user_id == user_id)).scalar_one_or_none()
    if student is None:
        raise ResourceNotFoundError("Student profile for user", user_id)
    return student


def teacher_for_user(db: Session, user_id: str) -> Teacher:
    teacher = db.execute(select(Teacher).where(Teacher.user_id == user_id)).scalar_one_or_none()
    if teacher is None:
        raise ResourceNotFoundError("Teacher profile for user", user_id)
    return teacher


def lock_session(db: Session, session_id: str) -> ClassSession:
    session = db.execute(
        select(ClassSession).where(ClassSession.id == session_id).with_for_update()
    ).scalar_one_or_none()
    if session is None:
        raise ResourceNotFoundError("Session", session_id)
    return session


def lock_class(db: Session, class_id: str) -> ClassEntity:
    class_entity = db.execute(
        select(ClassEntity).where(ClassEntity.id == class_id).with_for_update()
    ).scalar_one_or_none()
    if class_entity is None:
        raise ResourceNotFoundError("Class", class_id)
    return class_entity


def active_enrollment(db: Session, *, student_id: str, class_id: str) -> Enrollment:
    enrollment = db.execute(
        select(Enrollment).where(
            Enrollment.student_id == student_id,
            Enrollment.class_id == class_id,
            Enrollment.status == EnrollmentStatus.ENROLLED,
        )
    ).scalar_one_or_none()
    if enrollment is None:
        raise BusinessRuleError("NOT_ENROLLED", "Student is not enrolled in this class")
    return enrollment


def student_session(db: Session, *, student_id: str, session_id: str) -> StudentSession | None:
    return db.execute(
        select(StudentSession).where(
            StudentSession.student_id == student_id,
            StudentSession.session_id == session_id,
        )
    ).scalar_one_or_none()


def session_student_ids(db: Session, session_id: str) -> list[str]:
    return list(
        db.execute(select(StudentSession.student_id).where(StudentSession.session_id == session_id)).scalars()
    )


def session_resource(db: Session, session_id: str) -> SessionResource | None:
    return db.execute(
        select(SessionResource).where(SessionResource.session_id == session_id)
    ).scalar_one_or_none()


def active_teaching_slot(db: Session, *, session_id: str, teacher_id: str) -> TeachingSlot | None:
    return db.execute(
        select(TeachingSlot).where(
            TeachingSlot.session_id == session_id,
            TeachingSlot.teacher_id == teacher_id,
            TeachingSlot.status.in_(ACTIVE_TEACHING_STATUSES),
        )
    ).scalar_one_or_none()


def active_teacher_ids(db: Session, session_id: str) -> list[str]:
    return list(
        db.execute(
            select(TeachingSlot.teacher_id).where(
                TeachingSlot.session_id == session_id,
                TeachingSlot.status.in_(ACTIVE_TEACHING_STATUSES),
            )
        ).scalars()
    )
