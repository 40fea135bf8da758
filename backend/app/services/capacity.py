from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import BusinessRuleError
from app.models.class_entity import ClassEntity, ClassModality
from app.models.enrollment import Enrollment, EnrollmentStatus, StudentSession
from app.models.request_status import RequestStatus
from app.models.student_request import StudentRequest, StudentRequestType

settings = get_settings()


def seats_left(enrolled: int, max_capacity: int) -> int:
    return max_capacity - enrolled


def validate_override_reason(reason: str | None) -> str:
    normalized = (reason or "").strip()
    if len(normalized) < settings.override_reason_min_length:
        raise BusinessRuleError(
            "INVALID_OVERRIDE_REASON",
            f"Capacity override reason must be at least {settings.override_reason_min_length} characters",
        )
    return normalized


def ensure_seat_available(
    *,
    enrolled: int,
    max_capacity: int,
    override_reason: str | None = None,
    code: str = "CAPACITY_EXCEEDED",
    message: str = "Class is at full capacity",
) -> bool:
    """Check that adding one more student stays within capacity.

    Returns True when the seat is only granted by an override, so callers
    can stamp the override on the rows they write.
    """
    if enrolled + 1 <= max_capacity:
        return False
    if override_reason is None:
        raise BusinessRuleError(code, message, details={"enrolled": enrolled, "max_capacity": max_capacity})
    validate_override_reason(override_reason)
    return True


def ensure_transfer_quota(used: int) -> None:
    if used >= settings.transfer_quota_per_course:
        raise BusinessRuleError(
            "TRANSFER_LIMIT_EXCEEDED",
            f"Transfer limit exceeded. Maximum {settings.transfer_quota_per_course} transfer per course",
        )


def delivery_mode(modality: ClassModality) -> ClassModality:
    # Hybrid classes meet in person, so they share a tier with offline ones.
    if modality == ClassModality.HYBRID:
        return ClassModality.OFFLINE
    return modality


def requires_staff_approval(current: ClassEntity, target: ClassEntity) -> bool:
    if current.branch_id != target.branch_id:
        return True
    return delivery_mode(current.modality) != delivery_mode(target.modality)


def count_enrolled(db: Session, class_id: str) -> int:
    return db.execute(
        select(func.count())
        .select_from(Enrollment)
        .where(Enrollment.class_id == class_id, Enrollment.status == EnrollmentStatus.ENROLLED)
    ).scalar_one()


def count_session_students(db: Session, session_id: str) -> int:
    return db.execute(
        select(func.count()).select_from(StudentSession).where(StudentSession.session_id == session_id)
    ).scalar_one()


def count_approved_transfers(db: Session, *, student_id: str, course_id: str) -> int:
    return db.execute(
        select(func.count())
        .select_from(StudentRequest)
        .join(ClassEntity, ClassEntity.id == StudentRequest.target_class_id)
        .where(
            StudentRequest.student_id == student_id,
            StudentRequest.request_type == StudentRequestType.TRANSFER,
            StudentRequest.status == RequestStatus.APPROVED,
            ClassEntity.course_id == course_id,
        )
    ).scalar_one()
