from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.student_request import StudentRequest
from app.models.teacher_request import TeacherRequest
from app.models.user import User

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
    logger.info("%s %s=%s by %s", action, entity_type, entity_id, user.id if user is not None else "system")
    return record


def log_request_transition(
    db: Session,
    *,
    user: User | None,
    request: StudentRequest | TeacherRequest,
    action: str,
    details: dict | None = None,
) -> ActivityLog:
    entity_type = "student_request" if isinstance(request, StudentRequest) else "teacher_request"
    payload = {
        "request_type": request.request_type.value,
        "status": request.status.value,
        **(details or {}),
    }
    return log_activity(
        db,
        user=user,
        action=f"{entity_type}.{action}",
        entity_type=entity_type,
        entity_id=request.id,
        details=payload,
    )
