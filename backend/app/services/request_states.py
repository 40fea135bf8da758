from __future__ import annotations

from app.core.exceptions import BusinessRuleError
from app.models.request_status import RequestStatus
from app.models.student_request import StudentRequest
from app.models.teacher_request import TeacherRequest

STUDENT_REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED}),
}

TEACHER_REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset(
        {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.WAITING_CONFIRM}
    ),
    # A swap waits for the replacement: accepting approves it, declining reopens it.
    RequestStatus.WAITING_CONFIRM: frozenset({RequestStatus.APPROVED, RequestStatus.PENDING}),
}


def _transitions_for(request: StudentRequest | TeacherRequest) -> dict[RequestStatus, frozenset[RequestStatus]]:
    if isinstance(request, StudentRequest):
        return STUDENT_REQUEST_TRANSITIONS
    return TEACHER_REQUEST_TRANSITIONS


def ensure_status(request: StudentRequest | TeacherRequest, *expected: RequestStatus, message: str | None = None) -> None:
    if request.status not in expected:
        allowed = ", ".join(item.value for item in expected)
        raise BusinessRuleError(
            "INVALID_STATUS",
            message or f"Request is {request.status.value}; expected {allowed}",
            details={"request_id": request.id, "status": request.status.value},
        )


def transition(request: StudentRequest | TeacherRequest, target: RequestStatus) -> None:
    allowed = _transitions_for(request).get(request.status, frozenset())
    if target not in allowed:
        raise BusinessRuleError(
            "INVALID_STATUS",
            f"Cannot move request from {request.status.value} to {target.value}",
            details={"request_id": request.id, "status": request.status.value},
        )
    request.status = target
