import pytest

from app.core.exceptions import BusinessRuleError
from app.models.class_entity import ClassEntity, ClassModality
from app.models.request_status import RequestStatus
from app.models.student_request import StudentRequest, StudentRequestType
from app.models.teacher_request import TeacherRequest, TeacherRequestType
from app.services import capacity
from app.services.request_states import ensure_status, transition


def test_seat_available_below_capacity():
    assert capacity.ensure_seat_available(enrolled=29, max_capacity=30) is False


def test_full_class_needs_override_reason():
    with pytest.raises(BusinessRuleError) as exc_info:
        capacity.ensure_seat_available(enrolled=30, max_capacity=30)
    assert exc_info.value.code == "CAPACITY_EXCEEDED"

    with pytest.raises(BusinessRuleError) as exc_info:
        capacity.ensure_seat_available(enrolled=30, max_capacity=30, override_reason="too short")
    assert exc_info.value.code == "INVALID_OVERRIDE_REASON"

    assert capacity.ensure_seat_available(
        enrolled=30,
        max_capacity=30,
        override_reason="Director approved extra seat for VIP",
    )


def test_transfer_quota_allows_one_transfer_per_course():
    capacity.ensure_transfer_quota(0)
    with pytest.raises(BusinessRuleError) as exc_info:
        capacity.ensure_transfer_quota(1)
    assert exc_info.value.code == "TRANSFER_LIMIT_EXCEEDED"


@pytest.mark.parametrize(
    ("current", "target", "expected"),
    [
        (("HN", ClassModality.OFFLINE), ("HN", ClassModality.OFFLINE), False),
        (("HN", ClassModality.OFFLINE), ("HN", ClassModality.HYBRID), False),
        (("HN", ClassModality.OFFLINE), ("HN", ClassModality.ONLINE), True),
        (("HN", ClassModality.OFFLINE), ("HCM", ClassModality.OFFLINE), True),
    ],
)
def test_transfer_tier(current, target, expected):
    def build(branch, modality):
        return ClassEntity(code="X", name="X", course_id="c", branch_id=branch, modality=modality, max_capacity=10)

    assert capacity.requires_staff_approval(build(*current), build(*target)) is expected


def test_student_request_cannot_leave_terminal_status():
    request = StudentRequest(request_type=StudentRequestType.ABSENCE, status=RequestStatus.PENDING)
    transition(request, RequestStatus.REJECTED)
    assert request.status == RequestStatus.REJECTED

    with pytest.raises(BusinessRuleError) as exc_info:
        transition(request, RequestStatus.APPROVED)
    assert exc_info.value.code == "INVALID_STATUS"


def test_student_requests_never_wait_for_confirmation():
    request = StudentRequest(request_type=StudentRequestType.MAKEUP, status=RequestStatus.PENDING)
    with pytest.raises(BusinessRuleError):
        transition(request, RequestStatus.WAITING_CONFIRM)


def test_swap_can_return_to_pending_from_waiting_confirm():
    request = TeacherRequest(request_type=TeacherRequestType.SWAP, status=RequestStatus.PENDING)
    transition(request, RequestStatus.WAITING_CONFIRM)
    transition(request, RequestStatus.PENDING)
    assert request.status == RequestStatus.PENDING

    with pytest.raises(BusinessRuleError):
        ensure_status(request, RequestStatus.WAITING_CONFIRM)
