import pytest

from app.models.class_entity import ClassModality
from app.models.class_session import SessionStatus
from app.models.course import CourseSession
from app.models.request_status import RequestStatus
from app.models.student_request import StudentRequest, StudentRequestType
from app.services.transfer_gap import (
    analyze_content_gap,
    gap_level,
    get_transfer_eligibility,
    get_transfer_options,
)


def _units(*numbers: int) -> list[CourseSession]:
    return [CourseSession(id=f"cs-{n}", course_id="c", sequence_no=n, topic=f"Unit {n}") for n in numbers]


@pytest.mark.parametrize(("missed", "level"), [(0, "NONE"), (1, "MINOR"), (2, "MINOR"), (3, "MAJOR"), (7, "MAJOR")])
def test_gap_level_thresholds(missed, level):
    assert gap_level(missed) == level


def test_target_two_units_ahead_is_a_minor_gap():
    gap = analyze_content_gap(_units(*range(1, 11)), _units(*range(1, 13)))
    assert gap["missed_sessions"] == 2
    assert gap["gap_level"] == "MINOR"
    assert [item["sequence_no"] for item in gap["gap_sessions"]] == [11, 12]
    assert "Unit 11" in gap["impact_description"]


def test_target_behind_has_no_gap():
    gap = analyze_content_gap(_units(*range(1, 9)), _units(*range(1, 6)))
    assert gap["gap_level"] == "NONE"
    assert gap["gap_sessions"] == []


def test_target_far_ahead_is_a_major_gap():
    gap = analyze_content_gap(_units(1, 2), _units(1, 2, 3, 4, 5))
    assert gap["missed_sessions"] == 3
    assert gap["gap_level"] == "MAJOR"
    assert "counseling" in gap["recommendation"]


def test_transfer_options_report_gap_and_tier(db_session, seed, days):
    course, units = seed.course()
    slot = seed.slot()
    current = seed.class_(course, code="A1")
    same_tier = seed.class_(course, code="A2")
    online = seed.class_(course, code="A3", modality=ClassModality.ONLINE, max_capacity=1)
    student = seed.student()
    seed.enroll(student, current)

    for index in range(10):
        seed.session(current, units[index], slot, days(-30 + index), status=SessionStatus.DONE)
    for index in range(12):
        seed.session(same_tier, units[index], slot, days(-30 + index), status=SessionStatus.DONE)
    seed.session(same_tier, units[0], slot, days(-40), status=SessionStatus.CANCELLED)
    seed.session(same_tier, None, slot, days(2))
    seed.enroll(seed.student(), online)

    options = {item["class_code"]: item for item in get_transfer_options(
        db_session, student_id=student.id, current_class_id=current.id
    )}
    assert set(options) == {"A2", "A3"}

    assert options["A2"]["content_gap"]["gap_level"] == "MINOR"
    assert options["A2"]["content_gap"]["missed_sessions"] == 2
    assert options["A2"]["requires_staff_approval"] is False
    assert options["A2"]["can_transfer"] is True
    assert [item["date"] for item in options["A2"]["upcoming_sessions"]] == [days(2)]

    assert options["A3"]["requires_staff_approval"] is True
    assert options["A3"]["available_slots"] == 0
    assert options["A3"]["can_transfer"] is False


def test_eligibility_reflects_quota_and_pending_requests(db_session, seed, days):
    course, _ = seed.course()
    other_course, _ = seed.course("TOEIC")
    first = seed.class_(course)
    second = seed.class_(other_course)
    student = seed.student()
    seed.enroll(student, first)
    seed.enroll(student, second)

    result = get_transfer_eligibility(db_session, student_id=student.id)
    assert result["eligible"] is True
    assert all(item["quota"] == {"used": 0, "limit": 1, "remaining": 1} for item in result["enrollments"])

    for class_entity in (first, second):
        db_session.add(
            StudentRequest(
                student_id=student.id,
                request_type=StudentRequestType.TRANSFER,
                status=RequestStatus.PENDING,
                current_class_id=class_entity.id,
                target_class_id=class_entity.id,
                effective_date=days(3),
                request_reason="Moving to another district",
                submitted_by_id=student.user_id,
            )
        )
    db_session.flush()

    result = get_transfer_eligibility(db_session, student_id=student.id)
    assert result["eligible"] is False
    assert all(item["has_pending_transfer"] for item in result["enrollments"])
    assert result["ineligibility_reason"]


def test_student_without_enrollment_is_not_eligible(db_session, seed):
    result = get_transfer_eligibility(db_session, student_id=seed.student().id)
    assert result == {
        "eligible": False,
        "ineligibility_reason": "Student has no active enrollment",
        "enrollments": [],
    }


def test_target_gap_counts_past_sessions_only(db_session, seed, days):
    course, units = seed.course()
    slot = seed.slot()
    current = seed.class_(course, code="B1")
    target = seed.class_(course, code="B2")
    student = seed.student()
    seed.enroll(student, current)

    for index in range(3):
        seed.session(current, units[index], slot, days(-20 + index), status=SessionStatus.DONE)
        seed.session(target, units[index], slot, days(-20 + index), status=SessionStatus.DONE)
    # Unit 4 was moved forward; the cancelled row stays behind in the future.
    seed.session(target, units[3], slot, days(3), status=SessionStatus.CANCELLED)
    # Unit 5 was held yesterday but attendance is not closed yet.
    seed.session(target, units[4], slot, days(-1))

    (option,) = get_transfer_options(db_session, student_id=student.id, current_class_id=current.id)
    gap = option["content_gap"]
    assert gap["missed_sessions"] == 1
    assert [item["sequence_no"] for item in gap["gap_sessions"]] == [5]
