from datetime import time

from app.models.class_entity import ClassModality
from app.models.class_session import SessionStatus
from app.models.enrollment import AttendanceStatus
from app.models.request_status import RequestStatus
from app.models.student_request import StudentRequest, StudentRequestType
from app.services.makeup_planner import get_makeup_options, get_missed_sessions


def test_makeup_options_are_ranked_by_score(db_session, seed, days):
    course, units = seed.course()
    morning = seed.slot(time(8, 0), time(10, 0))
    evening = seed.slot(time(18, 0), time(20, 0))
    home = seed.class_(course, code="HOME")
    student = seed.student()
    seed.enroll(student, home)
    missed = seed.session(home, units[2], morning, days(-1), status=SessionStatus.DONE)
    seed.attend(student, missed, AttendanceStatus.ABSENT)

    near = seed.class_(course, code="NEAR")
    near_session = seed.session(near, units[2], evening, days(3))
    remote = seed.class_(course, code="REMOTE", branch_id="HCM", modality=ClassModality.ONLINE)
    remote_session = seed.session(remote, units[2], evening, days(4))
    later = seed.class_(course, code="LATER")
    later_session = seed.session(later, units[2], evening, days(12))

    full = seed.class_(course, code="FULL", max_capacity=2)
    full_session = seed.session(full, units[2], evening, days(5))
    seed.fill(full_session, full, 2)

    # The student is already busy when this one runs.
    busy = seed.class_(course, code="BUSY")
    busy_session = seed.session(busy, units[2], morning, days(6))
    own_upcoming = seed.session(home, units[3], morning, days(6))
    seed.attend(student, own_upcoming)

    options = get_makeup_options(db_session, student_id=student.id, target_session_id=missed.id)
    assert [item["session_id"] for item in options] == [near_session.id, later_session.id, remote_session.id]

    by_class = {item["class_code"]: item for item in options}
    assert by_class["NEAR"]["score"] == 10 + 5 + 3 + 1
    assert by_class["NEAR"]["priority"] == "HIGH"
    assert by_class["LATER"]["score"] == 10 + 5 + 2 + 1
    assert by_class["REMOTE"]["score"] == 3 + 1
    assert by_class["REMOTE"]["priority"] == "LOW"
    assert busy_session.id not in {item["session_id"] for item in options}


def test_missed_sessions_skip_requested_and_old_absences(db_session, seed, days):
    course, units = seed.course()
    slot = seed.slot()
    home = seed.class_(course)
    student = seed.student()
    seed.enroll(student, home)

    recent = seed.session(home, units[0], slot, days(-3), status=SessionStatus.DONE)
    requested = seed.session(home, units[1], slot, days(-2), status=SessionStatus.DONE)
    ancient = seed.session(home, units[2], slot, days(-60), status=SessionStatus.DONE)
    attended = seed.session(home, units[3], slot, days(-1), status=SessionStatus.DONE)
    for session in (recent, requested, ancient):
        seed.attend(student, session, AttendanceStatus.ABSENT)
    seed.attend(student, attended, AttendanceStatus.PRESENT)

    db_session.add(
        StudentRequest(
            student_id=student.id,
            request_type=StudentRequestType.MAKEUP,
            status=RequestStatus.PENDING,
            target_session_id=requested.id,
            request_reason="Was travelling for work",
            submitted_by_id=student.user_id,
        )
    )
    db_session.flush()

    missed = get_missed_sessions(db_session, student_id=student.id)
    assert [item["session_id"] for item in missed] == [recent.id]
    assert missed[0]["sequence_no"] == 1

    wider = get_missed_sessions(db_session, student_id=student.id, weeks_back=10)
    assert [item["session_id"] for item in wider] == [recent.id, ancient.id]
