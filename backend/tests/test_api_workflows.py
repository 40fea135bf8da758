from datetime import time

import pytest

from app.models.class_session import SessionStatus
from app.models.enrollment import AttendanceStatus


@pytest.fixture()
def campus(db_session, seed, days):
    course, units = seed.course()
    home = seed.class_(course, code="HOME")
    other = seed.class_(course, code="OTHER")
    morning = seed.slot(time(8, 0), time(10, 0))
    evening = seed.slot(time(18, 0), time(20, 0))

    student = seed.student()
    seed.enroll(student, home)
    missed = seed.session(home, units[0], morning, days(-2), status=SessionStatus.DONE)
    seed.attend(student, missed, AttendanceStatus.ABSENT)
    upcoming = seed.session(home, units[1], morning, days(2))
    seed.attend(student, upcoming)
    makeup = seed.session(other, units[0], evening, days(3))

    teacher = seed.teacher("Anh")
    seed.teach(upcoming, teacher)
    replacement = seed.teacher("Binh", skills=["IELTS"])

    facts = {
        "student": student,
        "missed": missed,
        "upcoming": upcoming,
        "makeup": makeup,
        "teacher": teacher,
        "replacement": replacement,
        "staff": seed.staff(),
    }
    db_session.commit()
    return facts


def test_makeup_flow_over_http(client, campus, headers_for):
    student_headers = headers_for(campus["student"])

    options = client.get(
        "/api/student-requests/makeup-options",
        params={"target_session_id": campus["missed"].id},
        headers=student_headers,
    )
    assert options.status_code == 200
    assert [item["session_id"] for item in options.json()] == [campus["makeup"].id]

    created = client.post(
        "/api/student-requests",
        json={
            "request_type": "MAKEUP",
            "target_session_id": campus["missed"].id,
            "makeup_session_id": campus["makeup"].id,
            "request_reason": "I was sick with a fever",
        },
        headers=student_headers,
    )
    assert created.status_code == 201
    request_id = created.json()["id"]
    assert created.json()["status"] == "PENDING"

    forbidden = client.put(f"/api/student-requests/{request_id}/approve", json={}, headers=student_headers)
    assert forbidden.status_code == 403

    approved = client.put(
        f"/api/student-requests/{request_id}/approve",
        json={"note": "Enjoy the class"},
        headers=headers_for(campus["staff"]),
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["note"] == "Enjoy the class"

    inbox = client.get("/api/notifications", headers=student_headers)
    assert inbox.status_code == 200
    entries = [item for item in inbox.json() if item["entity_id"] == request_id]
    assert entries

    read = client.post(f"/api/notifications/{entries[0]['id']}/read", headers=student_headers)
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert client.post("/api/notifications/read-all", headers=student_headers).json()["updated"] >= 0


def test_domain_errors_use_error_body(client, campus, headers_for):
    response = client.post(
        "/api/student-requests",
        json={
            "request_type": "ABSENCE",
            "target_session_id": campus["missed"].id,
            "request_reason": "Doctor appointment again",
        },
        headers=headers_for(campus["student"]),
    )
    assert response.status_code == 422
    body = response.json()
    assert set(body) == {"message", "code", "details"}
    assert body["code"] == "INVALID_SESSION_STATUS"

    missing = client.get("/api/student-requests/does-not-exist", headers=headers_for(campus["staff"]))
    assert missing.status_code == 404
    assert missing.json()["code"] == "RESOURCE_NOT_FOUND"


def test_staff_must_name_the_student(client, campus, headers_for):
    response = client.get("/api/student-requests/missed-sessions", headers=headers_for(campus["staff"]))
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"

    response = client.get(
        "/api/student-requests/missed-sessions",
        params={"student_id": campus["student"].id},
        headers=headers_for(campus["staff"]),
    )
    assert response.status_code == 200
    assert [item["session_id"] for item in response.json()] == [campus["missed"].id]


def test_on_behalf_absence_is_recorded_as_approved(client, campus, headers_for):
    response = client.post(
        "/api/student-requests/on-behalf",
        json={
            "student_id": campus["student"].id,
            "request": {
                "request_type": "ABSENCE",
                "target_session_id": campus["upcoming"].id,
                "request_reason": "Parent called the front desk",
            },
        },
        headers=headers_for(campus["staff"]),
    )
    assert response.status_code == 201
    assert response.json()["status"] == "APPROVED"
    assert response.json()["note"] == "Auto-approved by Academic Affairs"

    mine = client.get("/api/student-requests", params={"status": "APPROVED"}, headers=headers_for(campus["student"]))
    assert [item["id"] for item in mine.json()] == [response.json()["id"]]


def test_swap_handshake_over_http(client, campus, headers_for):
    teacher_headers = headers_for(campus["teacher"])

    upcoming = client.get("/api/teacher-requests/upcoming-sessions", headers=teacher_headers)
    assert [item["session_id"] for item in upcoming.json()] == [campus["upcoming"].id]

    candidates = client.get(
        f"/api/teacher-requests/sessions/{campus['upcoming'].id}/swap-candidates",
        headers=teacher_headers,
    )
    assert candidates.status_code == 200
    assert candidates.json()[0]["teacher_id"] == campus["replacement"].id
    assert candidates.json()[0]["skill_priority"] == 1

    created = client.post(
        "/api/teacher-requests",
        json={
            "request_type": "SWAP",
            "session_id": campus["upcoming"].id,
            "request_reason": "Conference in another city",
        },
        headers=teacher_headers,
    )
    assert created.status_code == 201
    request_id = created.json()["id"]

    approved = client.put(
        f"/api/teacher-requests/{request_id}/approve",
        json={"replacement_teacher_id": campus["replacement"].id},
        headers=headers_for(campus["staff"]),
    )
    assert approved.json()["status"] == "WAITING_CONFIRM"

    wrong = client.put(f"/api/teacher-requests/{request_id}/confirm", headers=teacher_headers)
    assert wrong.status_code == 403
    assert wrong.json()["code"] == "FORBIDDEN"

    confirmed = client.put(
        f"/api/teacher-requests/{request_id}/confirm",
        headers=headers_for(campus["replacement"]),
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "APPROVED"


def test_oversized_body_is_refused(client, campus, headers_for):
    response = client.post(
        "/api/student-requests",
        content=b"x" * 1_000_001,
        headers={**headers_for(campus["student"]), "Content-Type": "application/json"},
    )
    assert response.status_code == 413
    assert response.json()["code"] == "PAYLOAD_TOO_LARGE"
