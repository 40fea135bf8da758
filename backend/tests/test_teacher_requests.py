from datetime import time

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    AccessDeniedError,
    BusinessRuleError,
    DuplicateRequestError,
    InvalidInputError,
    SchedulingConflictError,
)
from app.models.class_session import ClassSession, SessionStatus, TeachingSlot, TeachingSlotStatus
from app.models.enrollment import StudentSession
from app.models.notification import Notification
from app.models.request_status import RequestStatus
from app.models.resource import ResourceType
from app.models.teacher_request import TeacherRequest
from app.models.user import User
from app.schemas.teacher_request import (
    ModalityChangePayload,
    ReschedulePayload,
    SwapPayload,
    TeacherRequestApprove,
)
from app.services.swap_coordinator import DECLINE_MARKER
from app.services.teacher_requests import (
    approve_teacher_request,
    confirm_swap_request,
    create_teacher_request,
    decline_swap_request,
    list_teacher_requests,
    list_upcoming_sessions,
    reject_teacher_request,
    suggest_modality_resources,
    suggest_resources,
    suggest_slots,
    suggest_swap_candidates,
)
from app.services.timetable_queries import session_resource

REASON = "Attending a training workshop"


def _user(db_session, profile) -> User:
    return db_session.get(User, profile.user_id)


@pytest.fixture()
def lesson(seed, days):
    course, units = seed.course()
    class_entity = seed.class_(course)
    morning = seed.slot(time(8, 0), time(10, 0))
    afternoon = seed.slot(time(14, 0), time(16, 0))
    teacher = seed.teacher("Anh", skills=["TOEIC"])
    session = seed.session(class_entity, units[0], morning, days(2))
    seed.teach(session, teacher)
    room = seed.resource("Room A")
    seed.bind(session, room)
    students = seed.fill(session, class_entity, 3)
    return {
        "class": class_entity,
        "units": units,
        "morning": morning,
        "afternoon": afternoon,
        "teacher": teacher,
        "session": session,
        "room": room,
        "students": students,
        "staff": seed.staff(),
    }


def _reschedule(db_session, lesson, days, **overrides):
    payload = ReschedulePayload(
        request_type="RESCHEDULE",
        session_id=lesson["session"].id,
        request_reason=REASON,
        new_date=overrides.get("new_date", days(4)),
        new_time_slot_id=overrides.get("new_time_slot_id", lesson["afternoon"].id),
        new_resource_id=overrides.get("new_resource_id"),
    )
    return create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)


def test_reschedule_moves_everything_to_a_new_session(db_session, lesson, days):
    request = _reschedule(db_session, lesson, days)
    assert request.status == RequestStatus.PENDING

    approved = approve_teacher_request(
        db_session, request_id=request.id, actor=lesson["staff"], payload=TeacherRequestApprove()
    )
    assert approved.status == RequestStatus.APPROVED
    assert approved.decided_at is not None

    old = db_session.get(ClassSession, lesson["session"].id)
    new = db_session.get(ClassSession, approved.new_session_id)
    assert old.status == SessionStatus.CANCELLED
    assert new.status == SessionStatus.PLANNED
    assert new.date == days(4)
    assert new.time_slot_id == lesson["afternoon"].id
    assert new.course_session_id == old.course_session_id

    slots = db_session.execute(select(TeachingSlot).where(TeachingSlot.session_id == new.id)).scalars().all()
    assert [item.teacher_id for item in slots] == [lesson["teacher"].id]
    moved = db_session.execute(select(StudentSession).where(StudentSession.session_id == new.id)).scalars().all()
    assert len(moved) == 3
    # Without a new resource the current room follows the session.
    assert session_resource(db_session, new.id).resource_id == lesson["room"].id
    assert session_resource(db_session, old.id) is None

    recipients = set(db_session.execute(select(Notification.user_id)).scalars())
    assert {student.user_id for student in lesson["students"]} <= recipients


def test_reschedule_conflict_at_approval_leaves_request_pending(db_session, seed, lesson, days):
    request = _reschedule(db_session, lesson, days)
    # Another class grabbed the teacher for the new window after submission.
    other = seed.session(seed.class_(seed.course("TOEIC")[0]), None, lesson["afternoon"], days(4))
    seed.teach(other, lesson["teacher"])
    db_session.commit()

    with pytest.raises(SchedulingConflictError) as exc_info:
        approve_teacher_request(
            db_session, request_id=request.id, actor=lesson["staff"], payload=TeacherRequestApprove()
        )
    assert exc_info.value.status_code == 409

    db_session.rollback()
    assert db_session.get(TeacherRequest, request.id).status == RequestStatus.PENDING
    assert db_session.get(ClassSession, lesson["session"].id).status == SessionStatus.PLANNED


def test_reschedule_rejects_busy_teacher_at_submission(db_session, seed, lesson, days):
    other = seed.session(seed.class_(seed.course("TOEIC")[0]), None, seed.slot(time(15, 0), time(17, 0)), days(4))
    seed.teach(other, lesson["teacher"])

    with pytest.raises(SchedulingConflictError):
        _reschedule(db_session, lesson, days)


def test_reschedule_requires_date_and_slot(db_session, lesson):
    payload = ReschedulePayload(request_type="RESCHEDULE", session_id=lesson["session"].id, request_reason=REASON)
    with pytest.raises(InvalidInputError) as exc_info:
        create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)
    assert exc_info.value.code == "INVALID_INPUT"


def test_modality_change_swaps_resource_only(db_session, seed, lesson):
    zoom = seed.resource("Zoom 1", resource_type=ResourceType.VIRTUAL, capacity=None)
    payload = ModalityChangePayload(
        request_type="MODALITY_CHANGE",
        session_id=lesson["session"].id,
        request_reason=REASON,
        new_resource_id=zoom.id,
    )
    request = create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)
    approve_teacher_request(db_session, request_id=request.id, actor=lesson["staff"], payload=TeacherRequestApprove())

    assert request.status == RequestStatus.APPROVED
    assert session_resource(db_session, lesson["session"].id).resource_id == zoom.id
    slot = db_session.execute(
        select(TeachingSlot).where(TeachingSlot.session_id == lesson["session"].id)
    ).scalar_one()
    assert slot.teacher_id == lesson["teacher"].id
    assert slot.status == TeachingSlotStatus.SCHEDULED
    assert db_session.get(ClassSession, lesson["session"].id).status == SessionStatus.PLANNED


def test_modality_change_needs_resource_of_other_mode(db_session, seed, lesson):
    other_room = seed.resource("Room B")
    payload = ModalityChangePayload(
        request_type="MODALITY_CHANGE",
        session_id=lesson["session"].id,
        request_reason=REASON,
        new_resource_id=other_room.id,
    )
    with pytest.raises(BusinessRuleError) as exc_info:
        create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)
    assert exc_info.value.code == "INVALID_RESOURCE_FOR_MODALITY"


def _swap(db_session, lesson, replacement=None):
    payload = SwapPayload(
        request_type="SWAP",
        session_id=lesson["session"].id,
        request_reason=REASON,
        replacement_teacher_id=replacement.id if replacement else None,
    )
    return create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)


def _slot_status(db_session, session_id, teacher_id):
    return db_session.execute(
        select(TeachingSlot.status).where(TeachingSlot.session_id == session_id, TeachingSlot.teacher_id == teacher_id)
    ).scalar_one()


def test_swap_waits_for_replacement_then_substitutes(db_session, seed, lesson):
    replacement = seed.teacher("Binh", skills=["IELTS"])
    request = _swap(db_session, lesson, replacement)

    approve_teacher_request(db_session, request_id=request.id, actor=lesson["staff"], payload=TeacherRequestApprove())
    assert request.status == RequestStatus.WAITING_CONFIRM
    assert request.decided_at is None
    assert _slot_status(db_session, lesson["session"].id, lesson["teacher"].id) == TeachingSlotStatus.SCHEDULED
    assert [item.id for item in list_teacher_requests(db_session, actor=_user(db_session, replacement))] == [request.id]

    with pytest.raises(AccessDeniedError) as exc_info:
        confirm_swap_request(db_session, request_id=request.id, actor=_user(db_session, lesson["teacher"]))
    assert exc_info.value.code == "FORBIDDEN"

    confirm_swap_request(db_session, request_id=request.id, actor=_user(db_session, replacement))
    assert request.status == RequestStatus.APPROVED
    assert _slot_status(db_session, lesson["session"].id, lesson["teacher"].id) == TeachingSlotStatus.ON_LEAVE
    assert _slot_status(db_session, lesson["session"].id, replacement.id) == TeachingSlotStatus.SUBSTITUTED


def test_declined_swap_reopens_and_excludes_decliner(db_session, seed, lesson):
    replacement = seed.teacher("Binh", skills=["IELTS"])
    fallback = seed.teacher("Chi")
    request = _swap(db_session, lesson, replacement)
    approve_teacher_request(db_session, request_id=request.id, actor=lesson["staff"], payload=TeacherRequestApprove())

    decline_swap_request(
        db_session, request_id=request.id, actor=_user(db_session, replacement), reason="Teaching elsewhere"
    )
    assert request.status == RequestStatus.PENDING
    assert request.replacement_teacher_id is None
    assert request.decided_by_id is None
    assert f"{DECLINE_MARKER}{replacement.id}" in request.note
    assert _slot_status(db_session, lesson["session"].id, lesson["teacher"].id) == TeachingSlotStatus.SCHEDULED

    candidates = suggest_swap_candidates(db_session, session_id=lesson["session"].id, actor=lesson["staff"])
    assert [item.teacher_id for item in candidates] == [fallback.id]

    # Staff can pick another replacement on the reopened request.
    approve_teacher_request(
        db_session,
        request_id=request.id,
        actor=lesson["staff"],
        payload=TeacherRequestApprove(replacement_teacher_id=fallback.id),
    )
    assert request.status == RequestStatus.WAITING_CONFIRM
    assert request.replacement_teacher_id == fallback.id


def test_swap_approval_needs_a_replacement(db_session, lesson):
    request = _swap(db_session, lesson)
    with pytest.raises(InvalidInputError):
        approve_teacher_request(
            db_session, request_id=request.id, actor=lesson["staff"], payload=TeacherRequestApprove()
        )


def test_swap_candidates_rank_skill_then_availability(db_session, seed, lesson, days):
    skilled = seed.teacher("Zed", skills=["ielts"])
    busy_skilled = seed.teacher("Yen", skills=["IELTS"])
    plain = seed.teacher("Bao")
    clash = seed.session(seed.class_(seed.course("TOEIC")[0]), None, lesson["morning"], lesson["session"].date)
    seed.teach(clash, busy_skilled)

    candidates = suggest_swap_candidates(
        db_session, session_id=lesson["session"].id, actor=_user(db_session, lesson["teacher"])
    )
    assert [item.teacher_id for item in candidates] == [skilled.id, busy_skilled.id, plain.id]
    assert candidates[1].has_conflict is True
    assert lesson["teacher"].id not in {item.teacher_id for item in candidates}


def test_unassigned_teacher_is_forbidden(db_session, seed, lesson):
    stranger = seed.teacher()
    payload = SwapPayload(request_type="SWAP", session_id=lesson["session"].id, request_reason=REASON)
    with pytest.raises(AccessDeniedError) as exc_info:
        create_teacher_request(db_session, actor=_user(db_session, stranger), payload=payload)
    assert exc_info.value.code == "FORBIDDEN"
    assert exc_info.value.status_code == 403


def test_sessions_beyond_window_are_refused(db_session, seed, lesson, days):
    far = seed.session(lesson["class"], lesson["units"][1], lesson["morning"], days(10))
    seed.teach(far, lesson["teacher"])
    payload = SwapPayload(request_type="SWAP", session_id=far.id, request_reason=REASON)
    with pytest.raises(BusinessRuleError) as exc_info:
        create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)
    assert exc_info.value.code == "SESSION_NOT_IN_TIME_WINDOW"


def test_one_open_request_per_session_and_type(db_session, lesson):
    _swap(db_session, lesson)
    with pytest.raises(DuplicateRequestError):
        _swap(db_session, lesson)


def test_reject_closes_request(db_session, lesson):
    request = _swap(db_session, lesson)
    reject_teacher_request(db_session, request_id=request.id, actor=lesson["staff"], reason="No cover available")
    assert request.status == RequestStatus.REJECTED
    assert request.note == "No cover available"
    with pytest.raises(BusinessRuleError):
        reject_teacher_request(db_session, request_id=request.id, actor=lesson["staff"], reason="again")


def test_upcoming_sessions_flag_pending_requests(db_session, lesson):
    _swap(db_session, lesson)
    sessions = list_upcoming_sessions(db_session, actor=_user(db_session, lesson["teacher"]))
    assert [item["session_id"] for item in sessions] == [lesson["session"].id]
    assert sessions[0]["has_pending_request"] is True


def test_slot_suggestions_skip_busy_windows(db_session, seed, lesson, days):
    evening = seed.slot(time(18, 0), time(20, 0))
    other = seed.session(seed.class_(seed.course("TOEIC")[0]), None, lesson["afternoon"], days(4))
    seed.attend(lesson["students"][0], other)

    slots = suggest_slots(
        db_session, session_id=lesson["session"].id, actor=_user(db_session, lesson["teacher"]), on_date=days(4)
    )
    assert [item.id for item in slots] == [lesson["morning"].id, evening.id]


def test_resource_suggestions_keep_or_switch_modality(db_session, seed, lesson, days):
    seed.resource("Auditorium")
    seed.resource("Closet", capacity=2)
    seed.resource("Far room", branch_id="HCM")
    zoom = seed.resource("Zoom", resource_type=ResourceType.VIRTUAL, capacity=None)

    same_window = suggest_resources(
        db_session,
        session_id=lesson["session"].id,
        actor=lesson["staff"],
        on_date=lesson["session"].date,
        time_slot_id=lesson["morning"].id,
    )
    assert [item["name"] for item in same_window] == ["Room A", "Auditorium"]
    assert same_window[0]["is_current"] is True

    switched = suggest_modality_resources(db_session, session_id=lesson["session"].id, actor=lesson["staff"])
    assert [item["resource_id"] for item in switched] == [zoom.id]


def test_reschedule_checks_kept_resource_at_submission(db_session, seed, lesson, days):
    other = seed.session(seed.class_(seed.course("TOEIC")[0]), None, lesson["afternoon"], days(4))
    seed.bind(other, lesson["room"])

    with pytest.raises(SchedulingConflictError):
        _reschedule(db_session, lesson, days)
    assert db_session.execute(select(TeacherRequest)).scalars().all() == []


def _modality_change(db_session, seed, lesson):
    zoom = seed.resource("Zoom 1", resource_type=ResourceType.VIRTUAL, capacity=None)
    payload = ModalityChangePayload(
        request_type="MODALITY_CHANGE",
        session_id=lesson["session"].id,
        request_reason=REASON,
        new_resource_id=zoom.id,
    )
    return create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)


def test_modality_change_on_rescheduled_session_is_refused(db_session, seed, lesson, days):
    modality = _modality_change(db_session, seed, lesson)
    reschedule = _reschedule(db_session, lesson, days)
    approve_teacher_request(
        db_session, request_id=reschedule.id, actor=lesson["staff"], payload=TeacherRequestApprove()
    )

    with pytest.raises(BusinessRuleError) as exc_info:
        approve_teacher_request(
            db_session, request_id=modality.id, actor=lesson["staff"], payload=TeacherRequestApprove()
        )
    assert exc_info.value.code == "INVALID_SESSION_STATUS"
    assert modality.status == RequestStatus.PENDING
    assert session_resource(db_session, lesson["session"].id) is None
    assert session_resource(db_session, reschedule.new_session_id).resource_id == lesson["room"].id


def test_swap_on_rescheduled_session_is_refused(db_session, seed, lesson, days):
    replacement = seed.teacher("Binh", skills=["IELTS"])
    pending = _swap(db_session, lesson, replacement)
    reschedule = _reschedule(db_session, lesson, days)
    approve_teacher_request(
        db_session, request_id=reschedule.id, actor=lesson["staff"], payload=TeacherRequestApprove()
    )

    with pytest.raises(BusinessRuleError) as exc_info:
        approve_teacher_request(
            db_session, request_id=pending.id, actor=lesson["staff"], payload=TeacherRequestApprove()
        )
    assert exc_info.value.code == "INVALID_SESSION_STATUS"
    assert pending.status == RequestStatus.PENDING


def test_confirming_swap_after_reschedule_is_refused(db_session, seed, lesson, days):
    replacement = seed.teacher("Binh", skills=["IELTS"])
    swap = _swap(db_session, lesson, replacement)
    approve_teacher_request(db_session, request_id=swap.id, actor=lesson["staff"], payload=TeacherRequestApprove())
    reschedule = _reschedule(db_session, lesson, days)
    approve_teacher_request(
        db_session, request_id=reschedule.id, actor=lesson["staff"], payload=TeacherRequestApprove()
    )

    with pytest.raises(BusinessRuleError) as exc_info:
        confirm_swap_request(db_session, request_id=swap.id, actor=_user(db_session, replacement))
    assert exc_info.value.code == "INVALID_SESSION_STATUS"
    assert swap.status == RequestStatus.WAITING_CONFIRM


def test_only_named_replacement_confirms_swap(db_session, seed, lesson):
    replacement = seed.teacher("Binh", skills=["IELTS"])
    outsider = seed.teacher("Dung", skills=["IELTS"])
    request = _swap(db_session, lesson, replacement)
    approve_teacher_request(db_session, request_id=request.id, actor=lesson["staff"], payload=TeacherRequestApprove())

    with pytest.raises(AccessDeniedError) as exc_info:
        confirm_swap_request(db_session, request_id=request.id, actor=_user(db_session, outsider))
    assert exc_info.value.code == "FORBIDDEN"
    assert request.status == RequestStatus.WAITING_CONFIRM


def test_modality_change_needs_enough_seats(db_session, seed, lesson):
    small = seed.resource("Zoom small", resource_type=ResourceType.VIRTUAL, capacity=2)
    payload = ModalityChangePayload(
        request_type="MODALITY_CHANGE",
        session_id=lesson["session"].id,
        request_reason=REASON,
        new_resource_id=small.id,
    )
    with pytest.raises(BusinessRuleError) as exc_info:
        create_teacher_request(db_session, actor=_user(db_session, lesson["teacher"]), payload=payload)
    assert exc_info.value.code == "INSUFFICIENT_CAPACITY"
