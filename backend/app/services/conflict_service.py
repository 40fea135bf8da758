from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import SchedulingConflictError
from app.models.class_session import (
    ClassSession,
    SessionResource,
    SessionStatus,
    TeachingSlot,
    TeachingSlotStatus,
)
from app.models.enrollment import AttendanceStatus, StudentSession
from app.models.time_slot import TimeSlot

ACTIVE_SESSION_STATUSES = (SessionStatus.PLANNED, SessionStatus.DONE)
ACTIVE_TEACHING_STATUSES = (TeachingSlotStatus.SCHEDULED, TeachingSlotStatus.SUBSTITUTED)


def _minutes(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class Booking:
    """Read-only projection of one occupied (date, time window) for a holder."""

    session_id: str
    holder_id: str
    date: date
    start_minute: int
    end_minute: int


@dataclass(frozen=True)
class Candidate:
    date: date
    start_minute: int
    end_minute: int

    @classmethod
    def for_slot(cls, on_date: date, slot: TimeSlot) -> "Candidate":
        return cls(date=on_date, start_minute=_minutes(slot.start_time), end_minute=_minutes(slot.end_time))


class ConflictService:
    """Decides whether a candidate window collides with existing bookings.

    Holds no database handle: callers load the bookings for one holder
    (resource, teacher or student) and date, then ask about candidates.
    """

    def __init__(self, bookings: list[Booking]):
        self.bookings = bookings

    def find_conflicts(self, candidate: Candidate, *, exclude_session_id: str | None = None) -> list[Booking]:
        conflicts: list[Booking] = []
        for booking in self.bookings:
            if booking.session_id == exclude_session_id:
                continue
            if booking.date != candidate.date:
                continue
            if max(booking.start_minute, candidate.start_minute) < min(booking.end_minute, candidate.end_minute):
                conflicts.append(booking)
        return conflicts

    def is_free(self, candidate: Candidate, *, exclude_session_id: str | None = None) -> bool:
        return not self.find_conflicts(candidate, exclude_session_id=exclude_session_id)


def _to_bookings(rows) -> list[Booking]:
    return [
        Booking(
            session_id=row.session_id,
            holder_id=row.holder_id,
            date=row.date,
            start_minute=_minutes(row.start_time),
            end_minute=_minutes(row.end_time),
        )
        for row in rows
    ]


def load_resource_bookings(db: Session, *, resource_id: str, on_date: date) -> list[Booking]:
    rows = db.execute(
        select(
            ClassSession.id.label("session_id"),
            SessionResource.resource_id.label("holder_id"),
            ClassSession.date,
            TimeSlot.start_time,
            TimeSlot.end_time,
        )
        .join(SessionResource, SessionResource.session_id == ClassSession.id)
        .join(TimeSlot, TimeSlot.id == ClassSession.time_slot_id)
        .where(
            SessionResource.resource_id == resource_id,
            ClassSession.date == on_date,
            ClassSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
    ).all()
    return _to_bookings(rows)


def load_teacher_bookings(db: Session, *, teacher_id: str, on_date: date) -> list[Booking]:
    rows = db.execute(
        select(
            ClassSession.id.label("session_id"),
            TeachingSlot.teacher_id.label("holder_id"),
            ClassSession.date,
            TimeSlot.start_time,
            TimeSlot.end_time,
        )
        .join(TeachingSlot, TeachingSlot.session_id == ClassSession.id)
        .join(TimeSlot, TimeSlot.id == ClassSession.time_slot_id)
        .where(
            TeachingSlot.teacher_id == teacher_id,
            TeachingSlot.status.in_(ACTIVE_TEACHING_STATUSES),
            ClassSession.date == on_date,
            ClassSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
    ).all()
    return _to_bookings(rows)


def load_student_bookings(db: Session, *, student_ids: list[str], on_date: date) -> list[Booking]:
    if not student_ids:
        return []
    rows = db.execute(
        select(
            ClassSession.id.label("session_id"),
            StudentSession.student_id.label("holder_id"),
            ClassSession.date,
            TimeSlot.start_time,
            TimeSlot.end_time,
        )
        .join(StudentSession, StudentSession.session_id == ClassSession.id)
        .join(TimeSlot, TimeSlot.id == ClassSession.time_slot_id)
        .where(
            StudentSession.student_id.in_(student_ids),
            StudentSession.attendance_status != AttendanceStatus.ABSENT,
            ClassSession.date == on_date,
            ClassSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
    ).all()
    return _to_bookings(rows)


def resource_is_free(
    db: Session,
    *,
    resource_id: str,
    on_date: date,
    slot: TimeSlot,
    exclude_session_id: str | None = None,
) -> bool:
    service = ConflictService(load_resource_bookings(db, resource_id=resource_id, on_date=on_date))
    return service.is_free(Candidate.for_slot(on_date, slot), exclude_session_id=exclude_session_id)


def teacher_is_free(
    db: Session,
    *,
    teacher_id: str,
    on_date: date,
    slot: TimeSlot,
    exclude_session_id: str | None = None,
) -> bool:
    service = ConflictService(load_teacher_bookings(db, teacher_id=teacher_id, on_date=on_date))
    return service.is_free(Candidate.for_slot(on_date, slot), exclude_session_id=exclude_session_id)


def students_are_free(
    db: Session,
    *,
    student_ids: list[str],
    on_date: date,
    slot: TimeSlot,
    exclude_session_id: str | None = None,
) -> bool:
    service = ConflictService(load_student_bookings(db, student_ids=student_ids, on_date=on_date))
    return service.is_free(Candidate.for_slot(on_date, slot), exclude_session_id=exclude_session_id)


def ensure_resource_available(
    db: Session,
    *,
    resource_id: str,
    on_date: date,
    slot: TimeSlot,
    exclude_session_id: str | None = None,
) -> None:
    if not resource_is_free(
        db,
        resource_id=resource_id,
        on_date=on_date,
        slot=slot,
        exclude_session_id=exclude_session_id,
    ):
        raise SchedulingConflictError(
            "Resource is already booked for this date and time slot",
            details={"resource_id": resource_id, "date": on_date.isoformat(), "time_slot_id": slot.id},
        )


def ensure_teacher_available(
    db: Session,
    *,
    teacher_id: str,
    on_date: date,
    slot: TimeSlot,
    exclude_session_id: str | None = None,
) -> None:
    if not teacher_is_free(
        db,
        teacher_id=teacher_id,
        on_date=on_date,
        slot=slot,
        exclude_session_id=exclude_session_id,
    ):
        raise SchedulingConflictError(
            "Teacher already has a session at this date and time slot",
            details={"teacher_id": teacher_id, "date": on_date.isoformat(), "time_slot_id": slot.id},
        )
