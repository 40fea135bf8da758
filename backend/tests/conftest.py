import os

# The app engine and lifespan bootstrap read this at import time.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

from datetime import date, time, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_db
from app.core.security import create_access_token, get_password_hash
from app.db.base import Base
from app.main import app
from app.models.class_entity import ClassEntity, ClassModality, ClassStatus
from app.models.class_session import ClassSession, SessionResource, SessionStatus, TeachingSlot
from app.models.course import Course, CourseSession
from app.models.enrollment import AttendanceStatus, Enrollment, EnrollmentStatus, StudentSession
from app.models.resource import Resource, ResourceType
from app.models.student import Student
from app.models.teacher import Teacher
from app.models.time_slot import TimeSlot
from app.models.user import User, UserRole


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


class TimetableSeeder:
    """Writes timetable facts straight through the ORM session."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def _add(self, entity):
        self.db.add(entity)
        self.db.flush()
        return entity

    def user(self, role: UserRole, *, name: str | None = None, branch_id: str | None = "HN") -> User:
        number = self._next()
        return self._add(
            User(
                name=name or f"{role.value.title()} {number}",
                email=f"{role.value}{number}@example.com",
                hashed_password=get_password_hash("password123"),
                role=role,
                branch_id=branch_id,
                is_active=True,
            )
        )

    def staff(self) -> User:
        return self.user(UserRole.academic_affair)

    def student(self, name: str | None = None) -> Student:
        user = self.user(UserRole.student, name=name)
        return self._add(Student(user_id=user.id, student_code=f"ST{self._next():04d}", name=user.name))

    def teacher(self, name: str | None = None, *, skills: list[str] | None = None) -> Teacher:
        user = self.user(UserRole.teacher, name=name)
        return self._add(Teacher(user_id=user.id, name=user.name, email=user.email, skills=skills or []))

    def course(self, code: str = "IELTS", *, units: int = 12) -> tuple[Course, list[CourseSession]]:
        course = self._add(Course(code=code, name=f"{code} course"))
        units_list = [
            self._add(CourseSession(course_id=course.id, sequence_no=number, topic=f"{code} unit {number}"))
            for number in range(1, units + 1)
        ]
        return course, units_list

    def class_(
        self,
        course: Course,
        *,
        code: str | None = None,
        branch_id: str = "HN",
        modality: ClassModality = ClassModality.OFFLINE,
        max_capacity: int = 30,
        status: ClassStatus = ClassStatus.ONGOING,
    ) -> ClassEntity:
        code = code or f"{course.code}-{self._next()}"
        return self._add(
            ClassEntity(
                code=code,
                name=f"Class {code}",
                course_id=course.id,
                branch_id=branch_id,
                modality=modality,
                status=status,
                max_capacity=max_capacity,
            )
        )

    def slot(self, start: time = time(8, 0), end: time = time(10, 0), *, name: str | None = None) -> TimeSlot:
        return self._add(TimeSlot(name=name or f"{start:%H:%M}-{end:%H:%M}", start_time=start, end_time=end))

    def session(
        self,
        class_entity: ClassEntity,
        unit: CourseSession | None,
        slot: TimeSlot,
        on_date: date,
        *,
        status: SessionStatus = SessionStatus.PLANNED,
    ) -> ClassSession:
        return self._add(
            ClassSession(
                class_id=class_entity.id,
                course_session_id=unit.id if unit else None,
                time_slot_id=slot.id,
                date=on_date,
                status=status,
            )
        )

    def teach(self, session: ClassSession, teacher: Teacher) -> TeachingSlot:
        return self._add(TeachingSlot(session_id=session.id, teacher_id=teacher.id))

    def resource(
        self,
        name: str,
        *,
        resource_type: ResourceType = ResourceType.ROOM,
        branch_id: str = "HN",
        capacity: int | None = 30,
    ) -> Resource:
        return self._add(Resource(name=name, branch_id=branch_id, resource_type=resource_type, capacity=capacity))

    def bind(self, session: ClassSession, resource: Resource) -> SessionResource:
        return self._add(SessionResource(session_id=session.id, resource_id=resource.id))

    def enroll(self, student: Student, class_entity: ClassEntity) -> Enrollment:
        return self._add(
            Enrollment(student_id=student.id, class_id=class_entity.id, status=EnrollmentStatus.ENROLLED)
        )

    def attend(
        self,
        student: Student,
        session: ClassSession,
        status: AttendanceStatus = AttendanceStatus.PLANNED,
    ) -> StudentSession:
        return self._add(StudentSession(student_id=student.id, session_id=session.id, attendance_status=status))

    def fill(self, session: ClassSession, class_entity: ClassEntity, count: int) -> list[Student]:
        students = []
        for _ in range(count):
            student = self.student()
            self.enroll(student, class_entity)
            self.attend(student, session)
            students.append(student)
        return students


@pytest.fixture()
def seed(db_session):
    return TimetableSeeder(db_session)


@pytest.fixture()
def today() -> date:
    return date.today()


@pytest.fixture()
def days():
    def _shift(count: int) -> date:
        return date.today() + timedelta(days=count)

    return _shift


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def headers_for(db_session):
    """Bearer headers for a User, Student or Teacher seeded through ``seed``."""

    def _headers(profile) -> dict[str, str]:
        user = profile if isinstance(profile, User) else db_session.get(User, profile.user_id)
        return auth_headers(user)

    return _headers
