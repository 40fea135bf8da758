from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.class_entity import ClassEntity, ClassModality, ClassStatus  # noqa: F401
from app.models.class_session import (  # noqa: F401
    ClassSession,
    SessionResource,
    SessionStatus,
    TeachingSlot,
    TeachingSlotStatus,
)
from app.models.course import Course, CourseSession  # noqa: F401
from app.models.enrollment import (  # noqa: F401
    AttendanceStatus,
    Enrollment,
    EnrollmentStatus,
    StudentSession,
)
from app.models.notification import Notification, NotificationType  # noqa: F401
from app.models.request_status import OPEN_REQUEST_STATUSES, RequestStatus  # noqa: F401
from app.models.resource import Resource, ResourceType  # noqa: F401
from app.models.student import Student  # noqa: F401
from app.models.student_request import StudentRequest, StudentRequestType  # noqa: F401
from app.models.teacher import Teacher  # noqa: F401
from app.models.teacher_request import TeacherRequest, TeacherRequestType  # noqa: F401
from app.models.time_slot import TimeSlot  # noqa: F401
from app.models.user import STAFF_ROLES, User, UserRole  # noqa: F401
