"""create request workflow schema

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "academic_affair", "teacher", "student", name="user_role")
class_modality_enum = sa.Enum("OFFLINE", "ONLINE", "HYBRID", name="class_modality")
class_status_enum = sa.Enum("SCHEDULED", "ONGOING", "COMPLETED", "CANCELLED", name="class_status")
session_status_enum = sa.Enum("PLANNED", "DONE", "CANCELLED", name="session_status")
teaching_slot_status_enum = sa.Enum(
    "SCHEDULED", "ON_LEAVE", "SUBSTITUTED", "CANCELLED", name="teaching_slot_status"
)
resource_type_enum = sa.Enum("ROOM", "VIRTUAL", name="resource_type")
enrollment_status_enum = sa.Enum("ENROLLED", "TRANSFERRED", "DROPPED", "COMPLETED", name="enrollment_status")
attendance_status_enum = sa.Enum("PLANNED", "PRESENT", "ABSENT", name="attendance_status")
notification_type_enum = sa.Enum("request", "swap", "schedule", "system", name="notification_type")
student_request_type_enum = sa.Enum("ABSENCE", "MAKEUP", "TRANSFER", name="student_request_type")
teacher_request_type_enum = sa.Enum("SWAP", "RESCHEDULE", "MODALITY_CHANGE", name="teacher_request_type")

REQUEST_STATUSES = ("PENDING", "WAITING_CONFIRM", "APPROVED", "REJECTED", "CANCELLED")
student_request_status_enum = sa.Enum(*REQUEST_STATUSES, name="student_request_status")
teacher_request_status_enum = sa.Enum(*REQUEST_STATUSES, name="teacher_request_status")

ALL_ENUMS = (
    user_role_enum,
    class_modality_enum,
    class_status_enum,
    session_status_enum,
    teaching_slot_status_enum,
    resource_type_enum,
    enrollment_status_enum,
    attendance_status_enum,
    notification_type_enum,
    student_request_type_enum,
    teacher_request_type_enum,
    student_request_status_enum,
    teacher_request_status_enum,
)


def _id_column() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True, nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        _id_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "students",
        _id_column(),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("student_code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        _created_at(),
    )
    op.create_index("ix_students_user_id", "students", ["user_id"], unique=True)
    op.create_index("ix_students_student_code", "students", ["student_code"], unique=True)

    op.create_table(
        "teachers",
        _id_column(),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("skills", sa.JSON(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_teachers_user_id", "teachers", ["user_id"], unique=True)
    op.create_index("ix_teachers_email", "teachers", ["email"], unique=True)

    op.create_table(
        "courses",
        _id_column(),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        _created_at(),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)

    op.create_table(
        "course_sessions",
        _id_column(),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("sequence_no", sa.Integer(), nullable=False),
        sa.Column("topic", sa.String(length=300), nullable=False),
        sa.UniqueConstraint("course_id", "sequence_no", name="uq_course_sessions_course_sequence"),
    )
    op.create_index("ix_course_sessions_course_id", "course_sessions", ["course_id"])

    op.create_table(
        "classes",
        _id_column(),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("course_id", sa.String(length=36), nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=False),
        sa.Column("modality", class_modality_enum, nullable=False),
        sa.Column("status", class_status_enum, nullable=False),
        sa.Column("max_capacity", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_classes_code", "classes", ["code"], unique=True)
    op.create_index("ix_classes_course_id", "classes", ["course_id"])
    op.create_index("ix_classes_branch_id", "classes", ["branch_id"])

    op.create_table(
        "time_slots",
        _id_column(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
    )

    op.create_table(
        "resources",
        _id_column(),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("branch_id", sa.String(length=36), nullable=False),
        sa.Column("resource_type", resource_type_enum, nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_resources_name", "resources", ["name"])
    op.create_index("ix_resources_branch_id", "resources", ["branch_id"])

    op.create_table(
        "sessions",
        _id_column(),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("course_session_id", sa.String(length=36), nullable=True),
        sa.Column("time_slot_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_sessions_class_id", "sessions", ["class_id"])
    op.create_index("ix_sessions_course_session_id", "sessions", ["course_session_id"])
    op.create_index("ix_sessions_date", "sessions", ["date"])
    op.create_index("ix_sessions_status", "sessions", ["status"])

    op.create_table(
        "teaching_slots",
        _id_column(),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("status", teaching_slot_status_enum, nullable=False),
        sa.UniqueConstraint("session_id", "teacher_id", name="uq_teaching_slots_session_teacher"),
    )
    op.create_index("ix_teaching_slots_session_id", "teaching_slots", ["session_id"])
    op.create_index("ix_teaching_slots_teacher_id", "teaching_slots", ["teacher_id"])

    op.create_table(
        "session_resources",
        _id_column(),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("resource_id", sa.String(length=36), nullable=False),
        sa.UniqueConstraint("session_id", name="uq_session_resources_session"),
    )
    op.create_index("ix_session_resources_session_id", "session_resources", ["session_id"])
    op.create_index("ix_session_resources_resource_id", "session_resources", ["resource_id"])

    op.create_table(
        "enrollments",
        _id_column(),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("class_id", sa.String(length=36), nullable=False),
        sa.Column("status", enrollment_status_enum, nullable=False),
        sa.Column("join_session_id", sa.String(length=36), nullable=True),
        sa.Column("left_session_id", sa.String(length=36), nullable=True),
        sa.Column("enrolled_by_id", sa.String(length=36), nullable=True),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("capacity_override", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("override_reason", sa.Text(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"])
    op.create_index("ix_enrollments_class_id", "enrollments", ["class_id"])
    op.create_index("ix_enrollments_status", "enrollments", ["status"])

    op.create_table(
        "student_sessions",
        _id_column(),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("attendance_status", attendance_status_enum, nullable=False),
        sa.Column("is_makeup", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("makeup_session_id", sa.String(length=36), nullable=True),
        sa.Column("original_session_id", sa.String(length=36), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.UniqueConstraint("student_id", "session_id", name="uq_student_sessions_student_session"),
    )
    op.create_index("ix_student_sessions_student_id", "student_sessions", ["student_id"])
    op.create_index("ix_student_sessions_session_id", "student_sessions", ["session_id"])

    op.create_table(
        "student_requests",
        _id_column(),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("request_type", student_request_type_enum, nullable=False),
        sa.Column("status", student_request_status_enum, nullable=False),
        sa.Column("target_session_id", sa.String(length=36), nullable=True),
        sa.Column("makeup_session_id", sa.String(length=36), nullable=True),
        sa.Column("current_class_id", sa.String(length=36), nullable=True),
        sa.Column("target_class_id", sa.String(length=36), nullable=True),
        sa.Column("effective_date", sa.Date(), nullable=True),
        sa.Column("effective_session_id", sa.String(length=36), nullable=True),
        sa.Column("request_reason", sa.Text(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("submitted_by_id", sa.String(length=36), nullable=False),
        sa.Column("decided_by_id", sa.String(length=36), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_student_requests_student_id", "student_requests", ["student_id"])
    op.create_index("ix_student_requests_status", "student_requests", ["status"])
    op.create_index("ix_student_requests_target_session_id", "student_requests", ["target_session_id"])
    op.create_index("ix_student_requests_current_class_id", "student_requests", ["current_class_id"])

    op.create_table(
        "teacher_requests",
        _id_column(),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("request_type", teacher_request_type_enum, nullable=False),
        sa.Column("status", teacher_request_status_enum, nullable=False),
        sa.Column("replacement_teacher_id", sa.String(length=36), nullable=True),
        sa.Column("new_date", sa.Date(), nullable=True),
        sa.Column("new_time_slot_id", sa.String(length=36), nullable=True),
        sa.Column("new_resource_id", sa.String(length=36), nullable=True),
        sa.Column("new_session_id", sa.String(length=36), nullable=True),
        sa.Column("request_reason", sa.Text(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("submitted_by_id", sa.String(length=36), nullable=False),
        sa.Column("decided_by_id", sa.String(length=36), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_teacher_requests_teacher_id", "teacher_requests", ["teacher_id"])
    op.create_index("ix_teacher_requests_session_id", "teacher_requests", ["session_id"])
    op.create_index("ix_teacher_requests_status", "teacher_requests", ["status"])
    op.create_index(
        "ix_teacher_requests_replacement_teacher_id", "teacher_requests", ["replacement_teacher_id"]
    )

    op.create_table(
        "notifications",
        _id_column(),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("notification_type", notification_type_enum, nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "activity_logs",
        _id_column(),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=True),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_id", "activity_logs", ["entity_id"])


def downgrade() -> None:
    for table_name in (
        "activity_logs",
        "notifications",
        "teacher_requests",
        "student_requests",
        "student_sessions",
        "enrollments",
        "session_resources",
        "teaching_slots",
        "sessions",
        "resources",
        "time_slots",
        "classes",
        "course_sessions",
        "courses",
        "teachers",
        "students",
        "users",
    ):
        op.drop_table(table_name)

    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.drop(bind, checkfirst=True)
