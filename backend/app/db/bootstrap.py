from __future__ import annotations

import logging

from sqlalchemy import Connection, inspect, text

import app.models  # noqa: F401  registers every table on Base.metadata
from app.db.base import Base
from app.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "role", "branch_id"},
    "sessions": {"id", "class_id", "course_session_id", "time_slot_id", "date", "status"},
    "session_resources": {"id", "session_id", "resource_id"},
    "student_requests": {"id", "student_id", "request_type", "status", "effective_session_id", "submitted_by_id"},
    "teacher_requests": {"id", "teacher_id", "session_id", "request_type", "status", "new_session_id"},
    "notifications": {"id", "user_id", "entity_id"},
}


def _ensure_notifications_entity_id_column() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "notifications" not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns("notifications")}
        if "entity_id" in column_names:
            return
        connection.execute(text("ALTER TABLE notifications ADD COLUMN entity_id VARCHAR(36)"))


def _ensure_request_result_columns() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        if "student_requests" in table_names:
            column_names = {item["name"] for item in inspector.get_columns("student_requests")}
            if "effective_session_id" not in column_names:
                connection.execute(text("ALTER TABLE student_requests ADD COLUMN effective_session_id VARCHAR(36)"))
        if "teacher_requests" in table_names:
            column_names = {item["name"] for item in inspector.get_columns("teacher_requests")}
            if "new_session_id" not in column_names:
                connection.execute(text("ALTER TABLE teacher_requests ADD COLUMN new_session_id VARCHAR(36)"))


def schema_gaps(connection: Connection) -> tuple[list[str], dict[str, list[str]]]:
    """Return the required tables and columns the connected database lacks."""
    inspector = inspect(connection)
    table_names = set(inspector.get_table_names())
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    for table_name, required in REQUIRED_COLUMNS.items():
        if table_name not in table_names:
            missing_tables.append(table_name)
            continue
        existing = {item["name"] for item in inspector.get_columns(table_name)}
        missing = sorted(required - existing)
        if missing:
            missing_columns[table_name] = missing
    return sorted(missing_tables), missing_columns


def _assert_required_columns() -> None:
    with engine.begin() as connection:
        missing_tables, missing_columns = schema_gaps(connection)
    if missing_tables:
        raise RuntimeError(f"Missing required tables: {', '.join(missing_tables)}")
    if missing_columns:
        flattened = [f"{table}.{column}" for table, columns in missing_columns.items() for column in columns]
        raise RuntimeError(f"Missing required columns: {', '.join(flattened)}")


def ensure_runtime_schema_compatibility() -> None:
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=engine)
        _ensure_notifications_entity_id_column()
        _ensure_request_result_columns()
        _assert_required_columns()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
