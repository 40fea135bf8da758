from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.exceptions import ResourceNotFoundError
from app.models.notification import Notification, NotificationType
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    entity_id: str | None = None,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        entity_id=entity_id,
    )
    db.add(record)
    return record


def notify_users(
    db: Session,
    *,
    user_ids: list[str] | set[str] | tuple[str, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.request,
    entity_id: str | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    if not requested_ids:
        return []

    recipients = list(
        db.execute(
            select(User.id).where(
                User.id.in_(requested_ids),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    results = [
        create_notification(
            db,
            user_id=recipient_id,
            title=title,
            message=message,
            notification_type=notification_type,
            entity_id=entity_id,
        )
        for recipient_id in recipients
    ]
    logger.debug("Queued %d notifications: %s", len(results), title)
    return results


def notify_roles(
    db: Session,
    *,
    roles: list[UserRole] | set[UserRole] | tuple[UserRole, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.request,
    entity_id: str | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    if not roles:
        return []
    recipient_ids = list(
        db.execute(
            select(User.id).where(
                User.role.in_(list(roles)),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    return notify_users(
        db,
        user_ids=recipient_ids,
        title=title,
        message=message,
        notification_type=notification_type,
        entity_id=entity_id,
        exclude_user_id=exclude_user_id,
    )


def list_user_notifications(
    db: Session,
    *,
    user_id: str,
    notification_type: NotificationType | None = None,
    is_read: bool | None = None,
    entity_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Notification]:
    query = select(Notification).where(Notification.user_id == user_id)
    if notification_type is not None:
        query = query.where(Notification.notification_type == notification_type)
    if is_read is not None:
        query = query.where(Notification.is_read.is_(is_read))
    if entity_id:
        query = query.where(Notification.entity_id == entity_id)
    query = query.order_by(Notification.created_at.desc(), Notification.id).offset(offset).limit(limit)
    return list(db.execute(query).scalars())


def mark_read(db: Session, *, user_id: str, notification_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    # Someone else's notification is reported as missing, not forbidden.
    if notification is None or notification.user_id != user_id:
        raise ResourceNotFoundError("Notification", notification_id)
    notification.is_read = True
    return notification


def mark_all_read(db: Session, *, user_id: str) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    return result.rowcount or 0
