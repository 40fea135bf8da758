from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.models.notification import NotificationType
from app.models.user import User
from app.schemas.notification import NotificationOut, NotificationsMarkedOut
from app.services import notifications
from app.services.audit import log_activity

router = APIRouter()


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    notification_type: NotificationType | None = Query(default=None),
    is_read: bool | None = Query(default=None),
    entity_id: str | None = Query(default=None, max_length=36),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    return notifications.list_user_notifications(
        db,
        user_id=current_user.id,
        notification_type=notification_type,
        is_read=is_read,
        entity_id=entity_id,
        limit=limit,
        offset=offset,
    )


@router.post("/notifications/read-all", response_model=NotificationsMarkedOut)
def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationsMarkedOut:
    updated = notifications.mark_all_read(db, user_id=current_user.id)
    if updated:
        log_activity(
            db,
            user=current_user,
            action="notification.read_all",
            entity_type="notification",
            details={"count": updated},
        )
    db.commit()
    return NotificationsMarkedOut(updated=updated)


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = notifications.mark_read(db, user_id=current_user.id, notification_id=notification_id)
    db.commit()
    db.refresh(notification)
    return notification
