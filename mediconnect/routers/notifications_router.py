from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..application.principal import Principal
from ..dependencies import get_current_principal, get_notifications_repo
from ..exceptions import NotFoundError, create_success_response
from ..infrastructure.persistence.sqlalchemy.repositories.notifications_repository_sql import SqlNotificationsRepository
from ..schemas.notifications.notification import NotificationResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
def list_notifications(
    is_read: Optional[bool] = Query(default=None, alias="isRead"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(get_current_principal),
    repo: SqlNotificationsRepository = Depends(get_notifications_repo),
):
    items = repo.list_for_user(principal.id, is_read=is_read, limit=limit, offset=offset)
    return create_success_response([NotificationResponse.model_validate(n).model_dump(mode="json") for n in items])


@router.put("/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    principal: Principal = Depends(get_current_principal),
    repo: SqlNotificationsRepository = Depends(get_notifications_repo),
):
    if not repo.mark_read(notification_id, principal.id):
        raise NotFoundError("Notification not found")
    return create_success_response(message="Notification marked as read")
