"""站内通知路由：只能访问当前用户自己的通知。"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.dms.api.v1.schemas.common import EmptyResponse
from app.packages.dms.api.v1.schemas.notifications import (
    MarkAllReadResponse,
    NotificationPageResponse,
    NotificationResponse,
)
from app.packages.dms.core.dependencies import get_current_active_user, get_db
from app.packages.dms.models.user import User
from app.packages.dms.services.notification_service import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationPageResponse)
def list_notifications(
    unread_only: bool = Query(False),
    page: int = Query(1, ge=1, description="页码，从 1 开始"),
    page_size: int = Query(20, ge=1, le=100, description="每页数量"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationPageResponse:
    return notification_service.list_notifications(
        db, user_id=current_user.id, unread_only=unread_only, page=page, page_size=page_size
    )


@router.post("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MarkAllReadResponse:
    return notification_service.mark_all_read(db, user_id=current_user.id)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> NotificationResponse:
    return notification_service.mark_read(db, user_id=current_user.id, notification_id=notification_id)


@router.delete("/{notification_id}", response_model=EmptyResponse)
def delete_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> EmptyResponse:
    return notification_service.delete(db, user_id=current_user.id, notification_id=notification_id)
