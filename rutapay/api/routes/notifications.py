"""
Notification API Routes
"""
from datetime import datetime
from typing import Any, List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.api.dependencies.auth import get_current_user, require_roles
from rutapay.db.database import get_db
from rutapay.db.models.user import User, UserRole
from rutapay.domain.services.notification_service import NotificationService

router = APIRouter()


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    title: str
    body: Optional[str] = None
    data: dict[str, Any] = {}
    read: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AdminNotificationResponse(NotificationResponse):
    user_name: Optional[str] = None
    user_email: Optional[str] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class MarkReadResponse(BaseModel):
    notification: NotificationResponse
    unread_count: int


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="Current user's notifications, newest first",
)
async def list_notifications(
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    unread: bool = False,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = NotificationService(db)
    notifications = await service.list_for_user(
        user.id, limit=limit, offset=offset, unread_only=unread
    )
    unread_count = await service.unread_count(user.id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread_count,
    )


@router.get(
    "/admin",
    response_model=List[AdminNotificationResponse],
    summary="All notifications with their recipient",
    description="`type` filters on the event type; `recharge` is accepted for recharge_pending.",
)
async def list_admin_notifications(
    limit: Optional[int] = Query(default=None, ge=1),
    type: Optional[str] = None,
    admin: User = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    service = NotificationService(db)
    rows = await service.list_for_admin(limit=limit, event_type=type)
    return [
        AdminNotificationResponse(
            **NotificationResponse.model_validate(notification).model_dump(),
            user_name=user_name,
            user_email=user_email,
        )
        for notification, user_name, user_email in rows
    ]


@router.put(
    "/{notification_id}/read",
    response_model=MarkReadResponse,
    summary="Mark a notification as read",
)
async def mark_notification_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = NotificationService(db)
    notification, unread_count = await service.mark_read(
        notification_id, actor_id=user.id, actor_role=user.role
    )
    return MarkReadResponse(
        notification=NotificationResponse.model_validate(notification),
        unread_count=unread_count,
    )
