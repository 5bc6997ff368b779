"""
Notification Service - Per-user append-only event log

Clients poll these rows. Nothing here touches balances: an error in this
module can delay a notification but never move money.
"""
from typing import Any, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.config import settings
from rutapay.core.exceptions import ForbiddenError, NotificationNotFoundError
from rutapay.core.logging import get_logger
from rutapay.db.models.notification import Notification, NotificationType
from rutapay.db.models.user import User, UserRole

logger = get_logger(__name__)

# Accepted values of the admin type filter
_ADMIN_TYPE_ALIASES = {
    "recharge": NotificationType.RECHARGE_PENDING,
    "payment_received": NotificationType.PAYMENT,
}


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return settings.NOTIFICATIONS_DEFAULT_LIMIT
    return min(limit, settings.NOTIFICATIONS_MAX_LIMIT)


def resolve_admin_type_filter(value: Optional[str]) -> Optional[NotificationType]:
    """Map an admin ``type`` query value to a NotificationType; unknown values filter nothing"""
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in _ADMIN_TYPE_ALIASES:
        return _ADMIN_TYPE_ALIASES[normalized]
    try:
        return NotificationType(normalized)
    except ValueError:
        return None


class NotificationService:
    """Append, list and acknowledge notifications"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        user_id: int,
        title: str,
        body: Optional[str],
        data: dict[str, Any],
        read: bool = False
    ) -> Notification:
        """Add a notification to the current unit of work; the caller commits"""
        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            data=data,
            read=read,
        )
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def exists_for_event(
        self,
        event_type: NotificationType,
        entity_id: int,
        user_id: Optional[int] = None,
        legacy_title: Optional[str] = None,
    ) -> bool:
        """
        Whether a notification for this event already exists.

        Matches on ``data.type`` plus the entity reference. ``legacy_title``
        also accepts rows written before ``data.type`` was recorded, matched by
        title and the same entity reference.
        """
        event_type = NotificationType(event_type)
        entity_ref = Notification.data[event_type.entity_key].as_integer()
        type_match = Notification.data["type"].as_string() == event_type.value
        if legacy_title:
            type_match = or_(type_match, Notification.title.ilike(f"{legacy_title}%"))

        conditions = [entity_ref == entity_id, type_match]
        if user_id is not None:
            conditions.append(Notification.user_id == user_id)

        result = await self.db.execute(
            select(Notification.id).where(and_(*conditions)).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_for_user(
        self,
        user_id: int,
        limit: Optional[int] = None,
        offset: int = 0,
        unread_only: bool = False,
    ) -> List[Notification]:
        """Newest first"""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.read.is_(False))
        query = (
            query
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(max(offset, 0))
            .limit(clamp_limit(limit))
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def unread_count(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        )
        return int(result.scalar_one())

    async def list_for_admin(
        self,
        limit: Optional[int] = None,
        event_type: Optional[str] = None,
    ) -> List[Tuple[Notification, str, Optional[str]]]:
        """All users' notifications with the owner's name and email, newest first"""
        query = select(Notification, User.name, User.email).join(User, User.id == Notification.user_id)
        type_filter = resolve_admin_type_filter(event_type)
        if type_filter is not None:
            query = query.where(Notification.data["type"].as_string() == type_filter.value)
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(
            clamp_limit(limit)
        )
        result = await self.db.execute(query)
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def mark_read(
        self,
        notification_id: int,
        actor_id: int,
        actor_role: UserRole,
    ) -> Tuple[Notification, int]:
        """
        Mark one notification as read for its owner (or an admin).

        Returns the notification and the owner's remaining unread count. An
        already-read notification is returned as-is without a write.
        """
        result = await self.db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotificationNotFoundError(notification_id)

        if notification.user_id != actor_id and actor_role != UserRole.ADMIN:
            raise ForbiddenError(
                "Cannot mark another user's notification",
                details={"notification_id": notification_id}
            )

        if not notification.read:
            notification.read = True
            await self.db.commit()

        unread = await self.unread_count(notification.user_id)
        return notification, unread
