"""
Outbox Service - Transactional Outbox Pattern for notifications

Engines queue an OutboxMessage in the same transaction as the money movement.
Delivery turns it into a Notification afterwards, either inline right after
commit or from the Celery worker, so a failing notification write never rolls
back a payment or a recharge decision.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.config import settings
from rutapay.core.logging import get_logger
from rutapay.db.models.notification import NotificationType
from rutapay.db.models.outbox_message import MessageStatus, OutboxMessage
from rutapay.db.models.payment import Payment
from rutapay.db.models.recharge import Recharge
from rutapay.domain.services.notification_service import NotificationService

logger = get_logger(__name__)

RECHARGE_CONFIRMED_TITLE = "Recarga confirmada"
RECHARGE_REJECTED_TITLE = "Recarga rechazada"
RECHARGE_PENDING_TITLE = "Nueva recarga pendiente"


def _calculate_backoff_seconds(
    retry_count: int,
    *,
    base_seconds: int,
    max_backoff_seconds: int,
) -> int:
    """
    base_seconds * 2**retry_count, capped at max_backoff_seconds.

    The power is never computed once it is known to exceed the cap, so a
    corrupted retry_count cannot blow up.
    """
    if retry_count < 0:
        retry_count = 0

    if base_seconds <= 0 or max_backoff_seconds <= 0:
        return 0

    if base_seconds >= max_backoff_seconds:
        return max_backoff_seconds

    # smallest n with base * 2**n >= max
    required_multiplier = (max_backoff_seconds + base_seconds - 1) // base_seconds
    is_power_of_two = (required_multiplier & (required_multiplier - 1)) == 0
    threshold = required_multiplier.bit_length() - 1
    if not is_power_of_two:
        threshold += 1

    if retry_count >= threshold:
        return max_backoff_seconds

    return min(base_seconds * (1 << retry_count), max_backoff_seconds)


def _money(value: Any) -> float:
    # JSON payloads carry plain numbers
    return float(Decimal(str(value)))


class OutboxService:
    """Queue, deliver and retry notification messages"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def queue_notification(
        self,
        recipient_user_id: int,
        notification_type: NotificationType,
        title: str,
        body: Optional[str],
        data: dict[str, Any],
        dedup_key: Optional[str] = None,
    ) -> OutboxMessage:
        """
        Queue one notification. With a dedup_key already present the existing
        row is returned and nothing new is queued.
        """
        if dedup_key:
            existing = await self.db.execute(
                select(OutboxMessage).where(OutboxMessage.dedup_key == dedup_key)
            )
            message = existing.scalar_one_or_none()
            if message:
                logger.debug(
                    "Outbox message already queued",
                    extra_data={"dedup_key": dedup_key, "message_id": message.id}
                )
                return message

        message = OutboxMessage(
            recipient_user_id=recipient_user_id,
            message_type=NotificationType(notification_type).value,
            message_content={"title": title, "body": body, "data": data},
            dedup_key=dedup_key,
            status=MessageStatus.PENDING,
            retry_count=0,
            max_retries=settings.OUTBOX_MAX_RETRIES,
        )
        self.db.add(message)
        await self.db.flush()
        return message

    async def queue_payment_notification(
        self,
        payment: Payment,
        driver_user_id: int,
        route_name: str,
        passenger_name: str,
    ) -> OutboxMessage:
        """Tell the driver a passenger paid"""
        amount = _money(payment.amount)
        return await self.queue_notification(
            recipient_user_id=driver_user_id,
            notification_type=NotificationType.PAYMENT,
            title=f"Pago recibido • {route_name}",
            body=f"{passenger_name} pagó {payment.amount} {settings.CURRENCY_LABEL}",
            data={
                "type": NotificationType.PAYMENT.value,
                "payment_id": payment.id,
                "passenger_id": payment.passenger_id,
                "passenger_name": passenger_name,
                "route_id": payment.route_id,
                "route_name": route_name,
                "amount": amount,
                "driver_code": payment.driver_code,
            },
            dedup_key=f"payment:{payment.id}",
        )

    async def queue_recharge_confirmed(
        self,
        recharge: Recharge,
        new_balance: Optional[Decimal] = None,
    ) -> OutboxMessage:
        body = f"Tu recarga de {recharge.amount} {settings.CURRENCY_LABEL} fue aprobada."
        data: dict[str, Any] = {
            "type": NotificationType.RECHARGE_CONFIRMED.value,
            "recharge_id": recharge.id,
            "amount": _money(recharge.amount),
        }
        if new_balance is not None:
            body += f" Nuevo saldo: {new_balance} {settings.CURRENCY_LABEL}."
            data["new_balance"] = _money(new_balance)

        return await self.queue_notification(
            recipient_user_id=recharge.user_id,
            notification_type=NotificationType.RECHARGE_CONFIRMED,
            title=RECHARGE_CONFIRMED_TITLE,
            body=body,
            data=data,
            dedup_key=f"recharge_confirmed:{recharge.id}",
        )

    async def queue_recharge_rejected(
        self,
        recharge: Recharge,
        reason: Optional[str] = None,
    ) -> OutboxMessage:
        body = f"Tu recarga de {recharge.amount} {settings.CURRENCY_LABEL} fue rechazada."
        if reason:
            body += f" Motivo: {reason}"
        return await self.queue_notification(
            recipient_user_id=recharge.user_id,
            notification_type=NotificationType.RECHARGE_REJECTED,
            title=RECHARGE_REJECTED_TITLE,
            body=body,
            data={
                "type": NotificationType.RECHARGE_REJECTED.value,
                "recharge_id": recharge.id,
                "amount": _money(recharge.amount),
                "reason": reason,
            },
            dedup_key=f"recharge_rejected:{recharge.id}",
        )

    async def queue_recharge_pending(
        self,
        recharge: Recharge,
        admin_ids: Iterable[int],
        requester_name: str,
    ) -> List[OutboxMessage]:
        """Fan a new recharge request out to every active admin"""
        messages = []
        for admin_id in admin_ids:
            message = await self.queue_notification(
                recipient_user_id=admin_id,
                notification_type=NotificationType.RECHARGE_PENDING,
                title=RECHARGE_PENDING_TITLE,
                body=(
                    f"{requester_name} solicitó una recarga de "
                    f"{recharge.amount} {settings.CURRENCY_LABEL}"
                ),
                data={
                    "type": NotificationType.RECHARGE_PENDING.value,
                    "recharge_id": recharge.id,
                    "user_id": recharge.user_id,
                    "amount": _money(recharge.amount),
                    "reference": recharge.reference,
                },
                dedup_key=f"recharge_pending:{recharge.id}:{admin_id}",
            )
            messages.append(message)
        return messages

    async def get_pending_messages(self, limit: int = 100) -> List[OutboxMessage]:
        """Pending messages whose retry time has come, oldest first"""
        now = datetime.utcnow()
        result = await self.db.execute(
            select(OutboxMessage)
            .where(
                OutboxMessage.status == MessageStatus.PENDING,
                or_(
                    OutboxMessage.next_retry_at.is_(None),
                    OutboxMessage.next_retry_at <= now,
                ),
            )
            .order_by(OutboxMessage.created_at, OutboxMessage.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_as_failed(self, message_id: int, error: str) -> None:
        """Count a failed attempt; schedule a retry or give up after max_retries"""
        result = await self.db.execute(
            select(OutboxMessage).where(OutboxMessage.id == message_id)
        )
        message = result.scalar_one_or_none()
        if message:
            message.retry_count = (message.retry_count or 0) + 1
            message.last_error = error[:1000]

            if message.retry_count >= message.max_retries:
                message.status = MessageStatus.FAILED
                logger.error(
                    "Outbox message gave up after max retries",
                    extra_data={"message_id": message_id, "retry_count": message.retry_count}
                )
            else:
                message.status = MessageStatus.PENDING
                backoff_seconds = _calculate_backoff_seconds(
                    message.retry_count,
                    base_seconds=settings.OUTBOX_RETRY_BASE_SECONDS,
                    max_backoff_seconds=settings.OUTBOX_MAX_BACKOFF_SECONDS,
                )
                message.next_retry_at = datetime.utcnow() + timedelta(
                    seconds=backoff_seconds
                )

            await self.db.commit()

    async def deliver(self, message_id: int) -> bool:
        """
        Write the Notification for one outbox message and mark it sent.

        The notification log is checked for the same event first, so a
        message retried after a partial failure never produces a duplicate.
        Returns False (and records the failure) when the write fails.
        """
        result = await self.db.execute(
            select(OutboxMessage)
            .where(OutboxMessage.id == message_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        message = result.scalar_one_or_none()
        if not message or message.status != MessageStatus.PENDING:
            return message is not None and message.status == MessageStatus.SENT

        try:
            notification_type = NotificationType(message.message_type)
            content = message.message_content or {}
            data = content.get("data") or {}
            sink = NotificationService(self.db)

            already_written = await sink.exists_for_event(
                notification_type,
                data.get(notification_type.entity_key),
                user_id=message.recipient_user_id,
            )
            if not already_written:
                await sink.append(
                    user_id=message.recipient_user_id,
                    title=content.get("title") or "",
                    body=content.get("body"),
                    data=data,
                )

            message.status = MessageStatus.SENT
            message.processed_at = datetime.utcnow()
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(
                "Notification delivery failed",
                extra_data={"message_id": message_id, "error": str(e)},
                exc_info=True
            )
            await self.mark_as_failed(message_id, str(e))
            return False

        logger.info(
            "Notification delivered",
            extra_data={
                "message_id": message_id,
                "type": notification_type.value,
                "recipient_user_id": message.recipient_user_id,
                "deduplicated": already_written,
            }
        )
        return True

    async def try_deliver(self, message_ids: Iterable[int]) -> int:
        """
        Best-effort inline delivery right after the business commit.

        Errors are logged and left for the worker; the count of delivered
        messages is returned.
        """
        delivered = 0
        for message_id in message_ids:
            try:
                if await self.deliver(message_id):
                    delivered += 1
            except Exception as e:
                logger.error(
                    "Inline notification delivery failed, left for the outbox worker",
                    extra_data={"message_id": message_id, "error": str(e)},
                    exc_info=True
                )
        return delivered

    async def process_pending(self, limit: Optional[int] = None) -> dict[str, int]:
        """Deliver one batch of due messages"""
        messages = await self.get_pending_messages(limit=limit or settings.OUTBOX_BATCH_SIZE)
        message_ids = [m.id for m in messages]

        stats = {"processed": 0, "sent": 0, "failed": 0}
        for message_id in message_ids:
            stats["processed"] += 1
            try:
                sent = await self.deliver(message_id)
            except Exception as e:
                logger.error(
                    "Outbox message processing error",
                    extra_data={"message_id": message_id, "error": str(e)},
                    exc_info=True
                )
                sent = False
            stats["sent" if sent else "failed"] += 1
        return stats

    async def cleanup_sent(self, older_than_days: Optional[int] = None) -> int:
        """Delete sent messages processed more than ``older_than_days`` ago"""
        days = settings.OUTBOX_RETENTION_DAYS if older_than_days is None else older_than_days
        cutoff = datetime.utcnow() - timedelta(days=days)
        result = await self.db.execute(
            delete(OutboxMessage).where(
                OutboxMessage.status == MessageStatus.SENT,
                OutboxMessage.processed_at < cutoff,
            )
        )
        await self.db.commit()
        return result.rowcount or 0

    async def backlog(self) -> Dict[str, int]:
        """Undelivered messages by status, for the readiness probe"""
        result = await self.db.execute(
            select(OutboxMessage.status, func.count(OutboxMessage.id))
            .where(OutboxMessage.status.in_([MessageStatus.PENDING, MessageStatus.FAILED]))
            .group_by(OutboxMessage.status)
        )
        counts = {MessageStatus.PENDING.value: 0, MessageStatus.FAILED.value: 0}
        for status, count in result.all():
            counts[status.value] = count
        return counts
