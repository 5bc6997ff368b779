"""
Recharge Service - Wallet top-up requests and their admin approval

A confirmed recharge credits its user's balance exactly once. The recharge
row is locked before anything is decided, so concurrent confirmations of the
same id serialize and the later ones observe the first one's outcome.
"""
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.exceptions import (
    InvalidRechargeTransitionError,
    UserNotFoundError,
    ValidationException,
)
from rutapay.core.logging import get_logger
from rutapay.db.models.notification import NotificationType
from rutapay.db.models.recharge import Recharge, RechargeStatus
from rutapay.db.models.user import User, UserRole
from rutapay.domain.services.ledger_service import LedgerService, to_positive_money
from rutapay.domain.services.notification_service import NotificationService
from rutapay.domain.services.outbox_service import OutboxService, RECHARGE_CONFIRMED_TITLE

logger = get_logger(__name__)


@dataclass
class RechargeDecision:
    """Outcome of confirm/reject; repeating a decision is not an error"""
    recharge: Recharge
    already_processed: bool
    credited: bool
    message: str


class RechargeService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = LedgerService(db)
        self.outbox = OutboxService(db)
        self.notifications = NotificationService(db)

    async def create(
        self,
        user_id: int,
        amount: Any,
        reference: Optional[str],
        transfer_date: Optional[date] = None,
    ) -> Recharge:
        """Register a pending top-up and tell every active admin about it"""
        amount_decimal = to_positive_money(amount)
        reference = (reference or "").strip()
        if not reference:
            raise ValidationException("A payment reference is required", field="reference")

        async with self.ledger.transaction("create_recharge"):
            requester = await self.db.get(User, user_id)
            if not requester:
                raise UserNotFoundError(user_id)
            requester_name = requester.display_name

            recharge = Recharge(
                user_id=user_id,
                amount=amount_decimal,
                reference=reference,
                transfer_date=transfer_date,
                status=RechargeStatus.PENDING,
                applied=False,
            )
            self.db.add(recharge)
            await self.db.flush()

            admin_ids = await self._active_admin_ids()
            messages = await self.outbox.queue_recharge_pending(
                recharge, admin_ids, requester_name=requester_name
            )
            message_ids = [m.id for m in messages]

        logger.info(
            "Recharge requested",
            extra_data={
                "recharge_id": recharge.id,
                "user_id": user_id,
                "amount": amount_decimal,
                "admins_notified": len(message_ids),
            }
        )

        self.db.expunge(recharge)
        await self.outbox.try_deliver(message_ids)
        return recharge

    async def _active_admin_ids(self) -> List[int]:
        result = await self.db.execute(
            select(User.id).where(User.role == UserRole.ADMIN, User.is_active.is_(True))
        )
        return list(result.scalars().all())

    async def list_pending(self) -> List[Tuple[Recharge, Optional[str], Optional[str]]]:
        """Pending recharges, oldest first, with the requester's name and email"""
        result = await self.db.execute(
            select(Recharge, User.name, User.email)
            .join(User, User.id == Recharge.user_id)
            .where(Recharge.status == RechargeStatus.PENDING)
            .order_by(Recharge.created_at, Recharge.id)
        )
        return [(row[0], row[1], row[2]) for row in result.all()]

    async def _already_applied(self, recharge: Recharge) -> bool:
        """
        Whether the amount has already reached the balance.

        The flag decides when it is set. Rows without it (NULL) fall back to
        the notification log: a recharge_confirmed notification for this id
        means an earlier confirmation credited it.
        """
        if recharge.applied is not None:
            return bool(recharge.applied)
        return await self.notifications.exists_for_event(
            NotificationType.RECHARGE_CONFIRMED,
            recharge.id,
            legacy_title=RECHARGE_CONFIRMED_TITLE,
        )

    async def confirm(self, recharge_id: int, acting_admin_id: Optional[int] = None) -> RechargeDecision:
        """
        pendiente -> confirmada, crediting the balance unless already applied.

        Confirming an already confirmed-and-applied recharge changes nothing.
        Raises RechargeNotFoundError, InvalidRechargeTransitionError for a
        rejected recharge, TransactionFailureError on database errors.
        """
        message_ids: List[int] = []

        async with self.ledger.transaction("confirm_recharge"):
            recharge = await self.ledger.lock_recharge(recharge_id)

            if recharge.status == RechargeStatus.REJECTED:
                raise InvalidRechargeTransitionError(
                    recharge_id, recharge.status.value, RechargeStatus.CONFIRMED.value
                )

            applied = await self._already_applied(recharge)

            if recharge.status == RechargeStatus.CONFIRMED and applied:
                decision = RechargeDecision(
                    recharge=recharge,
                    already_processed=True,
                    credited=False,
                    message="Recarga ya confirmada",
                )
            else:
                await self.ledger.set_recharge_status(
                    recharge,
                    RechargeStatus.CONFIRMED,
                    mark_applied=True,
                    reviewed_by=acting_admin_id,
                )

                new_balance = None
                if not applied:
                    user = await self.ledger.credit_user_balance(recharge.user_id, recharge.amount)
                    new_balance = user.balance

                message = await self.outbox.queue_recharge_confirmed(recharge, new_balance=new_balance)
                message_ids.append(message.id)
                decision = RechargeDecision(
                    recharge=recharge,
                    already_processed=False,
                    credited=not applied,
                    message="Recarga confirmada",
                )

        logger.info(
            "Recharge confirmation processed",
            extra_data={
                "recharge_id": recharge_id,
                "user_id": decision.recharge.user_id,
                "amount": decision.recharge.amount,
                "credited": decision.credited,
                "already_processed": decision.already_processed,
                "admin_id": acting_admin_id,
            }
        )

        self.db.expunge(decision.recharge)
        await self.outbox.try_deliver(message_ids)
        return decision

    async def reject(
        self,
        recharge_id: int,
        reason: Optional[str] = None,
        acting_admin_id: Optional[int] = None,
    ) -> RechargeDecision:
        """pendiente -> rechazada; the balance is never touched"""
        reason = (reason or "").strip() or None
        message_ids: List[int] = []

        async with self.ledger.transaction("reject_recharge"):
            recharge = await self.ledger.lock_recharge(recharge_id)

            if recharge.status == RechargeStatus.CONFIRMED:
                raise InvalidRechargeTransitionError(
                    recharge_id, recharge.status.value, RechargeStatus.REJECTED.value
                )

            if recharge.status == RechargeStatus.REJECTED:
                decision = RechargeDecision(
                    recharge=recharge,
                    already_processed=True,
                    credited=False,
                    message="Recarga ya rechazada",
                )
            else:
                await self.ledger.set_recharge_status(
                    recharge,
                    RechargeStatus.REJECTED,
                    reviewed_by=acting_admin_id,
                    rejection_reason=reason,
                )
                message = await self.outbox.queue_recharge_rejected(recharge, reason=reason)
                message_ids.append(message.id)
                decision = RechargeDecision(
                    recharge=recharge,
                    already_processed=False,
                    credited=False,
                    message="Recarga rechazada",
                )

        logger.info(
            "Recharge rejection processed",
            extra_data={
                "recharge_id": recharge_id,
                "already_processed": decision.already_processed,
                "admin_id": acting_admin_id,
            }
        )

        self.db.expunge(decision.recharge)
        await self.outbox.try_deliver(message_ids)
        return decision
