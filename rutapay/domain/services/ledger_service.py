"""
Ledger Service - Transactional primitives over balances, payments and recharges

Every mutating sequence runs inside ``transaction()``. Rows whose values are
read-then-written (the recharge being decided, the user being credited) are
locked with SELECT ... FOR UPDATE, so concurrent confirmers serialize on the
database and never on in-process state.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, AsyncIterator

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.exceptions import (
    AppException,
    InsufficientBalanceError,
    InvalidAmountError,
    RechargeNotFoundError,
    TransactionFailureError,
    UserNotFoundError,
)
from rutapay.core.logging import get_logger
from rutapay.db.models.payment import Payment
from rutapay.db.models.recharge import Recharge, RechargeStatus
from rutapay.db.models.user import User

logger = get_logger(__name__)

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Parse an amount into a 2-decimal Decimal; InvalidAmountError if it is not a number"""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidAmountError(value) from e
    if not amount.is_finite():
        raise InvalidAmountError(value)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_positive_money(value: Any) -> Decimal:
    amount = to_money(value)
    if amount <= 0:
        raise InvalidAmountError(value)
    return amount


class LedgerService:
    """Atomic mutations of wallet balances, payment rows and recharge state"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self, operation: str) -> AsyncIterator[None]:
        """
        Commit on success, roll back everything on failure.

        Application errors are re-raised unchanged after the rollback; database
        errors become TransactionFailureError so callers see one failure kind.
        """
        try:
            yield
            await self.db.commit()
        except AppException:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Transaction rolled back: {operation}",
                extra_data={"operation": operation, "error": str(e)},
                exc_info=True
            )
            raise TransactionFailureError(operation, e) from e
        except Exception:
            await self.db.rollback()
            raise

    async def lock_recharge(self, recharge_id: int) -> Recharge:
        """Lock and re-read a recharge row"""
        result = await self.db.execute(
            select(Recharge)
            .where(Recharge.id == recharge_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        recharge = result.scalar_one_or_none()
        if not recharge:
            raise RechargeNotFoundError(recharge_id)
        return recharge

    async def lock_user(self, user_id: int) -> User:
        """Lock and re-read a user row before touching its balance"""
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def credit_user_balance(self, user_id: int, amount: Any) -> User:
        """balance += amount; amount must be > 0"""
        amount_decimal = to_positive_money(amount)
        user = await self.lock_user(user_id)

        user.balance = to_money(user.balance or 0) + amount_decimal

        logger.info(
            "User balance credited",
            extra_data={"user_id": user_id, "amount": amount_decimal, "balance_after": user.balance}
        )
        return user

    async def debit_user_balance(self, user_id: int, amount: Any) -> User:
        """balance -= amount; fails with InsufficientBalanceError instead of going negative"""
        amount_decimal = to_positive_money(amount)
        user = await self.lock_user(user_id)

        current = to_money(user.balance or 0)
        if current < amount_decimal:
            raise InsufficientBalanceError(user_id, current, amount_decimal)
        user.balance = current - amount_decimal

        logger.info(
            "User balance debited",
            extra_data={"user_id": user_id, "amount": amount_decimal, "balance_after": user.balance}
        )
        return user

    async def insert_payment(
        self,
        passenger_id: int,
        driver_id: int,
        amount: Decimal,
        route_id: int,
        driver_code: str | None = None,
    ) -> Payment:
        """Insert one payment row; flushed so the id and timestamp are available"""
        payment = Payment(
            passenger_id=passenger_id,
            driver_id=driver_id,
            driver_code=driver_code,
            amount=to_money(amount),
            route_id=route_id,
            created_at=datetime.utcnow(),
        )
        self.db.add(payment)
        await self.db.flush()
        return payment

    async def set_recharge_status(
        self,
        recharge: Recharge,
        status: RechargeStatus,
        mark_applied: bool = False,
        reviewed_by: int | None = None,
        rejection_reason: str | None = None,
    ) -> Recharge:
        """Move a locked recharge to ``status``; optionally stamp it as applied"""
        now = datetime.utcnow()
        recharge.status = status
        recharge.updated_at = now
        if mark_applied:
            recharge.applied = True
            recharge.applied_at = recharge.applied_at or now
        if reviewed_by is not None:
            recharge.reviewed_by = reviewed_by
        if rejection_reason is not None:
            recharge.rejection_reason = rejection_reason
        return recharge
