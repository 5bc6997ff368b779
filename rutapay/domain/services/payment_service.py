"""
Payment Service - One passenger -> driver fare payment

The payment row is the durable record of value transfer. The driver's
notification is queued in the same transaction and delivered after commit;
a delivery failure is logged and never reaches the caller.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.config import settings
from rutapay.core.exceptions import RouteNotFoundError, ValidationException
from rutapay.core.logging import get_logger
from rutapay.db.models.payment import Payment
from rutapay.db.models.route import Route
from rutapay.db.models.user import User
from rutapay.domain.services.driver_service import DriverService
from rutapay.domain.services.ledger_service import LedgerService, to_money
from rutapay.domain.services.outbox_service import OutboxService

logger = get_logger(__name__)

DEFAULT_PASSENGER_NAME = "Pasajero"


@dataclass
class PaymentResult:
    payment: Payment
    # only set when the fare was debited from the wallet
    new_balance: Optional[Decimal] = None


class PaymentService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = LedgerService(db)
        self.outbox = OutboxService(db)
        self.drivers = DriverService(db)

    async def pay(
        self,
        passenger_user_id: int,
        route_id: Optional[int],
        driver_code: Optional[str] = None,
        driver_id: Optional[int] = None,
    ) -> PaymentResult:
        """
        Pay the current fare of ``route_id`` to the driver named by
        ``driver_code`` (or ``driver_id``).

        Raises DriverNotFoundError / RouteNotFoundError before anything is
        written, InsufficientBalanceError when the wallet policy debits and
        the balance is short, TransactionFailureError if the insert fails.
        """
        if route_id is None:
            raise ValidationException("route_id is required", field="route_id")
        if driver_id is None and not (driver_code and driver_code.strip()):
            raise ValidationException("driver_code is required", field="driver_code")

        if driver_id is not None:
            driver = await self.drivers.resolve_by_id(driver_id)
        else:
            driver = await self.drivers.resolve_by_code(driver_code)
        # plain values; a later rollback expires ORM instances
        driver_pk = driver.id
        driver_user_id = driver.user_id
        resolved_code = driver.driver_code

        route = await self._get_active_route(route_id)
        route_name = route.name
        fare = to_money(route.fare)

        passenger_name = await self._passenger_name(passenger_user_id)

        new_balance = None
        async with self.ledger.transaction("pay"):
            if settings.PAYMENT_DEBITS_WALLET and fare > 0:
                passenger = await self.ledger.debit_user_balance(passenger_user_id, fare)
                new_balance = passenger.balance

            payment = await self.ledger.insert_payment(
                passenger_id=passenger_user_id,
                driver_id=driver_pk,
                amount=fare,
                route_id=route_id,
                driver_code=resolved_code,
            )
            message = await self.outbox.queue_payment_notification(
                payment,
                driver_user_id=driver_user_id,
                route_name=route_name,
                passenger_name=passenger_name,
            )

        logger.info(
            "Payment recorded",
            extra_data={
                "payment_id": payment.id,
                "passenger_id": passenger_user_id,
                "driver_id": payment.driver_id,
                "route_id": route_id,
                "amount": fare,
                "wallet_debited": new_balance is not None,
            }
        )

        # keep the committed payment loaded for the caller even if delivery rolls back
        self.db.expunge(payment)
        await self.outbox.try_deliver([message.id])

        return PaymentResult(payment=payment, new_balance=new_balance)

    async def _get_active_route(self, route_id: int) -> Route:
        result = await self.db.execute(
            select(Route).where(Route.id == route_id, Route.is_active.is_(True))
        )
        route = result.scalar_one_or_none()
        if not route:
            raise RouteNotFoundError(route_id)
        return route

    async def _passenger_name(self, passenger_user_id: int) -> str:
        """Display name for the notification text; falls back to a generic label"""
        try:
            result = await self.db.execute(select(User.name).where(User.id == passenger_user_id))
            name = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(
                "Passenger name lookup failed",
                extra_data={"passenger_id": passenger_user_id, "error": str(e)}
            )
            return DEFAULT_PASSENGER_NAME
        return name or DEFAULT_PASSENGER_NAME
