"""
Driver Service - Driver creation with code allocation, lookup and earnings views
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.core.config import settings
from rutapay.core.exceptions import DriverNotFoundError, ValidationException
from rutapay.core.logging import get_logger
from rutapay.db.models.driver import Driver, DriverCodeCounter
from rutapay.db.models.payment import Payment
from rutapay.db.models.route import Route
from rutapay.db.models.user import User, UserRole
from rutapay.domain.services.ledger_service import LedgerService, to_money

logger = get_logger(__name__)

_COUNTER_ROW_ID = 1


@dataclass
class DriverPaymentRow:
    payment: Payment
    route_name: Optional[str]
    passenger_name: Optional[str]


@dataclass
class RouteTotal:
    route_id: int
    route_name: str
    total: Decimal
    count: int


@dataclass
class DailySummary:
    day: date
    total: Decimal = Decimal("0.00")
    payments_count: int = 0
    unique_passengers: int = 0
    routes: List[RouteTotal] = field(default_factory=list)


class DriverService:
    """Driver lifecycle pieces the payment path depends on"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = LedgerService(db)

    async def create_driver(
        self,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        license_number: Optional[str] = None,
        vehicle_type: Optional[str] = None,
        vehicle_plate: Optional[str] = None,
    ) -> Driver:
        """Create the driver's User and Driver rows together with a fresh code"""
        name = (name or "").strip()
        if not name:
            raise ValidationException("Driver name is required", field="name")
        email = email.strip().lower() if email else None

        if email:
            existing = await self.db.execute(select(User.id).where(User.email == email))
            if existing.scalar_one_or_none() is not None:
                raise ValidationException("Email already registered", field="email")

        async with self.ledger.transaction("create_driver"):
            user = User(name=name, email=email, phone=phone, role=UserRole.DRIVER, is_active=True)
            self.db.add(user)
            await self.db.flush()

            code = await self.allocate_code()
            driver = Driver(
                user_id=user.id,
                driver_code=code,
                license_number=license_number,
                vehicle_type=vehicle_type,
                vehicle_plate=vehicle_plate,
                is_available=True,
            )
            self.db.add(driver)
            await self.db.flush()

        logger.info(
            "Driver created",
            extra_data={"driver_id": driver.id, "user_id": user.id, "driver_code": code}
        )
        return driver

    async def ensure_code_counter(self) -> int:
        """
        Create the code counter row if it is missing and return its value.

        Runs at startup so allocate_code always finds a row to lock; two
        first-ever creations would otherwise both try to insert it.
        """
        result = await self.db.execute(
            select(DriverCodeCounter.last_code).where(DriverCodeCounter.id == _COUNTER_ROW_ID)
        )
        last_code = result.scalar_one_or_none()
        if last_code is not None:
            return last_code

        seed = max(await self._max_numeric_code(), settings.DRIVER_CODE_START - 1)
        self.db.add(DriverCodeCounter(id=_COUNTER_ROW_ID, last_code=seed))
        try:
            await self.db.commit()
        except IntegrityError:
            # another instance seeded it first
            await self.db.rollback()
            result = await self.db.execute(
                select(DriverCodeCounter.last_code).where(DriverCodeCounter.id == _COUNTER_ROW_ID)
            )
            return result.scalar_one()

        logger.info("Driver code counter created", extra_data={"last_code": seed})
        return seed

    async def allocate_code(self) -> str:
        """
        Next driver code. Must run inside a transaction: the counter row stays
        locked until the caller commits, so concurrent creations serialize.
        """
        result = await self.db.execute(
            select(DriverCodeCounter)
            .where(DriverCodeCounter.id == _COUNTER_ROW_ID)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = result.scalar_one_or_none()
        highest_existing = await self._max_numeric_code()

        if counter is None:
            # only when ensure_code_counter has not run against this database
            counter = DriverCodeCounter(
                id=_COUNTER_ROW_ID,
                last_code=max(highest_existing, settings.DRIVER_CODE_START - 1),
            )
            self.db.add(counter)

        # codes typed in by hand must not be handed out again
        counter.last_code = max(counter.last_code, highest_existing) + 1
        await self.db.flush()
        return str(counter.last_code)

    async def _max_numeric_code(self) -> int:
        result = await self.db.execute(select(Driver.driver_code))
        codes = [int(c) for c in result.scalars().all() if c and c.isdigit()]
        return max(codes, default=0)

    def _active_driver_query(self):
        return select(Driver).join(User, User.id == Driver.user_id).where(User.is_active.is_(True))

    async def resolve_by_code(self, driver_code: str) -> Driver:
        code = (driver_code or "").strip()
        if not code:
            raise DriverNotFoundError(driver_code)
        result = await self.db.execute(
            self._active_driver_query().where(Driver.driver_code == code)
        )
        driver = result.scalar_one_or_none()
        if not driver:
            raise DriverNotFoundError(code)
        return driver

    async def resolve_by_id(self, driver_id: int) -> Driver:
        result = await self.db.execute(
            self._active_driver_query().where(Driver.id == driver_id)
        )
        driver = result.scalar_one_or_none()
        if not driver:
            raise DriverNotFoundError(driver_id)
        return driver

    async def get_by_user_id(self, user_id: int) -> Driver:
        """Driver profile of a logged-in driver user"""
        result = await self.db.execute(select(Driver).where(Driver.user_id == user_id))
        driver = result.scalar_one_or_none()
        if not driver:
            raise DriverNotFoundError(f"user:{user_id}")
        return driver

    async def list_payments(
        self,
        driver: Driver,
        limit: int = 50,
        offset: int = 0,
    ) -> List[DriverPaymentRow]:
        result = await self.db.execute(
            select(Payment, Route.name, User.name)
            .outerjoin(Route, Route.id == Payment.route_id)
            .outerjoin(User, User.id == Payment.passenger_id)
            .where(Payment.driver_id == driver.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset(max(offset, 0))
            .limit(max(min(limit, 200), 1))
        )
        return [
            DriverPaymentRow(payment=payment, route_name=route_name, passenger_name=passenger_name)
            for payment, route_name, passenger_name in result.all()
        ]

    async def daily_summary(self, driver: Driver, day: Optional[date] = None) -> DailySummary:
        """Totals for one calendar day (UTC), per route and overall"""
        day = day or datetime.utcnow().date()
        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)
        in_day = (
            Payment.driver_id == driver.id,
            Payment.created_at >= start,
            Payment.created_at < end,
        )

        per_route = await self.db.execute(
            select(
                Payment.route_id,
                Route.name,
                func.coalesce(func.sum(Payment.amount), 0),
                func.count(Payment.id),
            )
            .outerjoin(Route, Route.id == Payment.route_id)
            .where(*in_day)
            .group_by(Payment.route_id, Route.name)
            .order_by(Route.name)
        )
        routes = [
            RouteTotal(
                route_id=route_id,
                route_name=route_name or f"Ruta {route_id}",
                total=to_money(total),
                count=int(count),
            )
            for route_id, route_name, total, count in per_route.all()
        ]

        totals = await self.db.execute(
            select(
                func.count(Payment.id),
                func.count(distinct(Payment.passenger_id)),
            ).where(*in_day)
        )
        payments_count, unique_passengers = totals.one()

        return DailySummary(
            day=day,
            total=to_money(sum((r.total for r in routes), Decimal("0.00"))),
            payments_count=int(payments_count),
            unique_passengers=int(unique_passengers),
            routes=routes,
        )
