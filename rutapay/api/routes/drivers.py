"""
Driver API Routes
"""
from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.api.dependencies.auth import require_roles
from rutapay.db.database import get_db
from rutapay.db.models.user import User, UserRole
from rutapay.domain.services.driver_service import DriverService

router = APIRouter()


class DriverCreate(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_plate: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        return v


class DriverResponse(BaseModel):
    id: int
    user_id: int
    driver_code: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    license_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    vehicle_plate: Optional[str] = None
    is_available: bool


class DriverPaymentResponse(BaseModel):
    id: int
    passenger_id: int
    passenger_name: Optional[str] = None
    route_id: int
    route_name: Optional[str] = None
    amount: float
    driver_code: Optional[str] = None
    created_at: datetime


class RouteTotalResponse(BaseModel):
    route_id: int
    route_name: str
    total: float
    count: int


class DailySummaryResponse(BaseModel):
    day: date
    total: float
    payments_count: int
    unique_passengers: int
    routes: List[RouteTotalResponse]


@router.post(
    "",
    response_model=DriverResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a driver and allocate its code",
)
async def create_driver(
    body: DriverCreate,
    admin: User = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    service = DriverService(db)
    driver = await service.create_driver(
        name=body.name,
        email=body.email,
        phone=body.phone,
        license_number=body.license_number,
        vehicle_type=body.vehicle_type,
        vehicle_plate=body.vehicle_plate,
    )
    return DriverResponse(
        id=driver.id,
        user_id=driver.user_id,
        driver_code=driver.driver_code,
        name=body.name,
        email=body.email.strip().lower() if body.email else None,
        phone=body.phone,
        license_number=driver.license_number,
        vehicle_type=driver.vehicle_type,
        vehicle_plate=driver.vehicle_plate,
        is_available=driver.is_available,
    )


@router.get(
    "/payments",
    response_model=List[DriverPaymentResponse],
    summary="Payments collected by the current driver, newest first",
)
async def list_driver_payments(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(require_roles(UserRole.DRIVER)),
    db: AsyncSession = Depends(get_db),
):
    service = DriverService(db)
    driver = await service.get_by_user_id(user.id)
    rows = await service.list_payments(driver, limit=limit, offset=offset)
    return [
        DriverPaymentResponse(
            id=row.payment.id,
            passenger_id=row.payment.passenger_id,
            passenger_name=row.passenger_name,
            route_id=row.payment.route_id,
            route_name=row.route_name,
            amount=float(row.payment.amount),
            driver_code=row.payment.driver_code,
            created_at=row.payment.created_at,
        )
        for row in rows
    ]


@router.get(
    "/payments/summary",
    response_model=DailySummaryResponse,
    summary="Totals for one day, per route",
)
async def driver_daily_summary(
    day: Optional[date] = Query(default=None, alias="date"),
    user: User = Depends(require_roles(UserRole.DRIVER)),
    db: AsyncSession = Depends(get_db),
):
    service = DriverService(db)
    driver = await service.get_by_user_id(user.id)
    summary = await service.daily_summary(driver, day)
    return DailySummaryResponse(
        day=summary.day,
        total=float(summary.total),
        payments_count=summary.payments_count,
        unique_passengers=summary.unique_passengers,
        routes=[
            RouteTotalResponse(
                route_id=r.route_id,
                route_name=r.route_name,
                total=float(r.total),
                count=r.count,
            )
            for r in summary.routes
        ],
    )
