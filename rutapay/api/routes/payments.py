"""
Payment API Routes
"""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.api.dependencies.auth import require_roles
from rutapay.db.database import get_db
from rutapay.db.models.user import User, UserRole
from rutapay.domain.services.payment_service import PaymentService

router = APIRouter()


class PayRequest(BaseModel):
    """Either driver_code or driver_id names the driver"""
    driver_code: Optional[str] = None
    driver_id: Optional[int] = None
    route_id: Optional[int] = None

    @field_validator("driver_code", mode="before")
    @classmethod
    def coerce_code(cls, v):
        # codes are numeric strings, but clients send them as numbers too
        if isinstance(v, int):
            return str(v)
        return v


class PaymentResponse(BaseModel):
    id: int
    passenger_id: int
    driver_id: int
    driver_code: Optional[str]
    route_id: int
    amount: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PayResponse(BaseModel):
    message: str
    payment: PaymentResponse
    new_balance: Optional[float] = None


@router.post(
    "/pay",
    response_model=PayResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pay a route fare to a driver",
    description="Records one payment of the route's current fare to the driver with the given code.",
)
async def pay(
    body: PayRequest,
    passenger: User = Depends(require_roles(UserRole.PASSENGER)),
    db: AsyncSession = Depends(get_db),
):
    service = PaymentService(db)
    result = await service.pay(
        passenger_user_id=passenger.id,
        route_id=body.route_id,
        driver_code=body.driver_code,
        driver_id=body.driver_id,
    )
    return PayResponse(
        message="Pago realizado",
        payment=PaymentResponse.model_validate(result.payment),
        new_balance=float(result.new_balance) if result.new_balance is not None else None,
    )
