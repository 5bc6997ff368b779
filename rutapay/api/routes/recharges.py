"""
Recharge API Routes
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rutapay.api.dependencies.auth import require_roles
from rutapay.db.database import get_db
from rutapay.db.models.recharge import RechargeStatus
from rutapay.db.models.user import User, UserRole
from rutapay.domain.services.recharge_service import RechargeDecision, RechargeService

router = APIRouter()


class RechargeCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[Decimal] = None
    reference: Optional[str] = None
    transfer_date: Optional[date] = Field(default=None, alias="date")


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class RechargeResponse(BaseModel):
    id: int
    user_id: int
    amount: float
    reference: str
    transfer_date: Optional[date] = None
    status: RechargeStatus
    applied: Optional[bool] = None
    reviewed_by: Optional[int] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PendingRechargeResponse(RechargeResponse):
    user_name: Optional[str] = None
    user_email: Optional[str] = None


class RechargeDecisionResponse(BaseModel):
    message: str
    already_processed: bool
    credited: bool
    recharge: RechargeResponse


def _decision_response(decision: RechargeDecision) -> RechargeDecisionResponse:
    return RechargeDecisionResponse(
        message=decision.message,
        already_processed=decision.already_processed,
        credited=decision.credited,
        recharge=RechargeResponse.model_validate(decision.recharge),
    )


@router.post(
    "",
    response_model=RechargeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a wallet recharge",
)
async def create_recharge(
    body: RechargeCreate,
    user: User = Depends(require_roles(UserRole.PASSENGER)),
    db: AsyncSession = Depends(get_db),
):
    service = RechargeService(db)
    recharge = await service.create(
        user_id=user.id,
        amount=body.amount,
        reference=body.reference,
        transfer_date=body.transfer_date,
    )
    return RechargeResponse.model_validate(recharge)


@router.get(
    "/pending",
    response_model=List[PendingRechargeResponse],
    summary="Pending recharges awaiting review",
)
async def list_pending(
    admin: User = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    service = RechargeService(db)
    rows = await service.list_pending()
    return [
        PendingRechargeResponse(
            **RechargeResponse.model_validate(recharge).model_dump(),
            user_name=user_name,
            user_email=user_email,
        )
        for recharge, user_name, user_email in rows
    ]


@router.put(
    "/{recharge_id}/confirm",
    response_model=RechargeDecisionResponse,
    summary="Confirm a recharge and credit the wallet once",
    description="Repeating the call on a confirmed recharge returns already_processed=true and credits nothing.",
)
async def confirm_recharge(
    recharge_id: int,
    admin: User = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    service = RechargeService(db)
    decision = await service.confirm(recharge_id, acting_admin_id=admin.id)
    return _decision_response(decision)


@router.post(
    "/{recharge_id}/reject",
    response_model=RechargeDecisionResponse,
    summary="Reject a pending recharge",
)
async def reject_recharge(
    recharge_id: int,
    body: Optional[RejectRequest] = Body(default=None),
    admin: User = Depends(require_roles(UserRole.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    service = RechargeService(db)
    decision = await service.reject(
        recharge_id,
        reason=body.reason if body else None,
        acting_admin_id=admin.id,
    )
    return _decision_response(decision)
