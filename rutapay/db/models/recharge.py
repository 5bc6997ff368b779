"""
Recharge Model - Wallet top-up request awaiting admin review

State machine: pendiente -> confirmada | rechazada, both terminal.
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Boolean, Text,
    Enum as SQLEnum, CheckConstraint,
)
from sqlalchemy.orm import relationship

from rutapay.db.database import Base


class RechargeStatus(str, enum.Enum):
    PENDING = "pendiente"
    CONFIRMED = "confirmada"
    REJECTED = "rechazada"

    @property
    def is_terminal(self) -> bool:
        return self in (RechargeStatus.CONFIRMED, RechargeStatus.REJECTED)


class Recharge(Base):
    __tablename__ = "recharges"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_recharges_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    # Proof-of-payment text (bank transfer number, QR receipt, ...)
    reference = Column(String(255), nullable=False)
    transfer_date = Column(Date, nullable=True)

    status = Column(
        SQLEnum(
            RechargeStatus,
            name="recharge_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=RechargeStatus.PENDING,
        nullable=False,
        index=True,
    )

    # True/False are authoritative. NULL marks rows carried over from the
    # schema that had no such column; see RechargeService._already_applied.
    applied = Column(Boolean, default=False, nullable=True)
    applied_at = Column(DateTime, nullable=True)

    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", foreign_keys=[user_id])
