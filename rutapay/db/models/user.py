"""
User Model - Passengers, Drivers and Admins with their wallet balance
"""
import enum
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Boolean, Numeric, CheckConstraint

from rutapay.db.database import Base


class UserRole(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"


class User(Base):
    """Identity plus wallet.

    ``balance`` only changes through a confirmed recharge (or, when the
    PAYMENT_DEBITS_WALLET policy is on, a fare debit).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_users_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=True)
    email = Column(String(150), unique=True, index=True, nullable=True)
    phone = Column(String(20), nullable=True)
    role = Column(
        SQLEnum(UserRole, name="user_role", values_callable=lambda x: [e.value for e in x]),
        default=UserRole.PASSENGER,
        nullable=False,
    )
    is_active = Column(Boolean, default=True, nullable=False)

    balance = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.name or "Pasajero"
