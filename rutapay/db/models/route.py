"""
Route Model - Fare schedule, read-only for the payment path
"""
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, CheckConstraint

from rutapay.db.database import Base


class Route(Base):
    __tablename__ = "routes"
    __table_args__ = (
        CheckConstraint("fare >= 0", name="ck_routes_fare_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    fare = Column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
