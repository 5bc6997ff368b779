"""
Payment Model - Immutable record of one fare paid to a driver
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, CheckConstraint, event
from sqlalchemy.orm import relationship

from rutapay.core.exceptions import PaymentImmutableError
from rutapay.db.database import Base


class Payment(Base):
    """Append-only: inserted once by the payment engine, never updated or deleted"""

    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # drivers.id, not users.id
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False, index=True)
    # Snapshot of the code the passenger typed
    driver_code = Column(String(16), nullable=True)
    route_id = Column(Integer, ForeignKey("routes.id"), nullable=False, index=True)

    # Route fare at the moment of payment
    amount = Column(Numeric(10, 2), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    passenger = relationship("User")
    driver = relationship("Driver")
    route = relationship("Route")


@event.listens_for(Payment, "before_update")
def _reject_payment_update(mapper, connection, target):
    raise PaymentImmutableError(target.id)


@event.listens_for(Payment, "before_delete")
def _reject_payment_delete(mapper, connection, target):
    raise PaymentImmutableError(target.id)
