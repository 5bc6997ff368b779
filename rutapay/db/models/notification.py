"""
Notification Model - Append-only per-user event log, polled by clients
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON, Index

from rutapay.db.database import Base


class NotificationType(str, enum.Enum):
    """Discriminator stored in ``data["type"]``"""
    PAYMENT = "payment"
    RECHARGE_PENDING = "recharge_pending"
    RECHARGE_CONFIRMED = "recharge_confirmed"
    RECHARGE_REJECTED = "recharge_rejected"

    @property
    def entity_key(self) -> str:
        """Field of ``data`` that references the entity behind the event"""
        if self is NotificationType.PAYMENT:
            return "payment_id"
        return "recharge_id"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=True)
    # Weak reference to the payment/recharge: {"type": ..., "<entity>_id": ..., ...}
    data = Column(JSON, nullable=False, default=dict)

    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
