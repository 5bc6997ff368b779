"""
Outbox Message Model - Transactional Outbox Pattern

Written in the same transaction as the money movement; a worker turns each
row into a Notification afterwards.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum as SQLEnum, JSON

from rutapay.db.database import Base


class MessageStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxMessage(Base):
    """Pending notifications with retry tracking"""

    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, index=True)

    recipient_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    message_type = Column(String(50), nullable=False)  # NotificationType value
    message_content = Column(JSON, nullable=False)  # {"title", "body", "data"}

    # e.g. "recharge_confirmed:42"; one outbox row per logical event
    dedup_key = Column(String(120), unique=True, nullable=True)

    status = Column(SQLEnum(MessageStatus), default=MessageStatus.PENDING, index=True)
    retry_count = Column(Integer, default=0)
    max_retries = Column(Integer, default=5)

    created_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)
    next_retry_at = Column(DateTime, nullable=True)

    last_error = Column(String(1000), nullable=True)
