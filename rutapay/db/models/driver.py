"""
Driver Model - 1:1 extension of a driver User, addressed by its short code
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from rutapay.db.database import Base


class Driver(Base):
    """Driver entity.

    ``id`` is the payments foreign key; ``user_id`` is the notification
    recipient. The two are different identifiers.
    """

    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    # What a passenger types when boarding; allocated once, never reused
    driver_code = Column(String(16), unique=True, index=True, nullable=False)

    license_number = Column(String(50), nullable=True)
    vehicle_type = Column(String(50), nullable=True)
    vehicle_plate = Column(String(20), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")


class DriverCodeCounter(Base):
    """Single-row allocator for driver codes, locked FOR UPDATE while allocating"""

    __tablename__ = "driver_code_counters"

    id = Column(Integer, primary_key=True)
    last_code = Column(Integer, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
