"""
Database Models
"""
from rutapay.db.models.user import User, UserRole
from rutapay.db.models.driver import Driver, DriverCodeCounter
from rutapay.db.models.route import Route
from rutapay.db.models.payment import Payment
from rutapay.db.models.recharge import Recharge, RechargeStatus
from rutapay.db.models.notification import Notification, NotificationType
from rutapay.db.models.outbox_message import OutboxMessage, MessageStatus

__all__ = [
    "User",
    "UserRole",
    "Driver",
    "DriverCodeCounter",
    "Route",
    "Payment",
    "Recharge",
    "RechargeStatus",
    "Notification",
    "NotificationType",
    "OutboxMessage",
    "MessageStatus",
]
