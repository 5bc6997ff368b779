"""
Domain Services
"""
from rutapay.domain.services.ledger_service import LedgerService
from rutapay.domain.services.notification_service import NotificationService
from rutapay.domain.services.outbox_service import OutboxService
from rutapay.domain.services.driver_service import DriverService
from rutapay.domain.services.payment_service import PaymentService, PaymentResult
from rutapay.domain.services.recharge_service import RechargeService, RechargeDecision

__all__ = [
    "LedgerService",
    "NotificationService",
    "OutboxService",
    "DriverService",
    "PaymentService",
    "PaymentResult",
    "RechargeService",
    "RechargeDecision",
]
