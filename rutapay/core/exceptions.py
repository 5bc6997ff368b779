"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.
Money-moving operations fail closed (rollback, then raise one of these);
notification delivery never raises to the caller.
"""
from decimal import Decimal
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"
    TRANSACTION_FAILED = "ERR_1007"

    # Payment errors (2xxx)
    ROUTE_NOT_FOUND = "ERR_2001"
    PAYMENT_IMMUTABLE = "ERR_2002"

    # User / driver errors (3xxx)
    USER_NOT_FOUND = "ERR_3001"
    DRIVER_NOT_FOUND = "ERR_3002"

    # Wallet / recharge errors (4xxx)
    INSUFFICIENT_BALANCE = "ERR_4002"
    INVALID_AMOUNT = "ERR_4003"
    RECHARGE_NOT_FOUND = "ERR_4005"
    INVALID_RECHARGE_TRANSITION = "ERR_4006"

    # Notification errors (5xxx)
    NOTIFICATION_NOT_FOUND = "ERR_5001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class InvalidAmountError(ValidationException):
    """Raised when an amount is missing, zero or negative"""

    def __init__(self, amount: Any, field: str = "amount"):
        super().__init__(
            message=f"Amount must be greater than zero, got {amount}",
            field=field,
            details={"amount": str(amount)}
        )
        self.error_code = ErrorCode.INVALID_AMOUNT


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class UserNotFoundError(NotFoundException):
    def __init__(self, user_id: int):
        super().__init__("User", user_id, ErrorCode.USER_NOT_FOUND)


class DriverNotFoundError(NotFoundException):
    """Raised when a driver code (or driver id) resolves to no active driver"""

    def __init__(self, identifier: str | int):
        super().__init__("Driver", identifier, ErrorCode.DRIVER_NOT_FOUND)


class RouteNotFoundError(NotFoundException):
    def __init__(self, route_id: int):
        super().__init__("Route", route_id, ErrorCode.ROUTE_NOT_FOUND)


class RechargeNotFoundError(NotFoundException):
    def __init__(self, recharge_id: int):
        super().__init__("Recharge", recharge_id, ErrorCode.RECHARGE_NOT_FOUND)


class NotificationNotFoundError(NotFoundException):
    def __init__(self, notification_id: int):
        super().__init__("Notification", notification_id, ErrorCode.NOTIFICATION_NOT_FOUND)


class UnauthorizedError(AppException):
    """Raised when no valid credentials were presented"""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNAUTHORIZED,
            status_code=401
        )


class ForbiddenError(AppException):
    """Raised when the actor may not perform the requested change"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.FORBIDDEN,
            status_code=403,
            details=details
        )


class InsufficientBalanceError(AppException):
    """Raised when the wallet cannot cover a fare (only with PAYMENT_DEBITS_WALLET)"""

    def __init__(self, user_id: int, current_balance: Decimal, required_amount: Decimal):
        super().__init__(
            message=f"Insufficient balance for user {user_id}",
            error_code=ErrorCode.INSUFFICIENT_BALANCE,
            status_code=402,
            details={
                "user_id": user_id,
                "current_balance": str(current_balance),
                "required_amount": str(required_amount),
            }
        )


class InvalidRechargeTransitionError(AppException):
    """Raised when a recharge would leave one terminal state for the other"""

    def __init__(self, recharge_id: int, current_status: str, target_status: str):
        super().__init__(
            message=f"Recharge {recharge_id} is '{current_status}' and cannot become '{target_status}'",
            error_code=ErrorCode.INVALID_RECHARGE_TRANSITION,
            status_code=409,
            details={
                "recharge_id": recharge_id,
                "current_status": current_status,
                "target_status": target_status,
            }
        )


class TransactionFailureError(AppException):
    """Raised after a database failure rolled back a whole transactional block"""

    def __init__(self, operation: str, cause: Exception | None = None):
        super().__init__(
            message=f"Transaction failed during {operation}",
            error_code=ErrorCode.TRANSACTION_FAILED,
            status_code=500,
            details={
                "operation": operation,
                "cause": type(cause).__name__ if cause else None,
            }
        )


class PaymentImmutableError(AppException):
    """Raised when something tries to modify a committed payment row"""

    def __init__(self, payment_id: int | None):
        super().__init__(
            message=f"Payment {payment_id} is immutable",
            error_code=ErrorCode.PAYMENT_IMMUTABLE,
            status_code=409,
            details={"payment_id": payment_id}
        )
