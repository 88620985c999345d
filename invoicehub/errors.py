"""
Application error hierarchy.

Services raise these; the handler registered in main.py renders them as
{"error": {"code": "...", "message": "..."}} with the class's status code.
"""

from typing import Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidLineItemError(ValidationError):
    code = "INVALID_LINE_ITEM"


class InvalidTaxRateError(ValidationError):
    code = "INVALID_TAX_RATE"


class TotalMismatchError(ValidationError):
    code = "TOTAL_MISMATCH"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class PaymentRejectedError(AppError):
    status_code = 422
    code = "PAYMENT_REJECTED"


class InvalidStatusTransitionError(AppError):
    status_code = 409
    code = "INVALID_STATUS_TRANSITION"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTH_INVALID_CREDENTIALS"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class PermissionDeniedError(AppError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"
