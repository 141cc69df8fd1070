from typing import Any, Dict, Optional


# ================================
# CUSTOM EXCEPTIONS
# ================================
class ShopException(Exception):
    """Base exception for storefront operations"""
    code = "ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(ShopException):
    """Raised when a resource is not found"""
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class ForbiddenException(ShopException):
    """Raised when the requester may not touch the resource"""
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)


class ValidationException(ShopException):
    """Raised when validation fails"""
    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, status_code=400, code=code, details=details)


class ConflictException(ShopException):
    """Raised when a business rule conflicts with current state"""
    code = "CONFLICT"

    def __init__(self, message: str = "Conflict", code: Optional[str] = None):
        super().__init__(message, status_code=400, code=code)


class EmptyCartException(ConflictException):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message, code="EMPTY_CART")


class InsufficientStockException(ConflictException):
    """Raised when there's insufficient stock"""
    def __init__(self, message: str = "Insufficient stock"):
        super().__init__(message, code="INSUFFICIENT_STOCK")


class InvalidSignatureException(ShopException):
    """Raised when a gateway signature is missing or does not match"""
    code = "INVALID_SIGNATURE"

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, status_code=401)


class InvalidPayloadException(ShopException):
    """Raised when a gateway payload cannot be parsed"""
    code = "INVALID_PAYLOAD"

    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message, status_code=400)


class PaymentGatewayError(ShopException):
    """Raised when a payment gateway call fails"""
    code = "PAYMENT_GATEWAY_ERROR"

    def __init__(self, message: str = "Payment gateway error"):
        super().__init__(message, status_code=502)
