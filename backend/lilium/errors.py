"""
Typed engine errors.

Every business-rule or lookup failure raised by the engine is one of these.
They carry a human-readable message, a structured ``details`` dict, a stable
``code`` and an HTTP status hint. The engine itself never looks at
``status_code``; only the Flask routes do when turning an error into a response.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all typed engine failures."""

    code = "ENGINE_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFound(EngineError):
    code = "NOT_FOUND"
    status_code = 404


class OrderNotFound(NotFound):
    code = "ORDER_NOT_FOUND"


class AddressNotFound(NotFound):
    code = "ADDRESS_NOT_FOUND"


class ProductsNotFound(NotFound):
    code = "PRODUCTS_NOT_FOUND"


class CompanyNotFound(NotFound):
    code = "COMPANY_NOT_FOUND"


class PayoutNotFound(NotFound):
    code = "PAYOUT_NOT_FOUND"


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationFailure(EngineError):
    """400-level input or business-rule problem."""

    code = "VALIDATION_FAILED"
    status_code = 400


class ZoneUnavailable(ValidationFailure):
    code = "ZONE_UNAVAILABLE"


class BelowMinimumOrderQuantity(ValidationFailure):
    code = "BELOW_MINIMUM_ORDER_QUANTITY"


class UnsupportedPromotionType(ValidationFailure):
    code = "UNSUPPORTED_PROMOTION_TYPE"


class InsufficientBalance(ValidationFailure):
    code = "INSUFFICIENT_BALANCE"


# =============================================================================
# STATE / CONCURRENCY
# =============================================================================

class InsufficientStock(EngineError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class InvalidTransition(EngineError):
    code = "INVALID_TRANSITION"
    status_code = 409


class Conflict(EngineError):
    """409-level business rule conflict (e.g., duplicate SKU)."""

    code = "CONFLICT"
    status_code = 409


# =============================================================================
# ACCESS
# =============================================================================

class Unauthorized(EngineError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(EngineError):
    code = "FORBIDDEN"
    status_code = 403


# =============================================================================
# INTERNAL
# =============================================================================

class Internal(EngineError):
    """Unexpected persistence failure that persisted after every retry."""

    code = "INTERNAL"
    status_code = 500
