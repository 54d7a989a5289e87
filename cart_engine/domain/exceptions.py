"""
Errors raised by the cart engine.

Every CartError is a client-facing, recoverable condition: the requested
action cannot be completed as stated. Infrastructure failures (database,
redis, catalog transport) are not wrapped and propagate unchanged.
"""
from typing import Optional


class CartError(Exception):
    """Base exception for cart operations"""
    kind = "cart_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class CartNotFoundError(CartError):
    """Cart or cart item does not exist, or is not part of an active cart"""
    kind = "not_found"


class InvalidReferenceError(CartError):
    """Product or variant is missing, inactive, deleted or mismatched"""
    kind = "invalid_reference"


class InsufficientStockError(CartError):
    """Requested quantity exceeds what can still be added"""
    kind = "insufficient_stock"

    def __init__(self, message: str, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(message)


class CartValidationError(CartError):
    """Malformed input rejected before touching the store"""
    kind = "validation_failure"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class CartConflictError(CartError):
    """Concurrent modification that could not be resolved by retrying"""
    kind = "conflict"
