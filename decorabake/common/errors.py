"""Exceptions raised by the order and refund lifecycle services."""

from typing import Optional


class StoreError(Exception):
    """Base exception for all storefront core errors."""

    pass


class NotFoundError(StoreError):
    """Raised when an order, refund, product or promo code doesn't exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ValidationError(StoreError, ValueError):
    """Raised for illegal transitions and missing or malformed input."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotificationError(StoreError):
    """Raised by the mail transport. Never propagates past the dispatcher."""

    pass
