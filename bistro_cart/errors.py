"""
Cart Errors

Centralized error messages (avoid string duplication) and the exception
hierarchy raised by the cart engine.
"""
from decimal import Decimal
from typing import Optional

# Item errors
ERROR_ITEM_ID_INVALID = "Item id must be a non-empty string or an integer"
ERROR_ITEM_NAME_INVALID = "Item name must be a non-empty string"
ERROR_PRICE_NOT_NUMBER = "Unit price must be a number"
ERROR_PRICE_NEGATIVE = "Unit price cannot be negative"
ERROR_QUANTITY_NOT_INT = "Quantity must be an integer"
ERROR_QUANTITY_BELOW_ONE = "Quantity must be at least 1"
ERROR_ITEM_ID_DUPLICATE = "Item ids must be unique within a cart"
ERROR_CUSTOMIZATIONS_INVALID = "Customizations must be a list of strings"

# Promo errors
ERROR_PROMO_NOT_FOUND = "Invalid promo code"
ERROR_PROMO_BELOW_MINIMUM = "Minimum order of ${minimum} required"

# Sync errors
ERROR_REMOTE_UNAVAILABLE = "Cart service unavailable"

# Promo rejection reason codes
PROMO_REASON_NOT_FOUND = "not_found"
PROMO_REASON_BELOW_MINIMUM = "below_minimum"


class CartError(Exception):
    """Base exception for cart operations."""


class InvalidCartItemError(CartError, ValueError):
    """A mutation carried malformed input; it was not applied."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class PromoRejectedError(CartError):
    """A promo code could not be applied; cart state is unchanged."""

    def __init__(
        self,
        code: str,
        reason: str,
        message: str,
        shortfall: Optional[Decimal] = None,
        minimum_order: Optional[Decimal] = None,
    ):
        self.code = code
        self.reason = reason
        self.message = message
        self.shortfall = shortfall
        self.minimum_order = minimum_order
        super().__init__(message)


class RemoteStoreError(CartError):
    """The remote cart record could not be read or written."""
