"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations

from modules.core.exceptions import DomainValidationError, NotFound


class OrderNotFound(NotFound):
    """The requested order does not exist or has been soft-deleted."""


class OrderItemNotFound(NotFound):
    """The item does not exist or belongs to another order."""


class ShipperNotFound(NotFound):
    """The selected shipper does not exist or is disabled."""


class InvalidOrderStatus(DomainValidationError):
    """The status is neither built in nor enabled in the status registry."""


class OrderFinalized(DomainValidationError):
    """Items of a final (invoiced) order cannot be changed."""


class OrderNotDeletable(DomainValidationError):
    """Final orders and orders with an invoice number are never deleted."""


class EmptyCart(DomainValidationError):
    """Checkout was attempted without items."""


class CheckoutNotReady(DomainValidationError):
    """The cart is missing an address or contains an invalid item."""


class ProductNotOrderable(DomainValidationError):
    """The product is disabled, outside its window, or out of stock."""


class GatewayNotFound(NotFound):
    """No enabled payment gateway is registered under that name."""
