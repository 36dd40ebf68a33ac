"""Catalog domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations

from modules.core.exceptions import DomainValidationError, NotFound


class ProductNotFound(NotFound):
    """The requested product does not exist or has been soft-deleted."""


class VariantNotFound(NotFound):
    """The requested variant does not exist or has been soft-deleted."""


class ProductAlreadyExists(DomainValidationError):
    """A product with the same SKU already exists."""


class InvalidOptionSelection(DomainValidationError):
    """An option value does not belong to the product or its group."""
