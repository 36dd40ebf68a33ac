"""Inventory domain exceptions."""

from __future__ import annotations

from modules.core.exceptions import DomainValidationError


class InsufficientStock(DomainValidationError):
    """Not enough unreserved stock under a DENY or HIDE oversell policy."""

    def __init__(self, message: str = "", available: int = 0) -> None:
        super().__init__(message or "Insufficient stock.")
        self.available = available
