"""Discount code repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.discounts.models import DiscountCode


class IDiscountCodeRepository(IRepository["DiscountCode"]):
    @abstractmethod
    def get_by_code(self, code: str) -> Optional[DiscountCode]:
        """Case-insensitive look-up by code."""

    @abstractmethod
    def increment_use(self, code: str) -> bool:
        """Atomically add one use; ``False`` when the code is unknown."""
