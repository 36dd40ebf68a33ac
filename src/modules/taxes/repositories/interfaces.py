"""Tax rate repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.core.address import Address
    from modules.taxes.models import TaxRate


class ITaxRateRepository(IRepository["TaxRate"]):
    @abstractmethod
    def best_match(self, address: Address) -> Optional[TaxRate]:
        """Most specific rate row for *address*, ``None`` if none applies."""
