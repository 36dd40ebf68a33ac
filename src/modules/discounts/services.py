"""Discount code validation (Use Cases).

``validate`` never raises for a bad code: an unknown, disabled, expired,
exhausted or under-minimum code yields 0% together with the reason, so
the order can reset its discount and recompute every line.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, ConfigDict

from modules.catalog.capabilities import allows_discount_code
from modules.core.currency import ZERO, to_decimal

if TYPE_CHECKING:
    from modules.discounts.repositories.interfaces import IDiscountCodeRepository

logger = structlog.get_logger(__name__)


class DiscountValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str = ""
    percent: Decimal = Decimal("0")
    messages: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return self.percent > 0


class DiscountCodeValidator:
    def __init__(self, repository: IDiscountCodeRepository) -> None:
        self._repo = repository

    @staticmethod
    def eligible_total(items: Sequence[Any]) -> Decimal:
        """Gross value of the lines whose product accepts discount codes."""
        return sum(
            (
                to_decimal(item.price) * item.quantity
                for item in items
                if allows_discount_code(item.product)
            ),
            ZERO,
        )

    def validate(
        self, code: str, order: Any, items: Optional[Sequence[Any]] = None, at=None
    ) -> DiscountValidation:
        code = (code or "").strip().upper()
        log = logger.bind(order_id=str(order.pk), code=code)
        if not code:
            return DiscountValidation()

        record = self._repo.get_by_code(code)
        if record is None:
            return self._invalid(log, code, "Discount code not found.")
        if not record.enabled:
            return self._invalid(log, code, "Discount code is not active.")
        if not record.in_window(at):
            return self._invalid(
                log, code, "Discount code has expired or is not yet valid."
            )
        if record.is_exhausted:
            return self._invalid(log, code, "Discount code has been fully used.")

        if items is None:
            items = list(order.items.all())
        eligible = self.eligible_total(items)
        if eligible < to_decimal(record.min_order):
            return self._invalid(
                log,
                code,
                f"A minimum order of {record.min_order:.2f} is required for this code.",
            )

        log.info("discount.validated", percent=str(record.percent))
        return DiscountValidation(code=code, percent=to_decimal(record.percent))

    @staticmethod
    def _invalid(log, code: str, message: str) -> DiscountValidation:
        log.info("discount.rejected", reason=message)
        return DiscountValidation(code=code, messages=(message,))

    def record_use(self, code: str) -> bool:
        if not code:
            return False
        recorded = self._repo.increment_use(code)
        logger.info("discount.used", code=code.upper(), recorded=recorded)
        return recorded
