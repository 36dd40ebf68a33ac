"""Percentage discount codes.

Business rules implemented here:
- Codes are unique and stored uppercase.
- A code applies only inside its [start, end] window; open ends are
  unbounded.
- ``max_uses == 0`` means unlimited; ``use_count`` is incremented with
  an ``F()`` expression on each successful checkout.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel, MoneyField


class DiscountCode(BaseModel):
    code = models.CharField(max_length=32, unique=True)
    percent = models.DecimalField(
        max_digits=6,
        decimal_places=3,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    start = models.DateTimeField(null=True, blank=True)
    end = models.DateTimeField(null=True, blank=True)
    min_order = MoneyField()
    max_uses = models.PositiveIntegerField(default=0)
    use_count = models.PositiveIntegerField(default=0)
    enabled = models.BooleanField(default=True)

    class Meta:
        db_table = "discount_codes"
        ordering = ["code"]

    def save(self, *args, **kwargs) -> None:
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def in_window(self, at=None) -> bool:
        at = at or timezone.now()
        if self.start and at < self.start:
            return False
        if self.end and at > self.end:
            return False
        return True

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses > 0 and self.use_count >= self.max_uses

    def __str__(self) -> str:
        return f"{self.code} ({self.percent}%)"
