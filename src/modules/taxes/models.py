"""Tax rate table.

A rate row matches an address by country, optionally narrowed by state
and by postal-code prefix.  The most specific matching row wins.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import BaseModel


class TaxRate(BaseModel):
    country = models.CharField(max_length=2)
    state = models.CharField(max_length=10, blank=True, default="")
    zip_prefix = models.CharField(max_length=10, blank=True, default="")
    rate = models.DecimalField(
        max_digits=7,
        decimal_places=5,
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("1"))],
    )
    freight_taxable = models.BooleanField(default=False)
    handling_taxable = models.BooleanField(default=False)

    class Meta:
        db_table = "tax_rates"
        constraints = [
            models.UniqueConstraint(
                fields=["country", "state", "zip_prefix"],
                name="tax_rates_unique_jurisdiction",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        self.country = self.country.strip().upper()
        self.state = self.state.strip().upper()
        self.zip_prefix = self.zip_prefix.strip()
        super().save(*args, **kwargs)

    @property
    def specificity(self) -> tuple:
        return (len(self.zip_prefix), bool(self.state))

    def __str__(self) -> str:
        where = "/".join(part for part in (self.country, self.state, self.zip_prefix) if part)
        return f"{where}: {self.rate}"
