"""Typed view of the ``SHOP`` settings block.

Every service reads shop configuration through ``get_shop_settings()``
rather than poking at ``settings.SHOP`` dictionaries, so a missing or
mistyped key fails at parse time with a pydantic error.
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Literal

from django.conf import settings
from django.core.signals import setting_changed
from pydantic import BaseModel, ConfigDict, Field, field_validator

NexusPolicy = Literal["origin", "destination"]


class CurrencySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    decimals: int = 2
    rounding_step: Decimal = Decimal("0.01")


class OriginAddress(BaseModel):
    model_config = ConfigDict(frozen=True)

    country: str = "US"
    state: str = ""
    zip: str = ""


class TaxSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    default_rate: Decimal = Decimal("0")
    nexus_physical: NexusPolicy = "destination"
    nexus_virtual: NexusPolicy = "origin"
    nexuses: List[str] = Field(default_factory=list)
    origin: OriginAddress = Field(default_factory=OriginAddress)

    @field_validator("nexuses")
    @classmethod
    def drop_blank_nexuses(cls, v: List[str]) -> List[str]:
        return [item.strip().upper() for item in v if item and item.strip()]


class GatewaySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    display_name: str = ""
    enabled: bool = True
    test_mode: bool = False
    services: List[str] = Field(default_factory=list)


class ShopSettings(BaseModel):
    """Frozen, validated shop configuration."""

    model_config = ConfigDict(frozen=True)

    currency: str = "USD"
    currencies: Dict[str, CurrencySettings] = Field(
        default_factory=lambda: {"USD": CurrencySettings()}
    )
    nonfinal_statuses: List[str] = Field(default_factory=lambda: ["cart", "pending"])
    virtual_paid_status: str = "closed"
    paid_epsilon: Decimal = Decimal("0.001")
    max_order_qty: int = 99999
    days_purge_cart: int = 14
    affiliate_percent: Decimal = Decimal("0")
    tax: TaxSettings = Field(default_factory=TaxSettings)
    gateways: List[GatewaySettings] = Field(default_factory=list)

    def currency_settings(self, code: str | None = None) -> CurrencySettings:
        code = (code or self.currency).upper()
        return self.currencies.get(code, CurrencySettings())


@lru_cache(maxsize=1)
def get_shop_settings() -> ShopSettings:
    return ShopSettings.model_validate(getattr(settings, "SHOP", {}))


def _reset_on_change(setting: str, **kwargs) -> None:
    if setting == "SHOP":
        get_shop_settings.cache_clear()


setting_changed.connect(_reset_on_change)
