"""Postal address value object shared by orders and tax calculation."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Address(BaseModel):
    """Immutable address as stored in the order's ``billto``/``shipto``."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    company: str = ""
    address1: str = ""
    address2: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = ""
    phone: str = ""

    @field_validator("state", "country")
    @classmethod
    def upper_codes(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("zip")
    @classmethod
    def strip_zip(cls, v: str) -> str:
        return v.strip()

    @property
    def is_empty(self) -> bool:
        return not (self.address1 or self.city or self.state or self.country)

    @property
    def is_complete(self) -> bool:
        """Enough information to ship to and to resolve a tax jurisdiction."""
        return bool(self.address1 and self.city and self.country)

    @classmethod
    def from_json(cls, data: Optional[Dict[str, Any]]) -> Address:
        return cls.model_validate(data or {})

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump()
