"""Unit tests for shared value objects.

Covers:
- ShopSettings parsing and reset when ``settings.SHOP`` changes.
- Address normalisation and completeness.
- Lookup / OperationResult truthiness.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from modules.core.address import Address
from modules.core.config import ShopSettings, get_shop_settings
from modules.core.results import Lookup, OperationResult

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Shop settings
# ---------------------------------------------------------------------------


class TestShopSettings:
    def test_parses_test_configuration(self):
        shop = get_shop_settings()
        assert shop.currency == "USD"
        assert shop.affiliate_percent == Decimal("5")
        assert shop.tax.origin.state == "CA"
        assert [gw.name for gw in shop.gateways] == ["check", "free"]

    def test_is_reloaded_when_setting_changes(self, settings):
        settings.SHOP = {**settings.SHOP, "max_order_qty": 10}
        assert get_shop_settings().max_order_qty == 10

    def test_nexus_entries_are_normalised(self):
        shop = ShopSettings.model_validate({"tax": {"nexuses": [" us,ca ", "", "  "]}})
        assert shop.tax.nexuses == ["US,CA"]

    def test_invalid_nexus_policy_rejected(self):
        with pytest.raises(ValidationError):
            ShopSettings.model_validate({"tax": {"nexus_physical": "everywhere"}})

    def test_unconfigured_currency_defaults(self):
        conf = ShopSettings().currency_settings("SEK")
        assert conf.decimals == 2


# ---------------------------------------------------------------------------
# Address
# ---------------------------------------------------------------------------


class TestAddress:
    def test_codes_are_upper_cased(self):
        address = Address(state=" ca", country="us ", zip=" 95814 ")
        assert (address.state, address.country, address.zip) == ("CA", "US", "95814")

    def test_completeness(self):
        assert Address(address1="1 Main", city="Sacramento", country="US").is_complete
        assert not Address(city="Sacramento", country="US").is_complete

    def test_empty(self):
        assert Address.from_json(None).is_empty
        assert not Address(country="US").is_empty

    def test_json_round_trip(self, address):
        assert Address.from_json(address.to_json()) == address


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


class TestResults:
    def test_lookup_found_with_zero_value_is_truthy(self):
        lookup = Lookup.found(Decimal("0"))
        assert lookup
        assert lookup.unwrap() == Decimal("0")

    def test_missing_lookup(self):
        lookup = Lookup.missing()
        assert not lookup
        assert lookup.map(str, "none") == "none"
        with pytest.raises(LookupError):
            lookup.unwrap()

    def test_operation_result(self):
        assert OperationResult.success(available=3).details == {"available": 3}
        failure = OperationResult.failure("INSUFFICIENT_STOCK", available=0)
        assert not failure
        assert failure.reason == "INSUFFICIENT_STOCK"
