from decimal import Decimal

import pytest

from storefront.pricing import PricingInputError
from storefront.services.shipping import (ThresholdShippingRule, shipping_options,
                                          shipping_rule_for)


def _by_id(options):
    return {o["id"]: o for o in options}


@pytest.mark.unit
@pytest.mark.parametrize(
    "subtotal,expect",
    [("0", "5.99"), ("49.99", "5.99"), ("50.00", "5.99"), ("50.01", "0")],
    ids=["empty", "below", "at-threshold", "above"],
)
def test_threshold_rule_is_strict(subtotal, expect):
    assert ThresholdShippingRule()(Decimal(subtotal)) == Decimal(expect)


@pytest.mark.unit
def test_threshold_rule_is_configurable():
    rule = ThresholdShippingRule(threshold=Decimal("100"), flat_fee=Decimal("7.5"))
    assert rule(Decimal("80")) == Decimal("7.50")
    assert rule(Decimal("100.01")) == Decimal("0")


@pytest.mark.unit
def test_france_has_express_and_pickup():
    options = _by_id(shipping_options("fr", Decimal("120")))
    assert set(options) == {"standard", "express", "pickup"}
    assert options["standard"]["isFree"] is True
    assert options["express"]["price"] == 9.99
    assert options["pickup"]["price"] == 0.0
    assert options["pickup"]["estimatedDays"] == "2-4"


@pytest.mark.unit
@pytest.mark.parametrize("country", ["BE", "LU", "DE", "NL"])
def test_benelux_and_germany_express(country):
    options = _by_id(shipping_options(country, Decimal("10")))
    assert options["express"]["price"] == 12.99
    assert options["standard"]["price"] == 5.99


@pytest.mark.unit
def test_great_britain_express():
    assert _by_id(shipping_options("GB", Decimal("10")))["express"]["price"] == 14.99


@pytest.mark.unit
def test_other_countries_get_international():
    cheap = _by_id(shipping_options("US", Decimal("150")))
    rich = _by_id(shipping_options("US", Decimal("250")))
    assert cheap["international"]["price"] == 19.99
    assert rich["international"]["isFree"] is True


@pytest.mark.unit
def test_rule_for_selected_option():
    rule = shipping_rule_for("FR", "express")
    assert rule(Decimal("500")) == Decimal("9.99")
    pickup = shipping_rule_for("FR", "pickup")
    assert pickup(Decimal("100.01")) == Decimal("0")


@pytest.mark.unit
def test_standard_and_missing_country_use_default_rule():
    default = ThresholdShippingRule(flat_fee=Decimal("4.00"))
    assert shipping_rule_for(None, None, default) is default
    assert shipping_rule_for("DE", "standard", default) is default


@pytest.mark.unit
def test_unknown_option_for_country_raises():
    with pytest.raises(PricingInputError):
        shipping_rule_for("GB", "pickup")
