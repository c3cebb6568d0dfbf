# storefront/services/shipping.py
from __future__ import annotations

from dataclasses import dataclass

from ..pricing import PricingInputError
from ..utils.money import D, Money, ZERO, round_money, to_float_money

STANDARD = "standard"


@dataclass(frozen=True)
class ThresholdShippingRule:
    """Free strictly above ``threshold``, otherwise ``flat_fee``."""
    threshold: Money = D("50.00")
    flat_fee: Money = D("5.99")

    def __call__(self, subtotal: Money) -> Money:
        if D(subtotal) > D(self.threshold):
            return ZERO
        return round_money(self.flat_fee)


@dataclass(frozen=True)
class ShippingOption:
    id: str
    name: str
    price: Money
    estimated_days: str
    free_above: Money | None = None

    def cost(self, cart_value: Money) -> Money:
        if self.free_above is not None and D(cart_value) > D(self.free_above):
            return ZERO
        return round_money(self.price)

    def as_api(self, cart_value: Money):
        cost = self.cost(cart_value)
        return {
            "id": self.id,
            "name": self.name,
            "price": to_float_money(cost),
            "estimatedDays": self.estimated_days,
            "isFree": cost == 0,
        }


# country code -> extra options on top of standard delivery
_EXPRESS_EU = ShippingOption("express", "Express delivery", D("12.99"), "1-3")
_COUNTRY_OPTIONS = {
    "FR": (
        ShippingOption("express", "Express delivery", D("9.99"), "1-2"),
        ShippingOption("pickup", "Pickup point", D("3.99"), "2-4", free_above=D("100")),
    ),
    "BE": (_EXPRESS_EU,),
    "LU": (_EXPRESS_EU,),
    "DE": (_EXPRESS_EU,),
    "NL": (_EXPRESS_EU,),
    "GB": (ShippingOption("express", "Express delivery", D("14.99"), "2-3"),),
}
_INTERNATIONAL = (
    ShippingOption("international", "International delivery", D("19.99"), "5-10", free_above=D("200")),
)


def available_options(country_code: str,
                      default_rule: ThresholdShippingRule | None = None) -> list[ShippingOption]:
    rule = default_rule or ThresholdShippingRule()
    standard = ShippingOption(STANDARD, "Standard delivery", rule.flat_fee, "3-5",
                              free_above=rule.threshold)
    extra = _COUNTRY_OPTIONS.get((country_code or "").strip().upper(), _INTERNATIONAL)
    return [standard, *extra]


def shipping_options(country_code: str, cart_value,
                     default_rule: ThresholdShippingRule | None = None) -> list[dict]:
    value = round_money(cart_value)
    return [opt.as_api(value) for opt in available_options(country_code, default_rule)]


def shipping_rule_for(country_code: str | None, option_id: str | None,
                      default_rule: ThresholdShippingRule | None = None):
    rule = default_rule or ThresholdShippingRule()
    if not country_code or not option_id or option_id == STANDARD:
        return rule
    for opt in available_options(country_code, rule):
        if opt.id == option_id:
            return opt.cost
    raise PricingInputError(f"shipping option '{option_id}' is not available for {country_code}")
