# storefront/pricing.py
"""
Cart pricing engine.

Every cart total in the application is produced by :func:`recalculate`.
The function is pure: it reads a cart snapshot, a coupon catalog, a tax rate
and a shipping rule, and returns a new cart with the derived money fields
filled in. Order of operations:

  1) subtotal  = round(sum(round(unit_price * qty)))   (running, per line)
  2) tax       = round(subtotal * tax_rate)
  3) shipping  = round(shipping_rule(subtotal))
  4) discount  = coupon resolution (percentage / fixed / free_shipping)
  5) total     = round(subtotal + tax + shipping - discount), floored at 0

Coupons that do not apply (unknown, expired, cart below minimum) are dropped
silently and reported through ``PricingResult.coupon_rejection``. Structurally
invalid input raises :class:`PricingInputError`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Mapping, Optional, Sequence

from .utils.money import D, Money, ZERO, round_money

logger = logging.getLogger(__name__)

ShippingRule = Callable[[Money], Money]

HUNDRED = Decimal("100")


class PricingInputError(ValueError):
    """Caller bug: the cart, catalog entry or pricing parameters are malformed."""


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


# reasons a requested coupon was dropped
COUPON_NOT_FOUND = "not_found"
COUPON_EXPIRED = "expired"
COUPON_BELOW_MINIMUM = "below_minimum"


@dataclass(frozen=True)
class LineItem:
    product_id: str
    unit_price: Money
    quantity: int
    attributes: Mapping[str, str] = field(default_factory=dict)

    def line_total(self) -> Money:
        return round_money(D(self.unit_price) * self.quantity)


@dataclass(frozen=True)
class CouponRule:
    code: str
    type: str
    value: Optional[Money] = None
    min_cart_value: Money = ZERO
    max_discount_amount: Optional[Money] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return _as_aware(self.expires_at) < _as_aware(now)


@dataclass(frozen=True)
class PricedCart:
    id: str
    items: Sequence[LineItem] = ()
    coupon_code: Optional[str] = None
    subtotal: Money = ZERO
    tax: Money = ZERO
    shipping: Money = ZERO
    discount: Money = ZERO
    total: Money = ZERO


@dataclass(frozen=True)
class PricingResult:
    cart: PricedCart
    coupon: Optional[CouponRule] = None
    coupon_rejection: Optional[str] = None


# ---- validation -------------------------------------------------------------

def _as_aware(dt: datetime) -> datetime:
    # naive datetimes are stored as UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _money_input(value, what: str) -> Money:
    try:
        amount = D(value)
    except (InvalidOperation, ValueError, TypeError):
        raise PricingInputError(f"{what} must be a number, got {value!r}")
    if not amount.is_finite():
        raise PricingInputError(f"{what} must be finite")
    return amount


def validate_line_item(item: LineItem) -> None:
    price = _money_input(item.unit_price, "unit_price")
    if price < 0:
        raise PricingInputError(f"unit_price must be >= 0 (product {item.product_id})")
    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
        raise PricingInputError(f"quantity must be an integer (product {item.product_id})")
    if item.quantity < 1:
        raise PricingInputError(f"quantity must be >= 1 (product {item.product_id})")


def validate_coupon(rule: CouponRule) -> None:
    """Reject catalog entries no business rule could make sense of."""
    try:
        ctype = CouponType(rule.type)
    except ValueError:
        raise PricingInputError(f"coupon {rule.code}: unknown type {rule.type!r}")

    if ctype is not CouponType.FREE_SHIPPING:
        if rule.value is None:
            raise PricingInputError(f"coupon {rule.code}: value is required for {ctype.value}")
        value = _money_input(rule.value, f"coupon {rule.code} value")
        if value < 0:
            raise PricingInputError(f"coupon {rule.code}: value must be >= 0")
        if ctype is CouponType.PERCENTAGE and value > HUNDRED:
            raise PricingInputError(f"coupon {rule.code}: percentage must be within [0, 100]")

    if _money_input(rule.min_cart_value or 0, f"coupon {rule.code} min_cart_value") < 0:
        raise PricingInputError(f"coupon {rule.code}: min_cart_value must be >= 0")
    if rule.max_discount_amount is not None:
        cap = _money_input(rule.max_discount_amount, f"coupon {rule.code} max_discount_amount")
        if cap < 0:
            raise PricingInputError(f"coupon {rule.code}: max_discount_amount must be >= 0")


# ---- steps ------------------------------------------------------------------

def calculate_subtotal(items: Sequence[LineItem]) -> Money:
    # running total rounded as each line is added
    subtotal = ZERO
    for it in items:
        subtotal = round_money(subtotal + it.line_total())
    return subtotal


def calculate_tax(subtotal: Money, tax_rate) -> Money:
    rate = _money_input(tax_rate, "tax_rate")
    if rate < 0:
        raise PricingInputError("tax_rate must be >= 0")
    return round_money(subtotal * rate)


def calculate_shipping(subtotal: Money, shipping_rule: ShippingRule) -> Money:
    cost = shipping_rule(subtotal)
    if cost is None:
        raise PricingInputError("shipping rule returned no cost")
    shipping = round_money(_money_input(cost, "shipping"))
    if shipping < 0:
        raise PricingInputError("shipping rule returned a negative cost")
    return shipping


def coupon_discount(rule: CouponRule, subtotal: Money) -> Money:
    ctype = CouponType(rule.type)
    if ctype is CouponType.FREE_SHIPPING:
        return ZERO

    if ctype is CouponType.PERCENTAGE:
        discount = round_money(subtotal * D(rule.value) / HUNDRED)
    else:
        discount = round_money(min(D(rule.value), subtotal))

    if rule.max_discount_amount is not None:
        discount = min(discount, round_money(rule.max_discount_amount))
    return min(discount, subtotal)


def resolve_coupon(code: Optional[str], catalog: Mapping[str, CouponRule],
                   subtotal: Money, now: datetime) -> tuple[Optional[CouponRule], Optional[str]]:
    """Returns (applicable rule, rejection reason). Both are None without a code."""
    if not code or not code.strip():
        return None, None
    rule = catalog.get(code.strip().upper())
    if rule is None:
        return None, COUPON_NOT_FOUND
    validate_coupon(rule)
    if rule.is_expired(now):
        return None, COUPON_EXPIRED
    if subtotal < D(rule.min_cart_value or 0):
        return None, COUPON_BELOW_MINIMUM
    return rule, None


# ---- engine -----------------------------------------------------------------

def recalculate(cart: PricedCart, coupon_catalog: Mapping[str, CouponRule],
                tax_rate, shipping_rule: ShippingRule,
                now: Optional[datetime] = None) -> PricingResult:
    for it in cart.items:
        validate_line_item(it)
    now = now or datetime.now(timezone.utc)

    subtotal = calculate_subtotal(cart.items)
    tax = calculate_tax(subtotal, tax_rate)
    shipping = calculate_shipping(subtotal, shipping_rule)

    rule, rejection = resolve_coupon(cart.coupon_code, coupon_catalog, subtotal, now)
    discount = ZERO
    if rule is not None:
        discount = coupon_discount(rule, subtotal)
        if rule.type == CouponType.FREE_SHIPPING.value:
            shipping = ZERO
    elif rejection:
        logger.info("cart %s: dropping coupon %s (%s)", cart.id, cart.coupon_code, rejection)
    discount = min(discount, subtotal)

    total = round_money(subtotal + tax + shipping - discount)
    if total < 0:
        logger.warning("cart %s: negative total %s clamped to 0", cart.id, total)
        total = ZERO

    priced = replace(
        cart,
        items=tuple(cart.items),
        coupon_code=cart.coupon_code.strip().upper() if rule else None,
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=total,
    )
    logger.debug("cart %s: subtotal=%s tax=%s shipping=%s discount=%s total=%s",
                 cart.id, subtotal, tax, shipping, discount, total)
    return PricingResult(cart=priced, coupon=rule, coupon_rejection=rejection)
