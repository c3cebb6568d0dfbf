# storefront/services/cart_store.py
"""
Cart repository.

One instance is built by the app factory and handed to the cart blueprint
through ``app.extensions["cart_store"]``. Every mutation goes through
:meth:`CartStore._save`, which reprices the cart with the pricing engine and
commits the result in the same transaction, so a cart row never holds totals
computed from anything but its current items and coupon.
"""
from __future__ import annotations

import logging
import threading
import uuid as _uuid
from contextlib import contextmanager
from datetime import datetime, timezone

from ..errors import BadRequest, NotFound
from ..model import Cart, CartItem, Product
from ..pricing import (COUPON_BELOW_MINIMUM, COUPON_EXPIRED, PricingResult,
                       recalculate)
from ..utils.money import D
from .coupon_service import CouponCatalog
from .shipping import ThresholdShippingRule, shipping_options, shipping_rule_for

logger = logging.getLogger(__name__)


def _utcnow():
    return datetime.now(timezone.utc)


def _parse_quantity(raw) -> int:
    if isinstance(raw, bool):
        raise BadRequest("quantity must be an integer >= 1")
    try:
        qty = int(raw)
    except (TypeError, ValueError):
        raise BadRequest("quantity must be an integer >= 1")
    if qty != raw and not (isinstance(raw, str) and raw.strip().isdigit()):
        raise BadRequest("quantity must be an integer >= 1")
    if qty < 1:
        raise BadRequest("quantity must be >= 1")
    return qty


class _CartLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


def _line_from_product(product: Product, qty: int, attributes: dict) -> CartItem:
    return CartItem(
        product_id=product.id,
        name=product.name,
        sku=product.sku,
        image=product.image,
        unit_price=product.effective_price(),
        quantity=qty,
        attributes=attributes,
    )


class CartStore:
    def __init__(self, session, tax_rate, shipping_rule: ThresholdShippingRule | None = None,
                 catalog_factory=CouponCatalog, clock=_utcnow):
        self._session = session
        self.tax_rate = D(tax_rate)
        self.default_shipping = shipping_rule or ThresholdShippingRule()
        self._catalog_factory = catalog_factory
        self._clock = clock
        self._locks: dict[str, _CartLock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, session, config) -> "CartStore":
        rule = ThresholdShippingRule(threshold=D(config["FREE_SHIPPING_THRESHOLD"]),
                                     flat_fee=D(config["FLAT_SHIPPING_FEE"]))
        return cls(session, tax_rate=config["TAX_RATE"], shipping_rule=rule)

    # ---- locking / loading -------------------------------------------------

    @contextmanager
    def _locked(self, cart_uuid: str):
        with self._locks_guard:
            entry = self._locks.setdefault(cart_uuid, _CartLock())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if not entry.holders:
                    del self._locks[cart_uuid]

    def _find(self, cart_uuid: str | None) -> Cart | None:
        if not cart_uuid:
            return None
        # another request may have committed since this session loaded the row
        return (self._session.query(Cart)
                .filter(Cart.uuid == cart_uuid, Cart.status == "active")
                .populate_existing()
                .first())

    def _require(self, cart_uuid: str | None) -> Cart:
        cart = self._find(cart_uuid)
        if cart is None:
            raise NotFound("cart not found")
        return cart

    def _save(self, cart: Cart) -> PricingResult:
        try:
            result = self.price(cart)
            cart.apply_priced(result.cart)
            cart.updated_at = self._clock().replace(tzinfo=None)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return result

    def price(self, cart: Cart) -> PricingResult:
        rule = shipping_rule_for(cart.country_code, cart.shipping_option, self.default_shipping)
        return recalculate(cart.to_priced(), self._catalog_factory(self._session),
                           self.tax_rate, rule, now=self._clock())

    # ---- reads -------------------------------------------------------------

    def get(self, cart_uuid: str) -> Cart:
        return self._require(cart_uuid)

    def get_or_create(self, cart_uuid: str | None) -> Cart:
        cart = self._find(cart_uuid)
        if cart is not None:
            return cart
        cart = Cart(uuid=str(_uuid.uuid4()), status="active")
        self._session.add(cart)
        self._save(cart)
        logger.info("created cart %s", cart.uuid)
        return cart

    def shipping_options(self, cart_uuid: str, country_code: str) -> list[dict]:
        cart = self._require(cart_uuid)
        return shipping_options(country_code, cart.subtotal, self.default_shipping)

    # ---- item mutations ----------------------------------------------------

    def _product(self, product_id) -> Product:
        try:
            pid = int(product_id)
        except (TypeError, ValueError):
            raise BadRequest("invalid productId")
        product = self._session.get(Product, pid)
        if not product or product.status is False:
            raise NotFound("product not found or inactive")
        return product

    def add_item(self, cart_uuid: str, product_id, quantity=1, attributes=None) -> Cart:
        qty = _parse_quantity(quantity)
        attributes = dict(attributes or {})
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            product = self._product(product_id)
            if int(product.count_in_stock or 0) <= 0:
                raise BadRequest("product is out of stock")

            item = next((i for i in cart.items if i.same_line(product.id, attributes)), None)
            new_qty = qty + (item.quantity if item else 0)
            if new_qty > int(product.count_in_stock or 0):
                raise BadRequest("requested quantity not available in stock")

            if item:
                item.quantity = new_qty
            else:
                cart.items.append(_line_from_product(product, qty, attributes))
            self._save(cart)
        return cart

    def replace_items(self, cart_uuid: str, items) -> Cart:
        if not isinstance(items, list):
            raise BadRequest("items must be a list")
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            new_items: list[CartItem] = []
            for entry in items:
                if not isinstance(entry, dict) or not entry.get("productId") or not entry.get("quantity"):
                    continue
                qty = _parse_quantity(entry["quantity"])
                try:
                    product = self._product(entry["productId"])
                except NotFound:
                    continue
                attributes = dict(entry.get("attributes") or {})
                same = next((i for i in new_items if i.same_line(product.id, attributes)), None)
                if same:
                    same.quantity += qty
                    continue
                new_items.append(_line_from_product(product, qty, attributes))
            cart.items = new_items
            self._save(cart)
        return cart

    def _item(self, cart: Cart, item_id) -> CartItem:
        item = next((i for i in cart.items if str(i.id) == str(item_id)), None)
        if not item:
            raise NotFound("item not found in this cart")
        return item

    def update_item(self, cart_uuid: str, item_id, quantity) -> Cart:
        qty = _parse_quantity(quantity)
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            item = self._item(cart, item_id)
            product = self._session.get(Product, item.product_id)
            if product is not None and int(product.count_in_stock or 0) < qty:
                raise BadRequest("requested quantity not available in stock")
            item.quantity = qty
            self._save(cart)
        return cart

    def remove_item(self, cart_uuid: str, item_id) -> Cart:
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            cart.items.remove(self._item(cart, item_id))
            self._save(cart)
        return cart

    def clear(self, cart_uuid: str) -> Cart:
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            cart.items.clear()
            cart.coupon_code = None
            self._save(cart)
        return cart

    # ---- coupon / shipping -------------------------------------------------

    def _rejection_message(self, code: str, reason: str) -> str:
        if reason == COUPON_EXPIRED:
            return "coupon has expired"
        if reason == COUPON_BELOW_MINIMUM:
            rule = self._catalog_factory(self._session).get(code)
            return f"this coupon requires a minimum cart value of {D(rule.min_cart_value):.2f}"
        return "invalid coupon code"

    def apply_coupon(self, cart_uuid: str, code: str) -> tuple[Cart, PricingResult]:
        code = (code or "").strip().upper()
        if not code:
            raise BadRequest("code is required")
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            cart.coupon_code = code
            try:
                result = self.price(cart)
            except Exception:
                self._session.rollback()
                raise
            if result.coupon_rejection:
                # keep whatever coupon the cart had before
                self._session.rollback()
                raise BadRequest(self._rejection_message(code, result.coupon_rejection),
                                 data={"reason": result.coupon_rejection})
            result = self._save(cart)
        return cart, result

    def remove_coupon(self, cart_uuid: str) -> Cart:
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            cart.coupon_code = None
            self._save(cart)
        return cart

    def select_shipping(self, cart_uuid: str, country_code: str, option_id: str) -> Cart:
        country_code = (country_code or "").strip().upper()
        option_id = (option_id or "").strip()
        if len(country_code) != 2:
            raise BadRequest("countryCode must be an ISO 3166 alpha-2 code")
        if not option_id:
            raise BadRequest("optionId is required")
        # raises PricingInputError for options the country does not offer
        shipping_rule_for(country_code, option_id, self.default_shipping)
        with self._locked(cart_uuid):
            cart = self._require(cart_uuid)
            cart.country_code = country_code
            cart.shipping_option = option_id
            self._save(cart)
        return cart
