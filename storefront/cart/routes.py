# storefront/cart/routes.py
from __future__ import annotations
from flask import current_app, request

from ..errors import BadRequest
from ..services.cart_store import CartStore
from ..utils.api import ok
from ..utils.money import to_float_money
from . import bp

CART_HEADER = "X-Cart-Id"

# ---- helpers ---------------------------------------------------------------

def _store() -> CartStore:
    return current_app.extensions["cart_store"]

def _cart_id() -> str | None:
    return request.headers.get(CART_HEADER)

def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("request body must be a JSON object")
    return data

def _cart_response(msg, cart, data=None, status=200):
    resp = ok(msg, data if data is not None else cart.as_api(), status=status)
    resp.headers[CART_HEADER] = cart.uuid            # <- return UUID to client
    return resp

# ---- cart ------------------------------------------------------------------

@bp.get("")
def get_cart():
    cart = _store().get_or_create(_cart_id())
    return _cart_response("cart", cart)

@bp.post("")
def add_item():
    """
    Body: { "productId": int, "quantity": int = 1, "attributes": {name: value} }
    Header: X-Cart-Id: <uuid>   (a new cart is created when missing)
    """
    data = _body()
    if not data.get("productId"):
        raise BadRequest("productId is required")
    store = _store()
    cart = store.get_or_create(_cart_id())
    attributes = data.get("attributes") or {}
    if not isinstance(attributes, dict):
        raise BadRequest("attributes must be an object")
    cart = store.add_item(cart.uuid, data["productId"], data.get("quantity", 1), attributes)
    return _cart_response("item added", cart)

@bp.put("")
def replace_cart():
    """Body: { "items": [{ "productId", "quantity", "attributes" }] }"""
    data = _body()
    items = data.get("items")
    if not isinstance(items, list):
        raise BadRequest("items list is required")
    store = _store()
    cart = store.get_or_create(_cart_id())
    cart = store.replace_items(cart.uuid, items)
    return _cart_response("cart updated", cart)

@bp.delete("")
def clear_cart():
    cart = _store().clear(_cart_id())
    return _cart_response("cart cleared", cart)

# ---- items -----------------------------------------------------------------

@bp.patch("/items/<item_id>")
def update_item(item_id: str):
    """Body: { "quantity": int >= 1 }"""
    data = _body()
    if "quantity" not in data:
        raise BadRequest("quantity is required")
    cart = _store().update_item(_cart_id(), item_id, data["quantity"])
    return _cart_response("item updated", cart)

@bp.delete("/items/<item_id>")
def remove_item(item_id: str):
    cart = _store().remove_item(_cart_id(), item_id)
    return _cart_response("item removed", cart)

# ---- coupons ---------------------------------------------------------------

@bp.post("/coupons")
def apply_coupon():
    """
    Body: { "code": "WELCOME20" }
    Responds 400 with data.reason (not_found | expired | below_minimum)
    when the coupon does not apply; the cart keeps its previous coupon.
    """
    data = _body()
    code = data.get("code")
    if not isinstance(code, str) or not code.strip():
        raise BadRequest("code is required")
    cart, result = _store().apply_coupon(_cart_id(), code)
    coupon = result.coupon
    return _cart_response("coupon applied", cart, {
        "cart": cart.as_api(),
        "coupon": {
            "code": coupon.code,
            "type": coupon.type,
            "value": to_float_money(coupon.value) if coupon.value is not None else None,
            "discount": to_float_money(result.cart.discount),
        },
    })

@bp.delete("/coupons")
def remove_coupon():
    cart = _store().remove_coupon(_cart_id())
    return _cart_response("coupon removed", cart)

# ---- shipping --------------------------------------------------------------

@bp.get("/shipping")
def list_shipping_options():
    """Query: countryCode, postalCode"""
    country = (request.args.get("countryCode") or "").strip()
    postal = (request.args.get("postalCode") or "").strip()
    if not country or not postal:
        raise BadRequest("countryCode and postalCode are required")
    store = _store()
    cart = store.get(_cart_id())
    options = store.shipping_options(cart.uuid, country)
    return _cart_response("shipping options", cart, {"shippingOptions": options})

@bp.put("/shipping")
def select_shipping():
    """Body: { "countryCode": "FR", "optionId": "express" }"""
    data = _body()
    cart = _store().select_shipping(_cart_id(), data.get("countryCode"), data.get("optionId"))
    return _cart_response("shipping updated", cart)
