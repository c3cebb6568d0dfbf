# storefront/coupon/routes.py
from __future__ import annotations
from flask import request

from ..errors import BadRequest
from ..model import Coupon
from ..services.coupon_service import create_coupon_from_payload
from ..utils.api import ok
from . import bp

@bp.post("")
def create_coupon():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("request body must be a JSON object")
    c = create_coupon_from_payload(data)
    return ok("Coupon created", c.as_api(), status=201)

@bp.get("")
def list_coupons():
    q = Coupon.query
    active = request.args.get("active")
    if active is not None:
        q = q.filter(Coupon.active == (active.lower() == "true"))

    items = q.order_by(Coupon.code.asc()).all()
    return ok("ok", [c.as_api() for c in items])
