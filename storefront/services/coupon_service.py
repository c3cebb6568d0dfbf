# storefront/services/coupon_service.py
from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import InvalidOperation

from sqlalchemy import func

from ..errors import BadRequest, Conflict
from ..extensions import db
from ..model import Coupon
from ..pricing import CouponRule, CouponType, PricingInputError, validate_coupon
from ..utils.money import D, round_money

DEMO_COUPONS = (
    {"code": "WELCOME10", "type": "percentage", "value": 10},
    {"code": "WELCOME20", "type": "percentage", "value": 20, "maxDiscountAmount": 50, "minCartValue": 100},
    {"code": "FREESHIP", "type": "free_shipping"},
    {"code": "SUMMER5", "type": "fixed", "value": 5, "minCartValue": 50},
)


class CouponCatalog(Mapping):
    """Read-only view of active coupons keyed by uppercase code."""

    def __init__(self, session=None):
        self._session = session or db.session

    def _query(self):
        return self._session.query(Coupon).filter(Coupon.active.is_(True))

    def __getitem__(self, code: str) -> CouponRule:
        row = self._query().filter(func.upper(Coupon.code) == (code or "").strip().upper()).first()
        if row is None:
            raise KeyError(code)
        return row.to_rule()

    def __iter__(self):
        return iter([c.code for c in self._query().order_by(Coupon.code).all()])

    def __len__(self):
        return self._query().count()


def _parse_iso8601(s):
    if not s: return None
    s = str(s).strip()
    if s.endswith("Z"): s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _optional_money(data: dict, key: str):
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    try:
        amount = D(raw)
    except (InvalidOperation, ValueError):
        raise BadRequest(f"{key} must be numeric")
    if not amount.is_finite():
        raise BadRequest(f"{key} must be numeric")
    # columns hold cents; anything finer would be rounded away on insert
    if amount != round_money(amount):
        raise BadRequest(f"{key} must have at most 2 decimal places")
    return amount


def create_coupon_from_payload(data: dict) -> Coupon:
    code = (data.get("code") or "").strip().upper()
    ctype = (data.get("type") or "percentage").lower().strip()
    if not code:
        raise BadRequest("code is required")
    if ctype not in {t.value for t in CouponType}:
        raise BadRequest("type must be 'percentage', 'fixed' or 'free_shipping'")

    value = _optional_money(data, "value")
    min_cart_value = _optional_money(data, "minCartValue") or D(0)
    max_discount_amount = _optional_money(data, "maxDiscountAmount")

    expires_at = _parse_iso8601(data.get("expiresAt"))
    if data.get("expiresAt") and not expires_at:
        raise BadRequest("Invalid datetime format for expiresAt")

    rule = CouponRule(code=code, type=ctype, value=value, min_cart_value=min_cart_value,
                      max_discount_amount=max_discount_amount, expires_at=expires_at)
    try:
        validate_coupon(rule)
    except PricingInputError as e:
        raise BadRequest(str(e))

    existing = Coupon.query.filter(func.upper(Coupon.code) == code).first()
    if existing:
        raise Conflict("Coupon code already exists")

    c = Coupon(
        code=code, ctype=ctype, value=value, active=bool(data.get("active", True)),
        min_cart_value=min_cart_value, max_discount_amount=max_discount_amount,
        expires_at=expires_at,
    )
    db.session.add(c)
    db.session.commit()
    return c


def seed_demo_coupons(expires_at: str | None = None) -> list[str]:
    """Insert the storefront's demo coupons that are not in the table yet."""
    created = []
    for entry in DEMO_COUPONS:
        if Coupon.query.filter(func.upper(Coupon.code) == entry["code"]).first():
            continue
        payload = dict(entry)
        if expires_at:
            payload["expiresAt"] = expires_at
        created.append(create_coupon_from_payload(payload).code)
    return created
