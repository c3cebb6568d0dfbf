# --- storefront/model/coupon.py ---

from ..extensions import db
from sqlalchemy.sql import func
from ..pricing import CouponRule
from ..utils.money import D, to_float_money

class Coupon(db.Model):
    __tablename__ = "coupon"

    id = db.Column(db.Integer, primary_key=True)
    # stored uppercase
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)

    # "percentage" | "fixed" | "free_shipping"
    ctype = db.Column(db.String(16), nullable=False, default="percentage")
    value = db.Column(db.Numeric(12, 2), nullable=True)

    active = db.Column(db.Boolean, default=True, index=True)

    min_cart_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    max_discount_amount = db.Column(db.Numeric(12, 2), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=True)   # naive UTC

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def to_rule(self) -> CouponRule:
        return CouponRule(
            code=self.code.upper(),
            type=self.ctype,
            value=D(self.value) if self.value is not None else None,
            min_cart_value=D(self.min_cart_value or 0),
            max_discount_amount=D(self.max_discount_amount) if self.max_discount_amount is not None else None,
            expires_at=self.expires_at,
        )

    def as_api(self):
        return {
            "id": self.id,
            "code": self.code,
            "type": self.ctype,
            "value": to_float_money(self.value) if self.value is not None else None,
            "minCartValue": to_float_money(self.min_cart_value or 0),
            "maxDiscountAmount": (to_float_money(self.max_discount_amount)
                                  if self.max_discount_amount is not None else None),
            "expiresAt": self.expires_at.isoformat() + "Z" if self.expires_at else None,
            "active": self.active,
        }
