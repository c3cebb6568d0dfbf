# storefront/model/cart.py
from __future__ import annotations
import uuid as _uuid
from sqlalchemy.sql import func
from ..extensions import db
from ..pricing import LineItem, PricedCart
from ..utils.money import D, to_float_money


class Cart(db.Model):
    __tablename__ = "cart"

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, index=True, default=lambda: str(_uuid.uuid4()))
    status = db.Column(db.String(16), default="active", index=True)

    coupon_code = db.Column(db.String(64), nullable=True)
    country_code = db.Column(db.String(2), nullable=True)
    shipping_option = db.Column(db.String(32), nullable=True)

    # derived, written only from the pricing engine
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    items = db.relationship(
        "CartItem",
        backref="cart",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CartItem.id.asc()",
    )

    __mapper_args__ = {"version_id_col": version}

    # --------- pricing engine bridge ----------
    def to_priced(self) -> PricedCart:
        return PricedCart(
            id=self.uuid,
            items=tuple(i.to_line_item() for i in self.items),
            coupon_code=self.coupon_code,
            subtotal=D(self.subtotal),
            tax=D(self.tax),
            shipping=D(self.shipping),
            discount=D(self.discount),
            total=D(self.total),
        )

    def apply_priced(self, priced: PricedCart) -> None:
        self.coupon_code = priced.coupon_code
        self.subtotal = priced.subtotal
        self.tax = priced.tax
        self.shipping = priced.shipping
        self.discount = priced.discount
        self.total = priced.total

    def as_api(self):
        return {
            "id": self.uuid,
            "status": self.status,
            "items": [i.as_api() for i in self.items],
            "couponCode": self.coupon_code,
            "countryCode": self.country_code,
            "shippingOption": self.shipping_option,
            "subtotal": to_float_money(self.subtotal),
            "tax": to_float_money(self.tax),
            "shipping": to_float_money(self.shipping),
            "discount": to_float_money(self.discount),
            "total": to_float_money(self.total),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class CartItem(db.Model):
    __tablename__ = "cart_item"

    id = db.Column(db.Integer, primary_key=True)
    cart_id = db.Column(db.Integer, db.ForeignKey("cart.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64))
    image = db.Column(db.String(1024))
    unit_price = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    attributes = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def same_line(self, product_id: int, attributes: dict | None) -> bool:
        return self.product_id == product_id and (self.attributes or {}) == (attributes or {})

    def to_line_item(self) -> LineItem:
        return LineItem(
            product_id=str(self.product_id),
            unit_price=D(self.unit_price),
            quantity=self.quantity,
            attributes=dict(self.attributes or {}),
        )

    def as_api(self):
        return {
            "id": self.id,
            "productId": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "image": self.image,
            "price": float(D(self.unit_price)),
            "quantity": self.quantity,
            "attributes": self.attributes or {},
            "lineTotal": to_float_money(self.to_line_item().line_total()),
        }
