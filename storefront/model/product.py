# storefront/model/product.py
from ..extensions import db
from sqlalchemy.sql import func
from ..utils.money import D

class Product(db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), unique=True, index=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    image = db.Column(db.String(1024))

    price = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    price_discount = db.Column(db.Numeric(12, 3), nullable=True)   # sale price, wins when set
    count_in_stock = db.Column(db.Integer, default=0)
    status = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, server_default=func.now())
    updated_at = db.Column(db.DateTime, onupdate=func.now(), server_default=func.now())

    def effective_price(self):
        return D(self.price_discount) if self.price_discount else D(self.price)

    def as_api(self):
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "image": self.image,
            "price": float(D(self.price)),
            "priceDiscount": float(D(self.price_discount)) if self.price_discount else None,
            "countInStock": self.count_in_stock,
            "status": self.status,
        }
