import os
from decimal import Decimal


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # pricing
    TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.20"))
    FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "50.00"))
    FLAT_SHIPPING_FEE = Decimal(os.getenv("FLAT_SHIPPING_FEE", "5.99"))

    # ISO8601; empty means seeded coupons never expire
    COUPON_SEED_EXPIRES_AT = os.getenv("COUPON_SEED_EXPIRES_AT", "")

    @staticmethod
    def init_app(app):
        if app.config.get("SQLALCHEMY_DATABASE_URI"):
            return
        if not os.getenv("DATABASE_URL"):
            os.makedirs(app.instance_path, exist_ok=True)
            app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'storefront.db')}"
        else:
            app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    TAX_RATE = Decimal("0.20")
    FREE_SHIPPING_THRESHOLD = Decimal("50.00")
    FLAT_SHIPPING_FEE = Decimal("5.99")
    COUPON_SEED_EXPIRES_AT = ""
