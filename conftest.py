import logging
from decimal import Decimal

import pytest

from storefront import create_app
from storefront.config import TestConfig
from storefront.extensions import db
from storefront.model import Product
from storefront.services.coupon_service import seed_demo_coupons


@pytest.fixture(scope="function")
def app():
    app = create_app(TestConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def client(app):
    return app.test_client()


@pytest.fixture(scope="function")
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture(scope="function")
def products(app):
    """Catalog rows keyed by a short name -> product id."""
    rows = {
        "bag": Product(sku="BAG-40", name="Canvas bag", price=Decimal("40.00"), count_in_stock=10),
        "mug": Product(sku="MUG-SALE", name="Mug", price=Decimal("12.50"),
                       price_discount=Decimal("9.90"), count_in_stock=100),
        "lamp": Product(sku="LAMP-200", name="Desk lamp", price=Decimal("200.00"), count_in_stock=5),
        "pen": Product(sku="PEN-10005", name="Pen", price=Decimal("10.005"), count_in_stock=50),
        "gone": Product(sku="GONE", name="Sold out", price=Decimal("5.00"), count_in_stock=0),
        "hidden": Product(sku="HIDDEN", name="Inactive", price=Decimal("5.00"),
                          count_in_stock=5, status=False),
    }
    with app.app_context():
        db.session.add_all(rows.values())
        db.session.commit()
        return {name: p.id for name, p in rows.items()}


@pytest.fixture(scope="function")
def coupons(app):
    with app.app_context():
        return seed_demo_coupons()


@pytest.fixture(scope="function")
def store(app_ctx, products, coupons):
    return app_ctx.extensions["cart_store"]


@pytest.fixture(scope="function")
def log_capture(caplog):
    caplog.set_level(logging.INFO, logger="storefront.pricing")
    return caplog
