import threading
from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.orm.exc import StaleDataError

from storefront import create_app
from storefront.config import TestConfig
from storefront.errors import BadRequest, NotFound
from storefront.extensions import db
from storefront.model import Cart, Product
from storefront.pricing import PricingInputError
from storefront.services.cart_store import CartStore
from storefront.services.coupon_service import CouponCatalog, create_coupon_from_payload


@pytest.fixture
def cart(store):
    return store.get_or_create(None)


def _totals(cart):
    return (cart.subtotal, cart.tax, cart.shipping, cart.discount, cart.total)


@pytest.mark.integration
def test_new_cart_is_priced(cart):
    assert cart.uuid
    assert cart.status == "active"
    assert cart.shipping == Decimal("5.99")
    assert cart.total == Decimal("5.99")


@pytest.mark.integration
def test_get_or_create_returns_existing(store, cart):
    assert store.get_or_create(cart.uuid).id == cart.id
    assert store.get_or_create("no-such-cart").id != cart.id


@pytest.mark.integration
def test_add_item_recalculates(store, cart, products):
    cart = store.add_item(cart.uuid, products["bag"], 2)
    assert len(cart.items) == 1
    assert _totals(cart) == (Decimal("80.00"), Decimal("16.00"), Decimal("0"),
                             Decimal("0"), Decimal("96.00"))


@pytest.mark.integration
def test_sale_price_wins(store, cart, products):
    cart = store.add_item(cart.uuid, products["mug"], 1)
    assert cart.items[0].unit_price == Decimal("9.90")
    assert cart.subtotal == Decimal("9.90")


@pytest.mark.integration
def test_same_attributes_merge_into_one_line(store, cart, products):
    store.add_item(cart.uuid, products["mug"], 1, {"color": "red"})
    store.add_item(cart.uuid, products["mug"], 2, {"color": "red"})
    cart = store.add_item(cart.uuid, products["mug"], 1, {"color": "blue"})
    quantities = sorted((i.attributes["color"], i.quantity) for i in cart.items)
    assert quantities == [("blue", 1), ("red", 3)]


@pytest.mark.integration
def test_stepwise_rounding_through_store(store, cart, products):
    store.add_item(cart.uuid, products["pen"], 1, {"ink": "blue"})
    cart = store.add_item(cart.uuid, products["pen"], 1, {"ink": "black"})
    assert cart.subtotal == Decimal("20.02")


@pytest.mark.integration
@pytest.mark.parametrize(
    "name,qty,exc",
    [("gone", 1, BadRequest), ("hidden", 1, NotFound), ("bag", 11, BadRequest), ("bag", 0, BadRequest)],
    ids=["out-of-stock", "inactive", "above-stock", "zero-qty"],
)
def test_add_item_rejections(store, cart, products, name, qty, exc):
    with pytest.raises(exc):
        store.add_item(cart.uuid, products[name], qty)
    assert store.get(cart.uuid).items == []


@pytest.mark.integration
def test_update_and_remove_item_keep_totals_fresh(store, cart, products):
    cart = store.add_item(cart.uuid, products["bag"], 1)
    item_id = cart.items[0].id
    assert cart.total == Decimal("53.99")

    cart = store.update_item(cart.uuid, item_id, 3)
    assert cart.subtotal == Decimal("120.00")
    assert cart.total == Decimal("144.00")

    cart = store.remove_item(cart.uuid, item_id)
    assert cart.items == []
    assert cart.subtotal == Decimal("0")
    assert cart.total == Decimal("5.99")


@pytest.mark.integration
def test_update_unknown_item(store, cart):
    with pytest.raises(NotFound):
        store.update_item(cart.uuid, 999, 1)


@pytest.mark.integration
def test_replace_items_skips_unknown_products(store, cart, products):
    cart = store.replace_items(cart.uuid, [
        {"productId": products["bag"], "quantity": 1},
        {"productId": products["mug"], "quantity": 2},
        {"productId": 987654, "quantity": 1},
        {"productId": products["mug"]},
    ])
    assert sorted(i.quantity for i in cart.items) == [1, 2]
    assert cart.subtotal == Decimal("59.80")
    assert cart.shipping == Decimal("0")


@pytest.mark.integration
def test_apply_coupon_and_cap(store, cart, products):
    store.add_item(cart.uuid, products["lamp"], 2)
    cart, result = store.apply_coupon(cart.uuid, "welcome20")
    assert cart.coupon_code == "WELCOME20"
    assert cart.discount == Decimal("50.00")
    assert cart.total == Decimal("430.00")
    assert result.coupon.type == "percentage"


@pytest.mark.integration
def test_rejected_coupon_keeps_previous_one(store, cart, products):
    store.add_item(cart.uuid, products["bag"], 1)
    store.apply_coupon(cart.uuid, "FREESHIP")
    with pytest.raises(BadRequest) as excinfo:
        store.apply_coupon(cart.uuid, "WELCOME20")
    assert excinfo.value.data == {"reason": "below_minimum"}
    assert "100.00" in excinfo.value.message
    cart = store.get(cart.uuid)
    assert cart.coupon_code == "FREESHIP"
    assert cart.shipping == Decimal("0")


@pytest.mark.integration
def test_unknown_and_expired_coupons(store, cart, products):
    create_coupon_from_payload({"code": "old10", "type": "percentage", "value": 10,
                                "expiresAt": "2020-01-01T00:00:00Z"})
    store.add_item(cart.uuid, products["bag"], 1)
    with pytest.raises(BadRequest) as missing:
        store.apply_coupon(cart.uuid, "NOPE")
    with pytest.raises(BadRequest) as expired:
        store.apply_coupon(cart.uuid, "OLD10")
    assert missing.value.data["reason"] == "not_found"
    assert expired.value.data["reason"] == "expired"


@pytest.mark.integration
def test_coupon_dropped_when_cart_falls_below_minimum(store, cart, products):
    cart = store.add_item(cart.uuid, products["bag"], 2)
    cart, _ = store.apply_coupon(cart.uuid, "SUMMER5")
    assert cart.discount == Decimal("5.00")

    cart = store.update_item(cart.uuid, cart.items[0].id, 1)
    assert cart.coupon_code is None
    assert cart.discount == Decimal("0")
    assert cart.total == Decimal("53.99")


@pytest.mark.integration
def test_clear_resets_items_and_coupon(store, cart, products):
    store.add_item(cart.uuid, products["bag"], 2)
    store.apply_coupon(cart.uuid, "WELCOME10")
    cart = store.clear(cart.uuid)
    assert cart.items == []
    assert cart.coupon_code is None
    assert cart.total == Decimal("5.99")


@pytest.mark.integration
def test_remove_coupon(store, cart, products):
    store.add_item(cart.uuid, products["bag"], 2)
    store.apply_coupon(cart.uuid, "WELCOME10")
    cart = store.remove_coupon(cart.uuid)
    assert cart.coupon_code is None
    assert cart.total == Decimal("96.00")


@pytest.mark.integration
def test_selected_shipping_option(store, cart, products):
    store.add_item(cart.uuid, products["bag"], 2)
    cart = store.select_shipping(cart.uuid, "fr", "express")
    assert cart.country_code == "FR"
    assert cart.shipping == Decimal("9.99")
    assert cart.total == Decimal("105.99")

    cart, _ = store.apply_coupon(cart.uuid, "FREESHIP")
    assert cart.shipping == Decimal("0")
    assert cart.discount == Decimal("0")


@pytest.mark.integration
def test_unavailable_shipping_option(store, cart):
    with pytest.raises(PricingInputError):
        store.select_shipping(cart.uuid, "GB", "pickup")
    with pytest.raises(BadRequest):
        store.select_shipping(cart.uuid, "FRA", "express")


@pytest.mark.integration
def test_shipping_options_use_cart_value(store, cart, products):
    store.add_item(cart.uuid, products["lamp"], 1)
    options = {o["id"]: o for o in store.shipping_options(cart.uuid, "US")}
    assert options["standard"]["isFree"] is True
    assert options["international"]["isFree"] is False


@pytest.mark.integration
def test_unknown_cart_is_not_found(store):
    with pytest.raises(NotFound):
        store.clear("missing")


@pytest.mark.integration
def test_concurrent_writer_is_rejected(store, cart, products):
    cart = store.add_item(cart.uuid, products["bag"], 1)
    cart_id, cart_uuid, item_id = cart.id, cart.uuid, cart.items[0].id

    def catalog_after_foreign_write(session):
        # another process bumps the row version after this one loaded it
        session.connection().execute(
            text("UPDATE cart SET version = version + 1 WHERE uuid = :u"), {"u": cart_uuid})
        return CouponCatalog(session)

    racing = CartStore(db.session, store.tax_rate, store.default_shipping,
                       catalog_factory=catalog_after_foreign_write)
    with pytest.raises(StaleDataError):
        racing.update_item(cart_uuid, item_id, 2)
    fresh = db.session.get(Cart, cart_id)
    assert fresh.items[0].quantity == 1
    assert fresh.total == Decimal("53.99")


@pytest.mark.integration
def test_lock_table_is_released(store, products):
    for _ in range(5):
        cart = store.get_or_create(None)
        store.add_item(cart.uuid, products["bag"], 1)
        store.clear(cart.uuid)
    with pytest.raises(NotFound):
        store.clear("bogus")
    with pytest.raises(NotFound):
        store.remove_coupon(None)
    assert store._locks == {}


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'carts.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}

    app = create_app(FileConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.mark.integration
def test_concurrent_adds_wait_for_each_other(file_app):
    with file_app.app_context():
        product = Product(sku="BAG-40", name="Canvas bag", price=Decimal("40.00"), count_in_stock=10)
        db.session.add(product)
        db.session.commit()
        product_id = product.id
        store = file_app.extensions["cart_store"]
        cart_uuid = store.get_or_create(None).uuid

    barrier = threading.Barrier(2)
    errors = []

    def add_one():
        with file_app.app_context():
            try:
                # both requests load the cart before either takes the lock
                store.get_or_create(cart_uuid)
                barrier.wait(timeout=10)
                store.add_item(cart_uuid, product_id, 1)
            except Exception as exc:
                errors.append(type(exc).__name__)

    threads = [threading.Thread(target=add_one) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    with file_app.app_context():
        cart = store.get(cart_uuid)
        assert [i.quantity for i in cart.items] == [2]
        assert cart.total == Decimal("96.00")
    assert store._locks == {}
