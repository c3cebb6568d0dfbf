# storefront/cli.py
from decimal import Decimal

import click
from flask import current_app
from sqlalchemy import func

from .extensions import db
from .model import Product
from .services.coupon_service import seed_demo_coupons

DEMO_PRODUCTS = (
    {"sku": "TSHIRT-001", "name": "Organic cotton t-shirt", "price": Decimal("29.99"), "count_in_stock": 50},
    {"sku": "MUG-002", "name": "Ceramic mug", "price": Decimal("12.50"), "price_discount": Decimal("9.90"), "count_in_stock": 120},
    {"sku": "BAG-003", "name": "Canvas tote bag", "price": Decimal("40.00"), "count_in_stock": 30},
)

@click.command("seed-catalog")
@click.option("--coupons/--no-coupons", default=True, help="Seed the demo coupon codes.")
@click.option("--products/--no-products", default=True, help="Seed a few demo products.")
def seed_catalog(coupons, products):
    """Insert demo products and coupons that are not present yet."""
    if products:
        for p in DEMO_PRODUCTS:
            if Product.query.filter(func.upper(Product.sku) == p["sku"]).first():
                continue
            db.session.add(Product(**p))
        db.session.commit()
        click.echo(f"Products: {Product.query.count()}")
    if coupons:
        created = seed_demo_coupons(current_app.config.get("COUPON_SEED_EXPIRES_AT") or None)
        click.echo(f"Coupons created: {', '.join(created) or 'none'}")

def register_cli(app):
    app.cli.add_command(seed_catalog)
