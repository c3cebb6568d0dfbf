# ------ storefront/model/__init__.py ------

from .product import Product
from .cart import Cart, CartItem
from .coupon import Coupon

__all__ = [
    "Product",
    "Cart",
    "CartItem",
    "Coupon",
]
