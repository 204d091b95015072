from .base import Base
from .order import Order
from .product import Product, ProductVariant
from .promo_code import PromoCode
from .refund import Refund, RefundMessage

__all__ = [
    "Base",
    "Order",
    "Product",
    "ProductVariant",
    "PromoCode",
    "Refund",
    "RefundMessage",
]
