from .pricing import (
    Promotion, PromotionScope, StockEntry, PriceResult, PriceRange, ExchangeRateTable
)
from .cart import Cart, CartLineItem, LineKey, PricedCart, PricedLine
from .session import CartSession

__all__ = [
    "Promotion", "PromotionScope", "StockEntry", "PriceResult", "PriceRange",
    "ExchangeRateTable",
    "Cart", "CartLineItem", "LineKey", "PricedCart", "PricedLine",
    "CartSession",
]
