from .common_schemas import BackendEnvelope, BackendModel
from .cart_schemas import (
    CartItemPayload, CartResponse, CartCountResponse, MutationResponse,
    AddToCartRequest, UpdateCartItemRequest, RemoveCartItemRequest,
)
from .product_schemas import (
    StockEntryPayload, StockResponse, PromotionPayload, PromotionsResponse, ExchangeRatesResponse,
)

__all__ = [
    "BackendEnvelope", "BackendModel",
    "CartItemPayload", "CartResponse", "CartCountResponse", "MutationResponse",
    "AddToCartRequest", "UpdateCartItemRequest", "RemoveCartItemRequest",
    "StockEntryPayload", "StockResponse", "PromotionPayload", "PromotionsResponse",
    "ExchangeRatesResponse",
]
