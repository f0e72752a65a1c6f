from typing import List, Optional
import logging

import requests

from storefront.models.pricing import StockEntry
from storefront.repositories.base import BaseApiRepository
from storefront.schemas.product_schemas import PromotionPayload, PromotionsResponse, StockResponse

logger = logging.getLogger(__name__)


class ProductRepository(BaseApiRepository):
    """Per-variant stock lookups"""

    service_name = "stock"

    def __init__(
        self,
        base_url: str,
        http_session: Optional[requests.Session] = None,
        timeout: float = 10,
        stock_path: str = "/api/products/stock/{variant_id}"
    ):
        super().__init__(base_url, http_session, timeout)
        self.stock_path = stock_path

    def get_variant_stock(self, variant_id: int) -> List[StockEntry]:
        """
        Stock broken down by size for exactly one variant

        Raises:
            ExternalServiceError: request failed or payload unrecognised
        """
        body = self.execute_json("GET", self.stock_path.format(variant_id=variant_id))
        entries = self.parse(StockResponse, body).entries()
        logger.info(f"Variant {variant_id}: {len(entries)} sizes in stock response")
        return entries


class PromotionRepository(BaseApiRepository):
    """Promotion lookups scoped to a product and, optionally, its category"""

    service_name = "promotions"

    def get_for_product(self, product_id: int, category_id: Optional[str] = None) -> List[PromotionPayload]:
        params = {"categoria": category_id} if category_id else None
        body = self.execute_json("GET", f"/api/promotions/product/{product_id}", params=params)
        return self.parse(PromotionsResponse, body).items()

    def get_active(self) -> List[PromotionPayload]:
        body = self.execute_json("GET", "/api/promotions/active")
        return self.parse(PromotionsResponse, body).items()
