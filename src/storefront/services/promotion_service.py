from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging
import threading

from storefront.core.exceptions import ExternalServiceError
from storefront.models.pricing import Promotion
from storefront.repositories.product_repository import PromotionRepository
from storefront.schemas.product_schemas import PromotionPayload
from storefront.utils.date_utils import DateUtils

logger = logging.getLogger(__name__)


class PromotionResolver:
    """
    Promotion lookup with a cache that lives as long as the resolver

    Business Rules:
    - One resolver per page view (per web request); results are cached
      per product and never re-fetched while it lives
    - "No promotion" is a normal result and is cached like any other
    - A failed lookup degrades to no promotion and is not cached
    - Among applicable promotions the most specific scope wins
      (product, then category, then everything); within one scope the
      backend's order decides
    """

    def __init__(
        self,
        repository: PromotionRepository,
        clock: Callable[[], datetime] = DateUtils.now_utc
    ):
        self.repository = repository
        self.clock = clock
        self._cache: Dict[int, Optional[Promotion]] = {}
        self._lock = threading.Lock()

    def select(
        self,
        payloads: Sequence[PromotionPayload],
        product_id: Optional[int] = None,
        category_id: Optional[str] = None
    ) -> Optional[Promotion]:
        """Choose the single promotion to apply, or None"""
        now = self.clock()
        candidates: List[Tuple[int, Promotion]] = []
        for payload in payloads:
            if not payload.is_applicable(now):
                logger.debug(f"Skipping inapplicable promotion {payload.promotion_id}")
                continue
            promotion = payload.to_promotion(product_id, category_id)
            candidates.append((promotion.scope.rank, promotion))
        if not candidates:
            return None
        # sorted() is stable, so backend order breaks ties within a scope
        return sorted(candidates, key=lambda pair: pair[0])[0][1]

    def resolve(self, product_id: int, category_id: Optional[str] = None) -> Optional[Promotion]:
        with self._lock:
            if product_id in self._cache:
                return self._cache[product_id]

        try:
            payloads = self.repository.get_for_product(product_id, category_id)
        except ExternalServiceError as e:
            logger.warning(f"Promotion lookup failed for product {product_id}: {e.message}")
            return None

        promotion = self.select(payloads, product_id, category_id)
        with self._lock:
            self._cache[product_id] = promotion
        if promotion is not None:
            logger.info(f"Product {product_id}: {promotion.percentage_off}% off ({promotion.scope.value})")
        return promotion

    def peek(self, product_id: int) -> Optional[Promotion]:
        """Cached promotion without any I/O"""
        with self._lock:
            return self._cache.get(product_id)

    def is_cached(self, product_id: int) -> bool:
        with self._lock:
            return product_id in self._cache

    def active(self) -> List[Promotion]:
        """
        Every currently applicable promotion; failures yield an empty list

        Also warms the cache for each product a promotion targets by id.
        Product scope outranks every other scope, so those entries match
        what resolve() would pick. Entries already cached are kept.
        """
        try:
            payloads = self.repository.get_active()
        except ExternalServiceError as e:
            logger.warning(f"Active promotion lookup failed: {e.message}")
            return []
        now = self.clock()
        applicable = [p for p in payloads if p.is_applicable(now)]

        by_product: Dict[int, List[PromotionPayload]] = {}
        for payload in applicable:
            for product_id in payload.targeted_product_ids():
                by_product.setdefault(product_id, []).append(payload)
        for product_id, targeted in by_product.items():
            promotion = self.select(targeted, product_id)
            with self._lock:
                self._cache.setdefault(product_id, promotion)
        if by_product:
            logger.debug(f"Warmed promotion cache for products {sorted(by_product)}")

        return [p.to_promotion() for p in applicable]

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
