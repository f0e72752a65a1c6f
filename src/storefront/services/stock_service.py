from decimal import Decimal
from typing import Dict, List, Optional
import logging
import threading

from storefront.core.exceptions import ExternalServiceError, ValidationError
from storefront.models.pricing import StockEntry
from storefront.repositories.product_repository import ProductRepository

logger = logging.getLogger(__name__)


class StockResolver:
    """Per-variant stock; never cached beyond the caller's own snapshot"""

    def __init__(self, repository: ProductRepository):
        self.repository = repository

    def get_stock_for_variant(self, variant_id: int) -> List[StockEntry]:
        """
        Stock broken down by size for exactly one variant

        A failed fetch yields an empty list (every size unavailable).
        """
        try:
            return self.repository.get_variant_stock(variant_id)
        except ExternalServiceError as e:
            logger.warning(f"Stock lookup failed for variant {variant_id}: {e.message}; treating as empty")
            return []

    def get_stock_for_variants(self, variant_ids) -> Dict[int, List[StockEntry]]:
        """One lookup per distinct variant"""
        return {variant_id: self.get_stock_for_variant(variant_id) for variant_id in dict.fromkeys(variant_ids)}


class VariantSelection:
    """
    Selection state of a product page: variant, its stock, size and quantity

    Business Rules:
    - Selecting a variant clears the size (and stock) before stock is fetched
    - Stock is always fetched for the newly selected variant, never reused
    - A stock response requested for a superseded selection is discarded
    - Only sizes with quantity available can be selected
    """

    def __init__(self, stock_resolver: StockResolver, product_id: int):
        self.stock_resolver = stock_resolver
        self.product_id = product_id
        self.variant_id: Optional[int] = None
        self.variant_price: Optional[Decimal] = None
        self.stock: List[StockEntry] = []
        self.selected_size: Optional[StockEntry] = None
        self.quantity = 1
        self.stock_loading = False
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def select_variant(self, variant_id: int, variant_price: Optional[Decimal] = None) -> int:
        """Switch variant and invalidate everything tied to the old one

        Returns the generation a subsequent load_stock must be called with.
        """
        with self._lock:
            self._generation += 1
            self.variant_id = variant_id
            self.variant_price = variant_price
            self.selected_size = None
            self.stock = []
            self.quantity = 1
            self.stock_loading = True
            return self._generation

    def load_stock(self, generation: int) -> bool:
        """Fetch stock for the variant selected under generation; False if discarded"""
        with self._lock:
            variant_id = self.variant_id
            if generation != self._generation or variant_id is None:
                return False

        entries = self.stock_resolver.get_stock_for_variant(variant_id)

        with self._lock:
            if generation != self._generation:
                logger.warning(f"Discarding stale stock response for variant {variant_id}")
                return False
            self.stock = entries
            self.stock_loading = False
        return True

    def change_variant(self, variant_id: int, variant_price: Optional[Decimal] = None) -> List[StockEntry]:
        self.load_stock(self.select_variant(variant_id, variant_price))
        return list(self.stock)

    def stock_entry(self, size_id: int) -> Optional[StockEntry]:
        return next((entry for entry in self.stock if entry.size_id == size_id), None)

    def is_size_selectable(self, size_id: int) -> bool:
        entry = self.stock_entry(size_id)
        return entry is not None and entry.is_selectable

    def selectable_sizes(self) -> List[StockEntry]:
        return [entry for entry in self.stock if entry.is_selectable]

    def first_available_size(self) -> Optional[StockEntry]:
        return next(iter(self.selectable_sizes()), None)

    def select_size(self, size_id: int) -> StockEntry:
        if self.variant_id is None:
            raise ValidationError("Select a variant first")
        entry = self.stock_entry(size_id)
        if entry is None:
            raise ValidationError(f"Size {size_id} is not offered for variant {self.variant_id}")
        if not entry.is_selectable:
            raise ValidationError(f"Size {entry.size_name or size_id} is out of stock")
        self.selected_size = entry
        if self.quantity > entry.quantity_available:
            self.quantity = entry.quantity_available
        return entry

    def set_quantity(self, quantity: int) -> None:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if self.selected_size is not None and quantity > self.selected_size.quantity_available:
            raise ValidationError(
                f"Only {self.selected_size.quantity_available} units available"
            )
        self.quantity = quantity

    def unit_price(self) -> Optional[Decimal]:
        """Size price when the selected size has one, else the variant price"""
        if self.selected_size is not None and self.selected_size.size_price is not None:
            return self.selected_size.size_price
        return self.variant_price

    def validate_for_add(self) -> StockEntry:
        """The selected size, once the selection is complete enough to add"""
        if self.variant_id is None:
            raise ValidationError("Select a variant before adding to cart")
        if self.selected_size is None:
            raise ValidationError("Select a size before adding to cart")
        price = self.unit_price()
        if price is None or price <= 0:
            raise ValidationError("This item has no valid price")
        return self.selected_size
