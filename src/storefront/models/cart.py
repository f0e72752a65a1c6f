from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Iterable, NamedTuple
from decimal import Decimal
import logging

from storefront.models.pricing import PriceResult, StockEntry

logger = logging.getLogger(__name__)


class LineKey(NamedTuple):
    """Uniqueness key of a cart line"""
    product_id: int
    variant_id: int
    size_id: int


@dataclass
class CartLineItem:
    """One (product, variant, size) entry in a cart"""
    product_id: int
    variant_id: int
    size_id: int
    quantity: int
    unit_price: Optional[Decimal] = None  # Price when added; display cache only
    product_name: str = ""
    variant_name: str = ""
    size_name: str = ""
    image_url: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    line_id: Optional[int] = None  # Backend row id

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_id, self.variant_id, self.size_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "lineId": self.line_id,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "sizeId": self.size_id,
            "quantity": self.quantity,
            "unitPrice": str(self.unit_price) if self.unit_price is not None else None,
            "productName": self.product_name,
            "variantName": self.variant_name,
            "sizeName": self.size_name,
            "imageUrl": self.image_url,
            "category": self.category,
            "brand": self.brand,
        }


@dataclass
class Cart:
    """Canonical cart contents as last reported by the backend"""
    cart_id: Optional[int] = None
    items: List[CartLineItem] = field(default_factory=list)

    @classmethod
    def from_line_items(cls, items: Iterable[CartLineItem], cart_id: Optional[int] = None) -> "Cart":
        """
        Build a cart keeping at most one line per (product, variant, size)

        Duplicate triples are merged by summing quantities; lines with a
        quantity below 1 are dropped.
        """
        merged: Dict[LineKey, CartLineItem] = {}
        for item in items:
            if item.quantity < 1:
                logger.warning(f"Dropping cart line {item.key} with quantity {item.quantity}")
                continue
            existing = merged.get(item.key)
            if existing is None:
                merged[item.key] = item
            else:
                logger.warning(f"Merging duplicate cart line {item.key}")
                existing.quantity += item.quantity
        return cls(cart_id=cart_id, items=list(merged.values()))

    @property
    def total_items(self) -> int:
        """Sum of quantities"""
        return sum(item.quantity for item in self.items)

    @property
    def line_count(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    def get_item(self, product_id: int, variant_id: int, size_id: int) -> Optional[CartLineItem]:
        """Find a line by its triple"""
        key = LineKey(product_id, variant_id, size_id)
        return next((item for item in self.items if item.key == key), None)


@dataclass
class PricedLine:
    """A cart line with its freshly resolved price and stock state"""
    item: CartLineItem
    price: PriceResult
    stock_entry: Optional[StockEntry] = None

    @property
    def line_final(self) -> Decimal:
        return self.price.final_price * self.item.quantity

    @property
    def line_original(self) -> Decimal:
        return self.price.original_price * self.item.quantity

    @property
    def out_of_stock(self) -> bool:
        return self.stock_entry is None or self.stock_entry.quantity_available == 0

    @property
    def insufficient_stock(self) -> bool:
        return (
            self.stock_entry is not None
            and 0 < self.stock_entry.quantity_available < self.item.quantity
        )


@dataclass
class PricedCart:
    """Displayable cart state; every total is derived from the lines"""
    lines: List[PricedLine] = field(default_factory=list)
    base_currency: str = "MXN"
    cart_id: Optional[int] = None

    @property
    def total_items(self) -> int:
        return sum(line.item.quantity for line in self.lines)

    @property
    def total_original(self) -> Decimal:
        return sum((line.line_original for line in self.lines), Decimal("0"))

    @property
    def total_final(self) -> Decimal:
        return sum((line.line_final for line in self.lines), Decimal("0"))

    @property
    def total_discount(self) -> Decimal:
        return self.total_original - self.total_final

    @property
    def has_discounts(self) -> bool:
        return any(line.price.has_discount for line in self.lines)

    @property
    def has_unavailable_lines(self) -> bool:
        return any(line.out_of_stock or line.insufficient_stock for line in self.lines)
