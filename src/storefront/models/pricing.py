from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, Optional

from storefront.utils.date_utils import DateUtils


class PromotionScope(str, Enum):
    """Where a promotion applies, most specific first"""
    PRODUCT = "product"
    CATEGORY = "category"
    ALL = "all"

    @property
    def rank(self) -> int:
        return list(PromotionScope).index(self)


PERCENTAGE = "percentage"


@dataclass(frozen=True)
class Promotion:
    """A percentage discount scoped to a product or category"""
    percentage_off: Decimal
    type: str = PERCENTAGE
    scope: PromotionScope = PromotionScope.ALL
    promotion_id: Optional[int] = None
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "promotionId": self.promotion_id,
            "name": self.name,
            "type": self.type,
            "percentageOff": str(self.percentage_off),
            "scope": self.scope.value,
        }


@dataclass(frozen=True)
class StockEntry:
    """Availability of one size of one variant"""
    size_id: int
    size_name: str
    quantity_available: int
    size_price: Optional[Decimal] = None  # Overrides the variant price when set

    @property
    def is_selectable(self) -> bool:
        return self.quantity_available > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sizeId": self.size_id,
            "sizeName": self.size_name,
            "quantityAvailable": self.quantity_available,
            "sizePrice": str(self.size_price) if self.size_price is not None else None,
            "selectable": self.is_selectable,
        }


@dataclass(frozen=True)
class PriceResult:
    """Price of one unit before and after promotion"""
    final_price: Decimal
    original_price: Decimal
    has_discount: bool
    discount_percentage: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "finalPrice": str(self.final_price),
            "originalPrice": str(self.original_price),
            "hasDiscount": self.has_discount,
            "discountPercentage": str(self.discount_percentage),
        }


@dataclass(frozen=True)
class PriceRange:
    """Lowest and highest unit price across a variant's sizes"""
    low: PriceResult
    high: PriceResult

    @classmethod
    def single(cls, price: PriceResult) -> "PriceRange":
        return cls(low=price, high=price)

    @property
    def is_range(self) -> bool:
        return self.low.final_price != self.high.final_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isRange": self.is_range,
            "min": self.low.to_dict(),
            "max": self.high.to_dict(),
        }


@dataclass
class ExchangeRateTable:
    """Rates relative to the anchor currency, which is always exactly 1"""
    rates: Dict[str, Decimal]
    anchor: str = "USD"
    fetched_at: Optional[datetime] = None
    source: str = "default"  # live, cache, default

    def __post_init__(self):
        self.rates = dict(self.rates)
        self.rates[self.anchor] = Decimal("1")

    def rate_for(self, currency: str) -> Optional[Decimal]:
        return self.rates.get(currency)

    def age_seconds(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.fetched_at is None:
            return None
        return DateUtils.age_seconds(self.fetched_at, now)

    def is_fresh(self, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        age = self.age_seconds(now)
        return age is not None and age < ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anchor": self.anchor,
            "source": self.source,
            "fetchedAt": DateUtils.to_iso_string(self.fetched_at) if self.fetched_at else None,
            "rates": {code: str(rate) for code, rate in sorted(self.rates.items())},
        }
