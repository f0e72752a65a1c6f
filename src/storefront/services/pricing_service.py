from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from storefront.core.exceptions import ValidationError
from storefront.models.cart import Cart, PricedCart, PricedLine
from storefront.models.pricing import PriceRange, PriceResult, Promotion, StockEntry
from storefront.services.exchange_rate_service import ExchangeRateProvider
from storefront.services.promotion_service import PromotionResolver
from storefront.services.stock_service import StockResolver
from storefront.utils.formatting_utils import FormattingUtils

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
ZERO = Decimal("0")


def apply_promotion(base_unit_price: Decimal, promotion: Optional[Promotion]) -> PriceResult:
    """
    Price of one unit after at most one percentage promotion

    finalPrice = round(base * (100 - pct) / 100), rounded half up to cents.
    """
    if base_unit_price < 0:
        raise ValidationError("Unit price cannot be negative")
    original = FormattingUtils.round_money(base_unit_price)
    if promotion is None:
        return PriceResult(final_price=original, original_price=original, has_discount=False, discount_percentage=ZERO)

    pct = min(max(promotion.percentage_off, ZERO), HUNDRED)
    final = FormattingUtils.round_money(base_unit_price * (HUNDRED - pct) / HUNDRED)
    has_discount = final < original
    return PriceResult(
        final_price=final,
        original_price=original,
        has_discount=has_discount,
        discount_percentage=pct if has_discount else ZERO,
    )


@dataclass
class PriceSnapshot:
    """Promotion and stock data already fetched; resolution reads only this"""
    promotions: Dict[int, Optional[Promotion]] = field(default_factory=dict)
    stock: Dict[int, List[StockEntry]] = field(default_factory=dict)

    def promotion_for(self, product_id: int) -> Optional[Promotion]:
        return self.promotions.get(product_id)

    def stock_entry(self, variant_id: int, size_id: int) -> Optional[StockEntry]:
        return next((e for e in self.stock.get(variant_id, []) if e.size_id == size_id), None)


def resolve_price(
    base_unit_price: Decimal,
    variant_id: int,
    product_id: int,
    category_id: Optional[str],
    snapshot: PriceSnapshot
) -> PriceResult:
    """Pure: identical inputs and snapshot always give an identical result"""
    return apply_promotion(base_unit_price, snapshot.promotion_for(product_id))


def resolve_display_price(
    variant_id: int,
    product_id: int,
    category_id: Optional[str],
    snapshot: PriceSnapshot,
    selected_size_id: Optional[int] = None,
    variant_price: Optional[Decimal] = None
) -> PriceRange:
    """
    Price to show for a variant

    Business Rules:
    - A selected size with its own price wins
    - Otherwise the min-max of the variant's size prices, each promoted
    - Otherwise the variant's flat price (zero when there is none)
    """
    def price(base: Decimal) -> PriceResult:
        return resolve_price(base, variant_id, product_id, category_id, snapshot)

    if selected_size_id is not None:
        entry = snapshot.stock_entry(variant_id, selected_size_id)
        if entry is not None and entry.size_price is not None:
            return PriceRange.single(price(entry.size_price))
    else:
        size_prices = [e.size_price for e in snapshot.stock.get(variant_id, []) if e.size_price is not None]
        if size_prices:
            return PriceRange(low=price(min(size_prices)), high=price(max(size_prices)))

    return PriceRange.single(price(variant_price if variant_price is not None else ZERO))


class PricingService:
    """
    Price resolution over fresh promotion and stock data, plus display

    Every call fetches stock again; promotions come from the resolver's
    page-view cache.
    """

    def __init__(
        self,
        promotion_resolver: PromotionResolver,
        stock_resolver: StockResolver,
        exchange_rates: ExchangeRateProvider,
        base_currency: str = "MXN"
    ):
        self.promotion_resolver = promotion_resolver
        self.stock_resolver = stock_resolver
        self.exchange_rates = exchange_rates
        self.base_currency = base_currency

    def build_snapshot(
        self,
        products: Iterable[Tuple[int, Optional[str]]],
        variant_ids: Iterable[int]
    ) -> PriceSnapshot:
        """Fetch promotions per distinct product and stock per distinct variant"""
        promotions: Dict[int, Optional[Promotion]] = {}
        for product_id, category_id in products:
            if product_id not in promotions:
                promotions[product_id] = self.promotion_resolver.resolve(product_id, category_id)
        return PriceSnapshot(
            promotions=promotions,
            stock=self.stock_resolver.get_stock_for_variants(variant_ids),
        )

    def price_cart(self, cart: Cart) -> PricedCart:
        logger.info(f"Pricing cart with {cart.line_count} lines")
        snapshot = self.build_snapshot(
            ((item.product_id, item.category) for item in cart.items),
            (item.variant_id for item in cart.items),
        )

        lines = []
        for item in cart.items:
            entry = snapshot.stock_entry(item.variant_id, item.size_id)
            if entry is not None and entry.size_price is not None:
                base = entry.size_price
            elif item.unit_price is not None and item.unit_price > 0:
                base = item.unit_price
            else:
                logger.warning(f"No price known for cart line {item.key}; pricing at zero")
                base = ZERO
            result = resolve_price(base, item.variant_id, item.product_id, item.category, snapshot)
            lines.append(PricedLine(item=item, price=result, stock_entry=entry))

        priced = PricedCart(lines=lines, base_currency=self.base_currency, cart_id=cart.cart_id)
        if priced.has_unavailable_lines:
            logger.warning(f"Cart {cart.cart_id} has lines without enough stock")
        return priced

    def variant_price(
        self,
        product_id: int,
        variant_id: int,
        category_id: Optional[str] = None,
        size_id: Optional[int] = None,
        variant_price: Optional[Decimal] = None
    ) -> PriceRange:
        snapshot = self.build_snapshot([(product_id, category_id)], [variant_id])
        return resolve_display_price(variant_id, product_id, category_id, snapshot, size_id, variant_price)

    def format(self, amount: Decimal, currency: str) -> str:
        return self.exchange_rates.format_price(amount, currency, self.base_currency)

    def format_range(self, price_range: PriceRange, currency: str) -> str:
        low = self.exchange_rates.convert(price_range.low.final_price, self.base_currency, currency)
        high = self.exchange_rates.convert(price_range.high.final_price, self.base_currency, currency)
        return FormattingUtils.format_price_range(low, high, currency)

    def present_price(self, price: PriceResult, currency: str) -> Dict[str, Any]:
        data = price.to_dict()
        data.update({
            "finalPriceFormatted": self.format(price.final_price, currency),
            "originalPriceFormatted": self.format(price.original_price, currency),
            "discountLabel": FormattingUtils.format_percentage(price.discount_percentage) if price.has_discount else None,
        })
        return data

    def present_range(self, price_range: PriceRange, currency: str) -> Dict[str, Any]:
        data = price_range.to_dict()
        data.update({
            "currency": currency,
            "display": self.format_range(price_range, currency),
            "min": self.present_price(price_range.low, currency),
            "max": self.present_price(price_range.high, currency),
        })
        return data

    def present_cart(self, priced: PricedCart, currency: str) -> Dict[str, Any]:
        """Priced cart as JSON-ready data in the display currency"""
        lines = []
        for line in priced.lines:
            data = line.item.to_dict()
            data.update({
                "price": self.present_price(line.price, currency),
                "lineTotal": str(line.line_final),
                "lineTotalFormatted": self.format(line.line_final, currency),
                "quantityAvailable": line.stock_entry.quantity_available if line.stock_entry else 0,
                "outOfStock": line.out_of_stock,
                "insufficientStock": line.insufficient_stock,
            })
            lines.append(data)

        return {
            "cartId": priced.cart_id,
            "currency": currency,
            "baseCurrency": priced.base_currency,
            "items": lines,
            "totalItems": priced.total_items,
            "totalOriginal": str(priced.total_original),
            "totalFinal": str(priced.total_final),
            "totalDiscount": str(priced.total_discount),
            "hasDiscounts": priced.has_discounts,
            "totalOriginalFormatted": self.format(priced.total_original, currency),
            "totalFinalFormatted": self.format(priced.total_final, currency),
            "totalDiscountFormatted": self.format(priced.total_discount, currency),
        }
