from datetime import datetime
from decimal import Decimal
from pydantic import AliasChoices, Field, field_validator, model_validator
from typing import Dict, List, Optional

from storefront.models.pricing import PERCENTAGE, Promotion, PromotionScope, StockEntry
from storefront.schemas.common_schemas import BackendEnvelope, BackendModel
from storefront.utils.date_utils import DateUtils


class StockEntryPayload(BackendModel):
    """One size of a variant's stock breakdown"""
    size_id: int = Field(validation_alias=AliasChoices("sizeId", "id_talla", "tallaId"))
    size_name: str = Field(default="", validation_alias=AliasChoices("sizeName", "nombre_talla"))
    quantity_available: int = Field(
        default=0,
        validation_alias=AliasChoices("quantityAvailable", "cantidad", "stock_disponible", "stock"),
    )
    size_price: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("sizePrice", "precio"))

    @field_validator("quantity_available", mode="before")
    @classmethod
    def missing_quantity_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("size_name", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v

    def to_stock_entry(self) -> StockEntry:
        price = self.size_price if self.size_price is not None and self.size_price > 0 else None
        return StockEntry(
            size_id=self.size_id,
            size_name=self.size_name,
            quantity_available=max(0, self.quantity_available),
            size_price=price,
        )


class StockData(BackendModel):
    sizes: List[StockEntryPayload] = Field(
        default_factory=list, validation_alias=AliasChoices("tallas_stock", "sizes", "stock")
    )


class StockResponse(BackendEnvelope):
    """
    Stock for one variant

    Known shapes:
    - {"success": true, "data": {"tallas_stock": [...]}}
    - {"success": true, "tallas_stock": [...]}
    """
    data: Optional[StockData] = None
    sizes: Optional[List[StockEntryPayload]] = Field(
        default=None, validation_alias=AliasChoices("tallas_stock", "sizes")
    )

    def entries(self) -> List[StockEntry]:
        payloads = self.sizes
        if payloads is None and self.data is not None:
            payloads = self.data.sizes
        return [p.to_stock_entry() for p in payloads or []]


class PromotionTarget(BackendModel):
    target_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("tipo_objetivo", "targetType"))
    category_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id_categoria", "categoryId"))
    product_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id_producto", "productId"))

    @field_validator("category_id", "product_id", mode="before")
    @classmethod
    def ids_as_text(cls, v):
        return None if v is None else str(v)


_TARGET_SCOPES = {
    "producto": PromotionScope.PRODUCT,
    "product": PromotionScope.PRODUCT,
    "categoria": PromotionScope.CATEGORY,
    "category": PromotionScope.CATEGORY,
    "todos": PromotionScope.ALL,
    "all": PromotionScope.ALL,
}

_TYPE_NAMES = {"porcentaje": PERCENTAGE, "percentage": PERCENTAGE}


class PromotionPayload(BackendModel):
    promotion_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("promotionId", "id_promocion", "id"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "nombre"))
    type: str = Field(default=PERCENTAGE, validation_alias=AliasChoices("type", "tipo"))
    percentage_off: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("percentageOff", "porcentaje", "percentage")
    )
    active: bool = Field(default=True, validation_alias=AliasChoices("active", "activo"))
    starts_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("startsAt", "fecha_inicio"))
    ends_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("endsAt", "fecha_fin"))
    scope: Optional[str] = Field(default=None, validation_alias=AliasChoices("scope", "aplicacion_tipo"))
    targets: List[PromotionTarget] = Field(
        default_factory=list, validation_alias=AliasChoices("targets", "aplicaciones")
    )

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        if v is None:
            return PERCENTAGE
        text = str(v).strip().lower()
        return _TYPE_NAMES.get(text, text)

    @field_validator("active", mode="before")
    @classmethod
    def missing_active_is_true(cls, v):
        return True if v is None else v

    @field_validator("targets", mode="before")
    @classmethod
    def missing_targets_is_empty(cls, v):
        return [] if v is None else v

    def resolved_scope(self, product_id: Optional[int], category_id: Optional[str]) -> PromotionScope:
        """
        Most specific scope this promotion matches for the queried identifiers

        Falls back to the declared scope, then to ALL when the backend gives no
        targeting information. Targets naming some other product or category
        also fall back: the backend returned this promotion for the queried
        product, and that inclusion is trusted.
        """
        best = None
        for target in self.targets:
            scope = _TARGET_SCOPES.get((target.target_type or "").lower())
            if scope is PromotionScope.PRODUCT and target.product_id not in (None, str(product_id)):
                continue
            if scope is PromotionScope.CATEGORY and category_id is not None \
                    and target.category_id not in (None, str(category_id)):
                continue
            if scope is not None and (best is None or scope.rank < best.rank):
                best = scope
        if best is not None:
            return best
        return _TARGET_SCOPES.get((self.scope or "").lower(), PromotionScope.ALL)

    def targeted_product_ids(self) -> List[int]:
        """Products this promotion names through product-scoped targets"""
        ids = []
        for target in self.targets:
            if _TARGET_SCOPES.get((target.target_type or "").lower()) is not PromotionScope.PRODUCT:
                continue
            if target.product_id and target.product_id.isdigit():
                ids.append(int(target.product_id))
        return ids

    def _window_bound(self,raw: Optional[str]) -> Optional[datetime]:
        if not raw:
            return None
        try:
            return DateUtils.parse_iso_string(raw)
        except ValueError:
            return None

    def is_applicable(self, now: datetime) -> bool:
        """Active, percentage-typed, in range and inside its date window"""
        if not self.active or self.type != PERCENTAGE or self.percentage_off is None:
            return False
        if not (Decimal("0") <= self.percentage_off <= Decimal("100")):
            return False
        return DateUtils.is_within_window(
            now, self._window_bound(self.starts_at), self._window_bound(self.ends_at)
        )

    def to_promotion(self, product_id: Optional[int] = None, category_id: Optional[str] = None) -> Promotion:
        return Promotion(
            percentage_off=self.percentage_off if self.percentage_off is not None else Decimal("0"),
            type=self.type,
            scope=self.resolved_scope(product_id, category_id),
            promotion_id=self.promotion_id,
            name=self.name,
        )


class PromotionsResponse(BackendEnvelope):
    """
    Promotion lookup

    Known shapes: {"promotions": [...]} and {"data": [...]}; either key
    missing or empty means no promotion.
    """
    promotions: Optional[List[PromotionPayload]] = None
    data: Optional[List[PromotionPayload]] = None

    def items(self) -> List[PromotionPayload]:
        if self.promotions:
            return list(self.promotions)
        return list(self.data or [])


class ExchangeRatesResponse(BackendModel):
    """Third-party latest-rates payload"""
    rates: Dict[str, Decimal]
    base: Optional[str] = None
    timestamp: Optional[int] = None

    @model_validator(mode="after")
    def rates_must_be_positive(self):
        bad = [code for code, rate in self.rates.items() if rate <= 0]
        if bad:
            raise ValueError(f"Non-positive rates for {', '.join(sorted(bad))}")
        return self
