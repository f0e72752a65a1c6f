from decimal import Decimal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator
from typing import List, Optional, Dict, Any

from storefront.models.cart import Cart, CartLineItem
from storefront.schemas.common_schemas import BackendEnvelope, BackendModel


class CartItemPayload(BackendModel):
    """Cart line as returned by GET /api/cart (camelCase or backend names)"""
    line_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("lineId", "id_contenido"))
    product_id: int = Field(validation_alias=AliasChoices("productId", "id_producto"))
    variant_id: int = Field(validation_alias=AliasChoices("variantId", "id_variante"))
    size_id: int = Field(validation_alias=AliasChoices("sizeId", "tallaId", "id_talla"))
    quantity: int = Field(validation_alias=AliasChoices("quantity", "cantidad"))
    unit_price: Optional[Decimal] = Field(
        default=None, validation_alias=AliasChoices("unitPrice", "precio_unitario", "precio", "price")
    )
    product_name: str = Field(default="", validation_alias=AliasChoices("productName", "nombre_producto", "name"))
    variant_name: str = Field(default="", validation_alias=AliasChoices("variantName", "nombre_variante"))
    size_name: str = Field(default="", validation_alias=AliasChoices("sizeName", "tallaName", "nombre_talla"))
    image_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("imageUrl", "imagen_variante", "image"))
    category: Optional[str] = Field(default=None, validation_alias=AliasChoices("category", "categoria"))
    brand: Optional[str] = Field(default=None, validation_alias=AliasChoices("brand", "marca"))

    @field_validator("product_name", "variant_name", "size_name", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return "" if v is None else v

    @field_validator("category", "brand", mode="before")
    @classmethod
    def ids_as_text(cls, v):
        return None if v is None else str(v)

    def to_line_item(self) -> CartLineItem:
        return CartLineItem(
            product_id=self.product_id,
            variant_id=self.variant_id,
            size_id=self.size_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            product_name=self.product_name,
            variant_name=self.variant_name,
            size_name=self.size_name,
            image_url=self.image_url,
            category=self.category,
            brand=self.brand,
            line_id=self.line_id,
        )


class CartBody(BackendModel):
    cart_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("cartId", "id"))
    items: List[CartItemPayload] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def missing_items_is_empty(cls, v):
        return [] if v is None else v


class CartResponse(BackendEnvelope):
    """GET /api/cart envelope; no cart object means an empty cart"""
    cart: Optional[CartBody] = None
    session_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("sessionToken", "session_token"))

    def to_cart(self) -> Cart:
        if self.cart is None:
            return Cart()
        return Cart.from_line_items(
            (item.to_line_item() for item in self.cart.items),
            cart_id=self.cart.cart_id,
        )


class CartCountResponse(BackendEnvelope):
    total_items: int = Field(default=0, validation_alias=AliasChoices("totalItems", "total_items", "count"))


class MutationResponse(BackendEnvelope):
    """Body of add/update/remove/clear responses"""
    session_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("sessionToken", "session_token"))


class LineReference(BaseModel):
    """Backend identifiers of a cart line"""
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(gt=0, serialization_alias="productId")
    variant_id: int = Field(gt=0, serialization_alias="variantId")
    size_id: int = Field(gt=0, serialization_alias="tallaId")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class AddToCartRequest(LineReference):
    """Body of POST /api/cart/add"""
    quantity: int = Field(ge=1, serialization_alias="cantidad")
    unit_price: Decimal = Field(gt=0, serialization_alias="precio_unitario")

    @field_serializer("unit_price")
    def price_as_number(self, v: Decimal) -> float:
        return float(v)


class UpdateCartItemRequest(LineReference):
    """Body of PUT /api/cart/update"""
    quantity: int = Field(ge=1, serialization_alias="cantidad")


class RemoveCartItemRequest(LineReference):
    """Body of DELETE /api/cart/remove"""
