from decimal import Decimal
from typing import Callable, Optional, TypeVar
import logging
import threading

from pydantic import ValidationError as SchemaValidationError

from storefront.core.exceptions import CartError, ValidationError
from storefront.models.cart import Cart, PricedCart
from storefront.models.pricing import StockEntry
from storefront.repositories.cart_repository import CartRepository
from storefront.schemas.cart_schemas import (
    AddToCartRequest, RemoveCartItemRequest, UpdateCartItemRequest,
)
from storefront.services.pricing_service import PricingService
from storefront.services.session_service import LOGIN, LOGOUT, SessionIdentity
from storefront.services.stock_service import VariantSelection
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

R = TypeVar('R')


def _build_request(model, **values):
    """Validate a request body before any network call"""
    try:
        return model(**values)
    except SchemaValidationError as e:
        field_errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError("Invalid cart request", field_errors)


class CartStore:
    """
    Local copy of the remote cart

    Business Rules:
    - Local state only ever changes by replacing it wholesale with a
      refreshed remote cart; every mutation ends with refresh_cart()
    - Invalid input is rejected before any network call
    - Mutation failures propagate to the caller after the loading flag
      is restored; nothing is retried or applied optimistically
    - When several refreshes overlap, the last one issued wins
    - Switching identity empties local state and discards in-flight refreshes
    """

    def __init__(
        self,
        cart_repository: CartRepository,
        identity: SessionIdentity,
        pricing_service: Optional[PricingService] = None
    ):
        self.cart_repository = cart_repository
        self.identity = identity
        self.pricing_service = pricing_service
        self.cart = Cart()
        self.error: Optional[str] = None
        self._pending = 0
        self._issued = 0
        self._applied = 0
        self._lock = threading.Lock()
        identity.subscribe(self._on_identity_change)

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def total_items(self) -> int:
        return self.cart.total_items

    def _on_identity_change(self, event: str) -> None:
        with self._lock:
            self.cart = Cart()
            self.error = None
            self._applied = self._issued
        logger.info(f"Cart state reset after {event}")

    def _tracked(self, operation: str, call: Callable[[], R]) -> R:
        with self._lock:
            self._pending += 1
        try:
            result = call()
            self.error = None
            return result
        except CartError as e:
            self.error = e.message
            logger.error(f"Cart {operation} failed: {e.message}")
            raise
        finally:
            with self._lock:
                self._pending -= 1

    def _mutate(self, operation: str, call: Callable[[], object]) -> Cart:
        def run():
            call()
            return self._refresh()
        return self._tracked(operation, run)

    def _refresh(self) -> Cart:
        with self._lock:
            self._issued += 1
            sequence = self._issued

        try:
            cart = self.cart_repository.get_cart()
        except CartError as e:
            if e.http_status != 404:
                raise
            logger.info("No persisted cart for this identity yet")
            cart = Cart()

        with self._lock:
            if sequence <= self._applied:
                logger.warning(f"Discarding stale cart refresh #{sequence}")
                return self.cart
            self._applied = sequence
            self.cart = cart
        logger.info(f"Cart refreshed: {cart.line_count} lines, {cart.total_items} items")
        return cart

    def refresh_cart(self) -> Cart:
        """Replace local state with the persisted cart of the current identity"""
        return self._tracked("refresh", self._refresh)

    def add_item(
        self,
        product_id: int,
        variant_id: int,
        size_id: int,
        quantity: int = 1,
        unit_price: Optional[Decimal] = None,
        stock_entry: Optional[StockEntry] = None
    ) -> Cart:
        """
        Add a line (the backend sums quantities for an existing triple)

        Raises:
            ValidationError: nothing selected, bad quantity or price, not enough stock
            CartError: the add or the follow-up refresh failed
        """
        if not (ValidationUtils.validate_identifier(variant_id) and ValidationUtils.validate_identifier(size_id)):
            raise ValidationError("Select a variant and size before adding to cart")
        if not ValidationUtils.validate_quantity(quantity):
            raise ValidationError(f"Quantity must be between 1 and {ValidationUtils.MAX_QUANTITY}")
        price = ValidationUtils.parse_price(unit_price)
        if price is None or price <= 0:
            raise ValidationError("Price must be greater than zero")
        if stock_entry is not None:
            if stock_entry.size_id != size_id:
                raise ValidationError("Stock entry does not match the selected size")
            if not stock_entry.is_selectable:
                raise ValidationError("This size is out of stock")
            if quantity > stock_entry.quantity_available:
                raise ValidationError(f"Only {stock_entry.quantity_available} units available")

        request = _build_request(
            AddToCartRequest,
            product_id=product_id, variant_id=variant_id, size_id=size_id,
            quantity=quantity, unit_price=price,
        )
        logger.info(f"Adding product {product_id} variant {variant_id} size {size_id} x{quantity}")
        return self._mutate("add", lambda: self.cart_repository.add_item(request))

    def add_from_selection(self, selection: VariantSelection) -> Cart:
        entry = selection.validate_for_add()
        return self.add_item(
            selection.product_id,
            selection.variant_id,
            entry.size_id,
            selection.quantity,
            selection.unit_price(),
            stock_entry=entry,
        )

    def update_quantity(self, product_id: int, variant_id: int, size_id: int, quantity: int) -> Cart:
        """Set a line's quantity; zero or less removes the line"""
        if quantity <= 0:
            self.remove_item(product_id, variant_id, size_id)
            return self.cart
        if not ValidationUtils.validate_quantity(quantity):
            raise ValidationError(f"Quantity must be between 1 and {ValidationUtils.MAX_QUANTITY}")
        request = _build_request(
            UpdateCartItemRequest,
            product_id=product_id, variant_id=variant_id, size_id=size_id, quantity=quantity,
        )
        logger.info(f"Updating product {product_id} variant {variant_id} size {size_id} to x{quantity}")
        return self._mutate("update", lambda: self.cart_repository.update_item(request))

    def remove_item(self, product_id: int, variant_id: int, size_id: int) -> bool:
        """Remove a line known locally; returns False (no request) when it is not"""
        item = self.cart.get_item(product_id, variant_id, size_id)
        if item is None:
            logger.info(f"Line {product_id}/{variant_id}/{size_id} not in local cart; nothing to remove")
            return False
        request = _build_request(
            RemoveCartItemRequest,
            product_id=item.product_id, variant_id=item.variant_id, size_id=item.size_id,
        )
        self._mutate("remove", lambda: self.cart_repository.remove_item(request))
        return True

    def clear_cart(self) -> Cart:
        logger.info("Clearing cart")
        return self._mutate("clear", self.cart_repository.clear)

    def count(self) -> int:
        """Backend item count, or the local one when the backend is unreachable"""
        try:
            return self.cart_repository.get_count()
        except CartError as e:
            logger.warning(f"Cart count failed ({e.message}); using local count")
            return self.cart.total_items

    def priced(self) -> PricedCart:
        if self.pricing_service is None:
            raise RuntimeError("CartStore has no pricing service")
        return self.pricing_service.price_cart(self.cart)

    def switch_to_user(self, user_token: str) -> Cart:
        """Log in and load the user's cart; merging is left to the backend"""
        self.identity.login(user_token)
        return self.refresh_cart()

    def sign_out(self) -> None:
        """Log out; local state stays empty until the next refresh"""
        self.identity.logout()
