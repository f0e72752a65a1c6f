import logging

from flask import Blueprint, request

from storefront.routes.schemas import AddItemSchema, RemoveItemSchema, UpdateItemSchema
from storefront.routes.utils import (
    get_cart_store, get_container, load_body, resolve_currency, success_response,
)
from storefront.services.stock_service import StockResolver, VariantSelection

logger = logging.getLogger(__name__)

cart_bp = Blueprint("cart", __name__)

_add_schema = AddItemSchema()
_update_schema = UpdateItemSchema()
_remove_schema = RemoveItemSchema()


def _priced_cart(currency: str):
    store = get_cart_store()
    return store.pricing_service.present_cart(store.priced(), currency)


@cart_bp.route("/cart", methods=["GET"])
def get_cart():
    """Refreshed cart, priced with current promotions and stock."""
    currency = resolve_currency(request.args.get("currency"))
    get_cart_store().refresh_cart()
    return success_response(_priced_cart(currency))


@cart_bp.route("/cart/count", methods=["GET"])
def get_cart_count():
    return success_response({"totalItems": get_cart_store().count()})


@cart_bp.route("/cart/items", methods=["POST"])
def add_cart_item():
    """Add a size of a variant; it must be in stock for that variant."""
    currency = resolve_currency(request.args.get("currency"))
    data = load_body(_add_schema)

    selection = VariantSelection(get_container().get(StockResolver), data["product_id"])
    selection.change_variant(data["variant_id"], data["unit_price"])
    selection.select_size(data["size_id"])
    selection.set_quantity(data["quantity"])

    get_cart_store().add_from_selection(selection)
    return success_response(_priced_cart(currency), "Item added to cart", 201)


@cart_bp.route("/cart/items", methods=["PUT"])
def update_cart_item():
    """Set a line's quantity; 0 removes it."""
    currency = resolve_currency(request.args.get("currency"))
    data = load_body(_update_schema)

    store = get_cart_store()
    # Removal needs the line in local state
    store.refresh_cart()
    store.update_quantity(data["product_id"], data["variant_id"], data["size_id"], data["quantity"])
    return success_response(_priced_cart(currency), "Cart updated")


@cart_bp.route("/cart/items", methods=["DELETE"])
def remove_cart_item():
    currency = resolve_currency(request.args.get("currency"))
    data = load_body(_remove_schema)

    store = get_cart_store()
    store.refresh_cart()
    removed = store.remove_item(data["product_id"], data["variant_id"], data["size_id"])
    message = "Item removed from cart" if removed else "Item was not in the cart"
    return success_response(_priced_cart(currency), message)


@cart_bp.route("/cart", methods=["DELETE"])
def clear_cart():
    currency = resolve_currency(request.args.get("currency"))
    get_cart_store().clear_cart()
    return success_response(_priced_cart(currency), "Cart cleared")
