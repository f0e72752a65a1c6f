import logging

from flask import Blueprint, request

from storefront.routes.utils import (
    get_container, get_pricing_service, parse_int, resolve_currency, success_response,
)
from storefront.core.exceptions import ValidationError
from storefront.services.exchange_rate_service import ExchangeRateProvider
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

pricing_bp = Blueprint("pricing", __name__)


@pricing_bp.route("/variants/<int:variant_id>/price", methods=["GET"])
def get_variant_price(variant_id: int):
    """
    Price to display for a variant: the selected size's price, the range
    across its sizes, or the variant's own price.
    """
    product_id = parse_int(request.args.get("productId"), "productId", required=True)
    size_id = parse_int(request.args.get("sizeId"), "sizeId")
    category_id = request.args.get("categoryId") or None
    currency = resolve_currency(request.args.get("currency"))

    variant_price = None
    raw_price = request.args.get("variantPrice")
    if raw_price is not None:
        variant_price = ValidationUtils.parse_price(raw_price)
        if variant_price is None or variant_price < 0:
            raise ValidationError("Invalid variantPrice")

    pricing = get_pricing_service()
    price_range = pricing.variant_price(product_id, variant_id, category_id, size_id, variant_price)
    data = pricing.present_range(price_range, currency)
    data.update({"productId": product_id, "variantId": variant_id, "sizeId": size_id})
    return success_response(data)


@pricing_bp.route("/exchange-rates", methods=["GET"])
def get_exchange_rates():
    return success_response(get_container().get(ExchangeRateProvider).status())
