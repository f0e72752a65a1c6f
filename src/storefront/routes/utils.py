from datetime import datetime, timezone
from typing import Optional

from flask import current_app, g, jsonify, request
from marshmallow import Schema, ValidationError as SchemaValidationError

from storefront.core.config import Config
from storefront.core.dependencies import DependencyContainer, build_cart_store, build_pricing_service
from storefront.core.exceptions import ValidationError
from storefront.models.session import AUTHORIZATION_HEADER, SESSION_TOKEN_HEADER
from storefront.repositories.storage import MemoryStorage
from storefront.services.cart_service import CartStore
from storefront.services.pricing_service import PricingService
from storefront.services.session_service import SESSION_TOKEN_KEY, USER_TOKEN_KEY, SessionIdentity
from storefront.utils.validators import ValidationUtils

CONTAINER_KEY = "storefront"
BEARER_PREFIX = "Bearer "


def success_response(data, message: Optional[str] = None, status: int = 200):
    """Consistent success response envelope."""
    response = {
        "success": True,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if message:
        response["message"] = message
    return jsonify(response), status


def parse_int(v, field_name: str = "value", required: bool = False) -> Optional[int]:
    """Parse a positive integer query argument."""
    if v is None or v == "":
        if required:
            raise ValidationError(f"{field_name} is required")
        return None
    try:
        result = int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field_name}: must be a valid integer")
    if result < 1:
        raise ValidationError(f"{field_name} must be at least 1")
    return result


def load_body(schema: Schema) -> dict:
    """Validate the JSON body with a marshmallow schema."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Request body must be a JSON object")
    try:
        return schema.load(payload)
    except SchemaValidationError as err:
        field_errors = [
            {"field": name, "message": "; ".join(messages) if isinstance(messages, list) else str(messages)}
            for name, messages in err.messages.items()
        ]
        raise ValidationError("Invalid request body", field_errors)


def get_container() -> DependencyContainer:
    return current_app.extensions[CONTAINER_KEY]


def get_config() -> Config:
    return get_container().get(Config)


def resolve_currency(value: Optional[str]) -> str:
    cfg = get_config()
    try:
        return ValidationUtils.normalize_currency(
            value or cfg.app.display_currency, cfg.exchange_rates.supported_currencies
        )
    except ValueError as e:
        raise ValidationError(str(e))


def incoming_user_token() -> Optional[str]:
    header = request.headers.get(AUTHORIZATION_HEADER, "")
    if header.startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip() or None
    return None


def get_identity() -> SessionIdentity:
    """Identity of this request, seeded from the caller's headers."""
    if "identity" not in g:
        seed = {}
        user_token = incoming_user_token()
        session_token = request.headers.get(SESSION_TOKEN_HEADER)
        if user_token:
            seed[USER_TOKEN_KEY] = user_token
        if session_token:
            seed[SESSION_TOKEN_KEY] = session_token
        g.identity = SessionIdentity(MemoryStorage(seed))
    return g.identity


def get_cart_store() -> CartStore:
    if "cart_store" not in g:
        g.cart_store = build_cart_store(get_container(), get_identity())
    return g.cart_store


def get_pricing_service() -> PricingService:
    if "cart_store" in g:
        return g.cart_store.pricing_service
    if "pricing_service" not in g:
        g.pricing_service = build_pricing_service(get_container())
    return g.pricing_service
