from typing import Optional
import logging

import requests

from storefront.core.exceptions import CartError
from storefront.models.cart import Cart
from storefront.repositories.base import BaseApiRepository
from storefront.schemas.cart_schemas import (
    AddToCartRequest, CartCountResponse, CartResponse, MutationResponse,
    RemoveCartItemRequest, UpdateCartItemRequest,
)
from storefront.services.session_service import SessionIdentity

logger = logging.getLogger(__name__)


class CartRepository(BaseApiRepository):
    """
    Remote persisted cart

    Every request carries exactly the identifying header the session identity
    picks, and every response is offered back to the identity so it can adopt
    server-issued tokens.
    """

    service_name = "cart"

    def __init__(
        self,
        base_url: str,
        identity: SessionIdentity,
        http_session: Optional[requests.Session] = None,
        timeout: float = 10
    ):
        super().__init__(base_url, http_session, timeout)
        self.identity = identity

    def raise_failure(self, message, http_status=None, operation=None):
        raise CartError(message, http_status, operation)

    def raise_malformed(self, message, operation=None):
        raise CartError(message, operation=operation)

    def _send(self, method: str, path: str, operation: str, json=None) -> dict:
        response = self.execute(
            method, path, headers=self.identity.request_headers(), json=json, operation=operation
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            self.raise_malformed("Response is not a JSON object", operation)
        self.identity.absorb_response(response.headers, body.get("sessionToken"))
        if body.get("success") is False:
            self.raise_failure(body.get("message") or "Cart operation failed", response.status_code, operation)
        return body

    def get_cart(self) -> Cart:
        """Fetch the full persisted cart for the current identity"""
        body = self._send("GET", "/api/cart", "get_cart")
        return self.parse(CartResponse, body, "get_cart").to_cart()

    def get_count(self) -> int:
        body = self._send("GET", "/api/cart/count", "count")
        return self.parse(CartCountResponse, body, "count").total_items

    def add_item(self, request: AddToCartRequest) -> Optional[str]:
        logger.info(f"POST /api/cart/add {request.product_id}/{request.variant_id}/{request.size_id} x{request.quantity}")
        body = self._send("POST", "/api/cart/add", "add", json=request.to_payload())
        return self.parse(MutationResponse, body, "add").message

    def update_item(self, request: UpdateCartItemRequest) -> Optional[str]:
        body = self._send("PUT", "/api/cart/update", "update", json=request.to_payload())
        return self.parse(MutationResponse, body, "update").message

    def remove_item(self, request: RemoveCartItemRequest) -> Optional[str]:
        body = self._send("DELETE", "/api/cart/remove", "remove", json=request.to_payload())
        return self.parse(MutationResponse, body, "remove").message

    def clear(self) -> Optional[str]:
        body = self._send("DELETE", "/api/cart/clear", "clear")
        return self.parse(MutationResponse, body, "clear").message
