"""
Tests for the cart store: mutations, refresh ordering and identity changes.
"""

from decimal import Decimal

import pytest
import requests

from conftest import cart_body, cart_line, make_response, stock_body
from storefront.core.exceptions import CartError, ValidationError
from storefront.models.pricing import StockEntry
from storefront.models.session import AUTHORIZATION_HEADER, SESSION_TOKEN_HEADER
from storefront.services.stock_service import VariantSelection

CART = "/api/cart"


def identity_headers(call):
    return {name for name in (AUTHORIZATION_HEADER, SESSION_TOKEN_HEADER) if name in call.headers}


class TestAddItem:
    """Tests for CartStore.add_item."""

    def test_add_then_refresh(self, cart_store, backend):
        backend.json("POST", "/api/cart/add", {"success": True, "message": "Added"})
        backend.json("GET", CART, cart_body(cart_line(quantity=2)))

        cart = cart_store.add_item(1, 10, 3, 2, Decimal("20"))

        assert [c.path for c in backend.calls] == ["/api/cart/add", CART]
        assert backend.calls[0].json == {
            "productId": 1, "variantId": 10, "tallaId": 3, "cantidad": 2, "precio_unitario": 20.0,
        }
        assert cart.total_items == 2
        assert cart_store.cart.get_item(1, 10, 3).quantity == 2
        assert cart_store.is_loading is False

    @pytest.mark.parametrize("args", [
        (1, 10, None, 1, Decimal("20")),
        (1, None, 3, 1, Decimal("20")),
        (1, 10, 3, 0, Decimal("20")),
        (1, 10, 3, 100, Decimal("20")),
        (1, 10, 3, 1, Decimal("0")),
        (1, 10, 3, 1, None),
        (0, 10, 3, 1, Decimal("20")),
    ])
    def test_invalid_input_is_rejected_before_any_request(self, cart_store, backend, args):
        with pytest.raises(ValidationError):
            cart_store.add_item(*args)

        assert backend.calls == []

    def test_out_of_stock_size_is_rejected(self, cart_store, backend):
        entry = StockEntry(3, "M", 0)

        with pytest.raises(ValidationError):
            cart_store.add_item(1, 10, 3, 1, Decimal("20"), stock_entry=entry)
        assert backend.calls == []

    def test_quantity_above_stock_is_rejected(self, cart_store, backend):
        entry = StockEntry(3, "M", 2)

        with pytest.raises(ValidationError):
            cart_store.add_item(1, 10, 3, 3, Decimal("20"), stock_entry=entry)
        assert backend.calls == []

    def test_network_failure_raises_cart_error(self, cart_store, backend):
        backend.fail("POST", "/api/cart/add")

        with pytest.raises(CartError) as exc_info:
            cart_store.add_item(1, 10, 3, 1, Decimal("20"))

        assert exc_info.value.message == "Connection error"
        assert exc_info.value.http_status is None
        assert cart_store.is_loading is False
        assert cart_store.error == "Connection error"
        assert cart_store.cart.is_empty
        assert backend.calls_to("GET", CART) == []

    def test_backend_message_is_surfaced(self, cart_store, backend):
        backend.json("POST", "/api/cart/add", {"success": False, "message": "Sin stock"}, status=409)

        with pytest.raises(CartError) as exc_info:
            cart_store.add_item(1, 10, 3, 1, Decimal("20"))

        assert exc_info.value.message == "Sin stock"
        assert exc_info.value.http_status == 409

    def test_unsuccessful_body_is_an_error(self, cart_store, backend):
        backend.json("POST", "/api/cart/add", {"success": False, "message": "Rejected"})

        with pytest.raises(CartError):
            cart_store.add_item(1, 10, 3, 1, Decimal("20"))

    def test_add_from_selection(self, cart_store, stock_resolver, backend):
        backend.json("GET", "/api/products/stock/10", stock_body((3, 5, 25)))
        backend.json("POST", "/api/cart/add", {"success": True})
        backend.json("GET", CART, cart_body(cart_line(quantity=2, price=25)))
        selection = VariantSelection(stock_resolver, 1)
        selection.change_variant(10, Decimal("20"))
        selection.select_size(3)
        selection.set_quantity(2)

        cart_store.add_from_selection(selection)

        body = backend.calls_to("POST", "/api/cart/add")[0].json
        assert body["cantidad"] == 2
        assert body["precio_unitario"] == 25.0


class TestUpdateAndRemove:
    """Tests for update_quantity, remove_item and clear_cart."""

    @pytest.fixture
    def loaded_store(self, cart_store, backend):
        backend.json("GET", CART, cart_body(cart_line(quantity=2)))
        cart_store.refresh_cart()
        backend.calls.clear()
        return cart_store

    def test_update_quantity(self, loaded_store, backend):
        backend.json("PUT", "/api/cart/update", {"success": True})
        backend.json("GET", CART, cart_body(cart_line(quantity=4)))

        loaded_store.update_quantity(1, 10, 3, 4)

        assert backend.calls[0].json == {"productId": 1, "variantId": 10, "tallaId": 3, "cantidad": 4}
        assert loaded_store.cart.get_item(1, 10, 3).quantity == 4

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_removes_the_line(self, loaded_store, backend, quantity):
        backend.json("DELETE", "/api/cart/remove", {"success": True})
        backend.json("GET", CART, cart_body())

        loaded_store.update_quantity(1, 10, 3, quantity)

        assert backend.calls_to("PUT", "/api/cart/update") == []
        assert backend.calls[0].json == {"productId": 1, "variantId": 10, "tallaId": 3}
        assert loaded_store.cart.get_item(1, 10, 3) is None

    def test_removing_unknown_line_is_a_no_op(self, loaded_store, backend):
        assert loaded_store.remove_item(1, 10, 99) is False
        assert backend.calls == []

    def test_remove_failure_propagates(self, loaded_store, backend):
        backend.fail("DELETE", "/api/cart/remove")

        with pytest.raises(CartError):
            loaded_store.remove_item(1, 10, 3)

        assert loaded_store.is_loading is False
        assert loaded_store.cart.get_item(1, 10, 3) is not None

    def test_clear_cart(self, loaded_store, backend):
        backend.json("DELETE", "/api/cart/clear", {"success": True})
        backend.json("GET", CART, {"success": True, "cart": {"items": []}})

        cart = loaded_store.clear_cart()

        assert cart.is_empty
        assert loaded_store.total_items == 0


class TestRefresh:
    """Tests for refresh_cart."""

    def test_duplicate_lines_are_merged(self, cart_store, backend):
        backend.json("GET", CART, cart_body(cart_line(quantity=1), cart_line(quantity=2), cart_line(size_id=4)))

        cart = cart_store.refresh_cart()

        keys = [item.key for item in cart.items]
        assert len(keys) == len(set(keys)) == 2
        assert cart.get_item(1, 10, 3).quantity == 3

    def test_missing_cart_is_empty(self, cart_store, backend):
        backend.json("GET", CART, {"success": True})

        assert cart_store.refresh_cart().is_empty

    def test_not_found_is_empty(self, cart_store, backend):
        backend.json("GET", CART, {"success": False, "message": "Cart not found"}, status=404)

        assert cart_store.refresh_cart().is_empty

    def test_server_error_propagates(self, cart_store, backend):
        backend.json("GET", CART, {"success": False}, status=500)

        with pytest.raises(CartError) as exc_info:
            cart_store.refresh_cart()

        assert exc_info.value.message == "Connection error"
        assert cart_store.is_loading is False

    def test_malformed_cart_is_a_cart_error(self, cart_store, backend):
        backend.json("GET", CART, {"success": True, "cart": {"items": [{"cantidad": 1}]}})

        with pytest.raises(CartError):
            cart_store.refresh_cart()

    def test_last_issued_refresh_wins(self, cart_store, backend):
        def overtaken(call):
            cart_store.refresh_cart()
            return make_response(cart_body(cart_line(quantity=1)))

        backend.on("GET", CART, overtaken, make_response(cart_body(cart_line(quantity=5))))

        cart_store.refresh_cart()

        assert cart_store.cart.get_item(1, 10, 3).quantity == 5
        assert cart_store.is_loading is False

    def test_refresh_in_flight_during_logout_is_discarded(self, cart_store, identity, backend):
        identity.login("user-token-1")

        def logged_out_meanwhile(call):
            identity.logout()
            return make_response(cart_body(cart_line(quantity=3)))

        backend.on("GET", CART, logged_out_meanwhile)

        cart_store.refresh_cart()

        assert cart_store.cart.is_empty

    def test_count(self, cart_store, backend):
        backend.json("GET", "/api/cart/count", {"success": True, "totalItems": 4})

        assert cart_store.count() == 4

    def test_count_falls_back_to_local_total(self, cart_store, backend):
        backend.json("GET", CART, cart_body(cart_line(quantity=2)))
        backend.fail("GET", "/api/cart/count")
        cart_store.refresh_cart()

        assert cart_store.count() == 2


class TestIdentity:
    """Tests for identity headers and switching between identities."""

    def test_anonymous_requests_carry_only_session_token(self, cart_store, backend):
        backend.json("GET", CART, cart_body())
        backend.json("POST", "/api/cart/add", {"success": True})

        cart_store.refresh_cart()
        cart_store.add_item(1, 10, 3, 1, Decimal("20"))

        for call in backend.calls:
            assert identity_headers(call) == {SESSION_TOKEN_HEADER}
            assert call.headers[SESSION_TOKEN_HEADER] == "session_test_1"

    def test_login_switches_header_and_refreshes(self, cart_store, backend):
        backend.json("GET", CART, cart_body())
        cart_store.refresh_cart()

        cart_store.switch_to_user("user-token-1")

        last = backend.calls[-1]
        assert last.path == CART
        assert identity_headers(last) == {AUTHORIZATION_HEADER}
        assert last.headers[AUTHORIZATION_HEADER] == "Bearer user-token-1"

    def test_logout_clears_state_and_starts_new_session(self, cart_store, identity, backend):
        backend.json("GET", CART, cart_body())
        cart_store.refresh_cart()
        old_token = identity.session_token

        backend.json("GET", CART, cart_body(cart_line(size_id=1), cart_line(size_id=2), cart_line(size_id=3)))
        cart_store.switch_to_user("user-token-1")
        assert cart_store.cart.line_count == 3

        cart_store.sign_out()

        assert cart_store.cart.is_empty
        assert identity.is_authenticated is False
        assert identity.session_token is None
        new_headers = identity.request_headers()
        assert new_headers[SESSION_TOKEN_HEADER] != old_token
        assert AUTHORIZATION_HEADER not in new_headers

    def test_server_issued_session_token_is_adopted(self, cart_store, identity, backend):
        backend.json("GET", CART, cart_body(), headers={SESSION_TOKEN_HEADER: "session_server_1"})

        cart_store.refresh_cart()
        cart_store.refresh_cart()

        assert identity.session_token == "session_server_1"
        assert backend.calls[1].headers[SESSION_TOKEN_HEADER] == "session_server_1"

    def test_refreshed_user_token_is_adopted(self, cart_store, identity, backend):
        identity.login("user-token-1")
        backend.json("GET", CART, cart_body(), headers={"X-New-Token": "user-token-2", "X-Token-Refreshed": "true"})

        cart_store.refresh_cart()

        assert identity.user_token == "user-token-2"

    def test_connection_error_type(self, cart_store, backend):
        backend.on("GET", CART, requests.Timeout("slow"))

        with pytest.raises(CartError):
            cart_store.refresh_cart()
