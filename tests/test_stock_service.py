"""
Tests for per-variant stock and the variant/size selection state.
"""

from decimal import Decimal

import pytest

from conftest import make_response, stock_body
from storefront.core.exceptions import ValidationError
from storefront.services.stock_service import VariantSelection

STOCK_A = "/api/products/stock/10"
STOCK_B = "/api/products/stock/11"


@pytest.fixture
def selection(stock_resolver):
    return VariantSelection(stock_resolver, product_id=1)


class TestStockResolver:
    """Tests for StockResolver."""

    def test_nested_shape(self, stock_resolver, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5, 25), (4, 0)))

        entries = stock_resolver.get_stock_for_variant(10)

        assert [(e.size_id, e.quantity_available) for e in entries] == [(3, 5), (4, 0)]
        assert entries[0].size_price == Decimal("25")
        assert entries[1].size_price is None

    def test_flat_shape(self, stock_resolver, backend):
        backend.json("GET", STOCK_A, {"success": True, "tallas_stock": [
            {"id_talla": 3, "nombre_talla": "M", "cantidad": 2, "precio": 0},
        ]})

        entry = stock_resolver.get_stock_for_variant(10)[0]

        assert entry.size_name == "M"
        assert entry.size_price is None

    def test_failure_yields_empty_stock(self, stock_resolver, backend):
        backend.fail("GET", STOCK_A)

        assert stock_resolver.get_stock_for_variant(10) == []

    def test_error_status_yields_empty_stock(self, stock_resolver, backend):
        backend.json("GET", STOCK_A, {"success": False, "message": "boom"}, status=500)

        assert stock_resolver.get_stock_for_variant(10) == []

    def test_one_lookup_per_distinct_variant(self, stock_resolver, backend):
        backend.json("GET", STOCK_A, stock_body((3, 1)))
        backend.json("GET", STOCK_B, stock_body((4, 1)))

        stock = stock_resolver.get_stock_for_variants([10, 11, 10])

        assert set(stock) == {10, 11}
        assert len(backend.calls) == 2


class TestVariantSelection:
    """Tests for VariantSelection."""

    def test_switching_variant_clears_size_before_stock_arrives(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5), (4, 2)))
        backend.json("GET", STOCK_B, stock_body((3, 0), (4, 1)))
        selection.change_variant(10)
        selection.select_size(3)

        generation = selection.select_variant(11)

        assert selection.selected_size is None
        assert selection.stock == []
        assert selection.stock_loading is True

        assert selection.load_stock(generation) is True
        assert selection.is_size_selectable(3) is False
        assert [e.size_id for e in selection.selectable_sizes()] == [4]
        with pytest.raises(ValidationError):
            selection.select_size(3)

    def test_stock_is_refetched_for_every_variant(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5)))
        backend.json("GET", STOCK_B, stock_body((3, 5)))

        selection.change_variant(10)
        selection.change_variant(11)
        selection.change_variant(10)

        assert [c.path for c in backend.calls] == [STOCK_A, STOCK_B, STOCK_A]

    def test_stale_stock_response_is_discarded(self, selection, backend):
        def switch_while_loading(call):
            selection.select_variant(11)
            return make_response(stock_body((3, 5)))

        backend.on("GET", STOCK_A, switch_while_loading)
        backend.json("GET", STOCK_B, stock_body((4, 1)))

        stale = selection.select_variant(10)

        assert selection.load_stock(stale) is False
        assert selection.variant_id == 11
        assert selection.stock == []

        assert selection.load_stock(selection.generation) is True
        assert [e.size_id for e in selection.stock] == [4]

    def test_failed_stock_shows_every_size_unavailable(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5)))
        backend.fail("GET", STOCK_B)
        selection.change_variant(10)

        selection.change_variant(11)

        assert selection.stock == []
        assert selection.first_available_size() is None

    def test_unknown_size_is_rejected(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5)))
        selection.change_variant(10)

        with pytest.raises(ValidationError):
            selection.select_size(9)

    def test_quantity_cannot_exceed_stock(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 2)))
        selection.change_variant(10)
        selection.select_size(3)

        selection.set_quantity(2)
        with pytest.raises(ValidationError):
            selection.set_quantity(3)
        with pytest.raises(ValidationError):
            selection.set_quantity(0)

    def test_size_price_overrides_variant_price(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5, 25), (4, 5)))
        selection.change_variant(10, Decimal("20"))

        assert selection.unit_price() == Decimal("20")
        selection.select_size(3)
        assert selection.unit_price() == Decimal("25")
        selection.select_size(4)
        assert selection.unit_price() == Decimal("20")

    def test_first_available_size(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 0), (4, 2), (5, 1)))
        selection.change_variant(10)

        assert selection.first_available_size().size_id == 4
        assert selection.selected_size is None

    def test_validate_for_add_requires_size(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5)))
        selection.change_variant(10, Decimal("20"))

        with pytest.raises(ValidationError):
            selection.validate_for_add()

        selection.select_size(3)
        assert selection.validate_for_add().size_id == 3

    def test_validate_for_add_requires_price(self, selection, backend):
        backend.json("GET", STOCK_A, stock_body((3, 5)))
        selection.change_variant(10)
        selection.select_size(3)

        with pytest.raises(ValidationError):
            selection.validate_for_add()
