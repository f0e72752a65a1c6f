import itertools
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, NamedTuple, Optional
from unittest.mock import MagicMock
from urllib.parse import urlsplit

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from storefront.core.config import ExchangeRateConfig
from storefront.repositories.cart_repository import CartRepository
from storefront.repositories.exchange_rate_repository import ExchangeRateRepository
from storefront.repositories.product_repository import ProductRepository, PromotionRepository
from storefront.repositories.storage import MemoryStorage
from storefront.services.cart_service import CartStore
from storefront.services.exchange_rate_service import ExchangeRateProvider
from storefront.services.pricing_service import PricingService
from storefront.services.promotion_service import PromotionResolver
from storefront.services.session_service import SessionIdentity
from storefront.services.stock_service import StockResolver

BACKEND_URL = "http://backend.test"
RATES_URL = "http://rates.test"
NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_response(body: Any = None, status: int = 200, headers: Optional[Dict[str, str]] = None) -> requests.Response:
    """A real requests.Response carrying a JSON body (or nothing)."""
    response = requests.Response()
    response.status_code = status
    response._content = b"" if body is None else json.dumps(body).encode("utf-8")
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict(headers or {})
    return response


def cart_line(product_id=1, variant_id=10, size_id=3, quantity=1, price=20, **extra) -> Dict[str, Any]:
    """Cart line in the backend's own field names."""
    line = {
        "id_producto": product_id,
        "id_variante": variant_id,
        "id_talla": size_id,
        "cantidad": quantity,
        "precio": price,
        "nombre_producto": f"Product {product_id}",
        "nombre_variante": f"Variant {variant_id}",
        "nombre_talla": f"Size {size_id}",
    }
    line.update(extra)
    return line


def cart_body(*lines, cart_id=7) -> Dict[str, Any]:
    return {"success": True, "cart": {"id": cart_id, "items": list(lines)}}


def stock_body(*sizes) -> Dict[str, Any]:
    """sizes: (size_id, quantity) or (size_id, quantity, price)"""
    entries = []
    for size in sizes:
        entry = {"id_talla": size[0], "nombre_talla": f"Size {size[0]}", "cantidad": size[1]}
        if len(size) > 2:
            entry["precio"] = size[2]
        entries.append(entry)
    return {"success": True, "data": {"tallas_stock": entries}}


def promotion(pct, scope="producto", product_id=1, promotion_id=None, **extra) -> Dict[str, Any]:
    """Promotion in the backend's own field names."""
    target = {"tipo_objetivo": scope}
    if scope == "producto":
        target["id_producto"] = product_id
    body = {
        "id_promocion": promotion_id,
        "nombre": f"{pct}% off",
        "tipo": "porcentaje",
        "porcentaje": pct,
        "activo": True,
        "aplicaciones": [target],
    }
    body.update(extra)
    return body


class Call(NamedTuple):
    method: str
    path: str
    headers: Dict[str, str]
    json: Any
    params: Any


class FakeBackend:
    """
    Routes requests made through a stubbed requests.Session.

    Each route holds a queue of responses (or exceptions to raise, or
    callables receiving the Call); the last entry repeats.
    """

    def __init__(self):
        self.routes: Dict[tuple, List[Any]] = {}
        self.calls: List[Call] = []

    def on(self, method: str, path: str, *outcomes) -> "FakeBackend":
        self.routes[(method, path)] = list(outcomes)
        return self

    def json(self, method: str, path: str, body: Any, status: int = 200, headers=None) -> "FakeBackend":
        return self.on(method, path, make_response(body, status, headers))

    def fail(self, method: str, path: str) -> "FakeBackend":
        return self.on(method, path, requests.ConnectionError("unreachable"))

    def handle(self, method, url, headers=None, json=None, params=None, timeout=None, **kwargs):
        call = Call(method, urlsplit(url).path, dict(headers or {}), json, params)
        self.calls.append(call)
        outcomes = self.routes.get((method, call.path))
        if not outcomes:
            return make_response({"success": False, "message": "Not found"}, 404)
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(call)
        return outcome

    def calls_to(self, method: str, path: str) -> List[Call]:
        return [c for c in self.calls if c.method == method and c.path == path]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def http_session(backend):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = backend.handle
    return session


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def token_factory():
    counter = itertools.count(1)
    return lambda: f"session_test_{next(counter)}"


@pytest.fixture
def identity(storage, token_factory):
    return SessionIdentity(storage, token_factory)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def rate_config():
    return ExchangeRateConfig(base_url=RATES_URL, refresh_in_background=False)


@pytest.fixture
def exchange_rates(http_session, storage, rate_config, clock):
    repository = ExchangeRateRepository(RATES_URL, "test-app", http_session)
    return ExchangeRateProvider(repository, storage, rate_config, clock)


@pytest.fixture
def promotion_resolver(http_session, clock):
    return PromotionResolver(PromotionRepository(BACKEND_URL, http_session), clock)


@pytest.fixture
def stock_resolver(http_session):
    return StockResolver(ProductRepository(BACKEND_URL, http_session))


@pytest.fixture
def pricing_service(promotion_resolver, stock_resolver, exchange_rates):
    return PricingService(promotion_resolver, stock_resolver, exchange_rates, "MXN")


@pytest.fixture
def cart_repository(http_session, identity):
    return CartRepository(BACKEND_URL, identity, http_session)


@pytest.fixture
def cart_store(cart_repository, identity, pricing_service):
    return CartStore(cart_repository, identity, pricing_service)


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
