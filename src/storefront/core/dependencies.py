from typing import TypeVar, Type, Dict, Any, Callable, Optional
import logging

import requests

from storefront.core.config import Config
from storefront.repositories.cart_repository import CartRepository
from storefront.repositories.exchange_rate_repository import ExchangeRateRepository
from storefront.repositories.product_repository import ProductRepository, PromotionRepository
from storefront.repositories.storage import ClientStorage, SqlClientStorage
from storefront.services.cart_service import CartStore
from storefront.services.exchange_rate_service import ExchangeRateProvider
from storefront.services.pricing_service import PricingService
from storefront.services.promotion_service import PromotionResolver
from storefront.services.session_service import SessionIdentity
from storefront.services.stock_service import StockResolver

T = TypeVar('T')

logger = logging.getLogger(__name__)


class DependencyContainer:
    """Process-wide services, built once at start and passed explicitly"""

    def __init__(self):
        self._services: Dict[str, Any] = {}
        self._factories: Dict[str, Callable] = {}

    def register_singleton(self, service_class: Type[T], instance: T) -> None:
        """Register a singleton instance"""
        self._services[self._get_service_key(service_class)] = instance

    def register_factory(self, service_class: Type[T], factory: Callable[[], T]) -> None:
        """Register a factory; its first result is kept as the singleton"""
        self._factories[self._get_service_key(service_class)] = factory

    def get(self, service_class: Type[T]) -> T:
        key = self._get_service_key(service_class)

        if key in self._services:
            return self._services[key]

        if key in self._factories:
            instance = self._factories[key]()
            self._services[key] = instance
            return instance

        raise ValueError(f"Service {service_class.__name__} not registered")

    def _get_service_key(self, service_class: Type[T]) -> str:
        return f"{service_class.__module__}.{service_class.__qualname__}"


def build_container(
    cfg: Config,
    http_session: Optional[requests.Session] = None,
    storage: Optional[ClientStorage] = None
) -> DependencyContainer:
    """
    Wire the process-wide services

    The HTTP session and the storage can be injected (tests pass a stub
    session and in-memory storage); otherwise they are built from config.
    """
    container = DependencyContainer()
    http = http_session or requests.Session()

    container.register_singleton(Config, cfg)
    container.register_singleton(requests.Session, http)
    if storage is not None:
        container.register_singleton(ClientStorage, storage)
    else:
        container.register_factory(ClientStorage, lambda: SqlClientStorage(cfg.storage.url))

    container.register_factory(ProductRepository, lambda: ProductRepository(
        cfg.backend.base_url, http, cfg.backend.timeout_seconds, cfg.backend.stock_path
    ))
    container.register_factory(PromotionRepository, lambda: PromotionRepository(
        cfg.backend.base_url, http, cfg.backend.timeout_seconds
    ))
    container.register_factory(StockResolver, lambda: StockResolver(container.get(ProductRepository)))
    container.register_factory(ExchangeRateRepository, lambda: ExchangeRateRepository(
        cfg.exchange_rates.base_url, cfg.exchange_rates.app_id, http, cfg.exchange_rates.timeout_seconds
    ))
    container.register_factory(ExchangeRateProvider, lambda: ExchangeRateProvider(
        container.get(ExchangeRateRepository), container.get(ClientStorage), cfg.exchange_rates
    ))

    logger.info(f"Services wired for backend {cfg.backend.base_url}")
    return container


def build_pricing_service(container: DependencyContainer) -> PricingService:
    """Pricing with a fresh promotion cache (one per page view)"""
    cfg = container.get(Config)
    return PricingService(
        PromotionResolver(container.get(PromotionRepository)),
        container.get(StockResolver),
        container.get(ExchangeRateProvider),
        cfg.app.base_currency,
    )


def build_cart_store(container: DependencyContainer, identity: SessionIdentity) -> CartStore:
    """Cart store addressed by the given identity"""
    cfg = container.get(Config)
    repository = CartRepository(
        cfg.backend.base_url, identity, container.get(requests.Session), cfg.backend.timeout_seconds
    )
    return CartStore(repository, identity, build_pricing_service(container))
