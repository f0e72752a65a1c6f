import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Tuple

from dotenv import load_dotenv


load_dotenv()

# Used when neither a live table nor a cached one is available
DEFAULT_EXCHANGE_RATES = {
    "USD": Decimal("1"),
    "MXN": Decimal("20.5"),
    "EUR": Decimal("0.92"),
}


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_currencies(name: str, default: str) -> Tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(code.strip().upper() for code in raw.split(",") if code.strip())


@dataclass
class BackendConfig:
    """Remote storefront backend settings"""
    base_url: str = "http://localhost:5000"
    timeout_seconds: float = 10
    stock_path: str = "/api/products/stock/{variant_id}"


@dataclass
class ExchangeRateConfig:
    """Third-party exchange rate provider settings"""
    app_id: str = ""
    base_url: str = "https://openexchangerates.org/api"
    anchor_currency: str = "USD"
    supported_currencies: Tuple[str, ...] = ("USD", "MXN", "EUR")
    cache_ttl_seconds: int = 3600
    timeout_seconds: float = 10
    refresh_in_background: bool = True
    default_rates: Dict[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_EXCHANGE_RATES))


@dataclass
class StorageConfig:
    """Persisted client storage (tokens, cached rates)"""
    url: str = "sqlite:///storefront_client.db"


@dataclass
class AppConfig:
    """Application configuration"""
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 5000
    environment: str = "development"  # development, staging, production
    log_level: str = "INFO"
    display_currency: str = "MXN"
    base_currency: str = "MXN"  # currency catalog prices are expressed in


class Config:
    def __init__(self):
        self.environment = os.getenv("ENVIRONMENT", "development")

        self.backend = BackendConfig(
            base_url=os.getenv("STOREFRONT_API_URL", "http://localhost:5000").rstrip("/"),
            timeout_seconds=float(os.getenv("STOREFRONT_API_TIMEOUT", "10")),
            stock_path=os.getenv("STOREFRONT_STOCK_PATH", "/api/products/stock/{variant_id}"),
        )

        self.exchange_rates = ExchangeRateConfig(
            app_id=os.getenv("EXCHANGE_RATES_APP_ID", ""),
            base_url=os.getenv("EXCHANGE_RATES_URL", "https://openexchangerates.org/api").rstrip("/"),
            anchor_currency=os.getenv("EXCHANGE_RATES_ANCHOR", "USD").upper(),
            supported_currencies=_env_currencies("SUPPORTED_CURRENCIES", "USD,MXN,EUR"),
            cache_ttl_seconds=int(os.getenv("EXCHANGE_RATES_CACHE_TTL", "3600")),
            refresh_in_background=_env_bool("EXCHANGE_RATES_BACKGROUND", "true"),
        )

        self.storage = StorageConfig(
            url=os.getenv("STOREFRONT_STORAGE_URL", "sqlite:///storefront_client.db")
        )

        self.app = AppConfig(
            debug=_env_bool("DEBUG"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "5000")),
            environment=self.environment,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            display_currency=os.getenv("DISPLAY_CURRENCY", "MXN").upper(),
            base_currency=os.getenv("BASE_CURRENCY", "MXN").upper(),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> None:
        """Validate critical configuration"""
        supported = self.exchange_rates.supported_currencies
        if self.exchange_rates.anchor_currency not in supported:
            raise ValueError(f"Anchor currency {self.exchange_rates.anchor_currency} must be supported")

        for name in ("display_currency", "base_currency"):
            code = getattr(self.app, name)
            if code not in supported:
                raise ValueError(f"{name.upper()} {code} is not one of {', '.join(supported)}")

        if self.backend.timeout_seconds <= 0:
            raise ValueError("STOREFRONT_API_TIMEOUT must be positive")

        if self.is_production and not self.exchange_rates.app_id:
            raise ValueError("EXCHANGE_RATES_APP_ID must be set in production")


def load_config() -> Config:
    """Build and validate a fresh configuration from the environment"""
    cfg = Config()
    cfg.validate()
    return cfg

