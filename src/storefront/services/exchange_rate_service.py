from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
import logging
import threading

from storefront.core.config import ExchangeRateConfig
from storefront.core.exceptions import DatabaseError, ExternalServiceError
from storefront.models.pricing import ExchangeRateTable
from storefront.repositories.exchange_rate_repository import ExchangeRateRepository
from storefront.repositories.storage import ClientStorage
from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting_utils import FormattingUtils
from storefront.utils.validators import ValidationUtils

logger = logging.getLogger(__name__)

CACHE_KEY = "exchange-rates"


class ExchangeRateProvider:
    """
    Currency conversion backed by live rates, a persisted cache and defaults

    Business Rules:
    - Rates are relative to the anchor currency, whose rate is always 1
    - On first use: adopt a cache younger than the TTL, then refresh
    - Live data always supersedes cache; a failed refresh keeps whatever
      table is current, falling back to any cache (even a stale one) and
      finally to the configured default rates
    - get_rate and format_price never raise because of the network
    """

    def __init__(
        self,
        repository: ExchangeRateRepository,
        storage: ClientStorage,
        config: ExchangeRateConfig,
        clock: Callable[[], datetime] = DateUtils.now_utc
    ):
        self.repository = repository
        self.storage = storage
        self.config = config
        self.clock = clock
        self._lock = threading.Lock()
        self._table = self._default_table()
        self._initialized = False
        self._refresh_thread: Optional[threading.Thread] = None
        self.is_loading = False
        self.last_error: Optional[str] = None

    @property
    def anchor(self) -> str:
        return self.config.anchor_currency

    @property
    def table(self) -> ExchangeRateTable:
        self._ensure_initialized()
        return self._table

    def _default_table(self) -> ExchangeRateTable:
        return ExchangeRateTable(rates=self.config.default_rates, anchor=self.anchor, source="default")

    def _load_cache(self) -> Optional[ExchangeRateTable]:
        try:
            cached = self.storage.get_json(CACHE_KEY)
        except DatabaseError:
            logger.warning("Exchange rate cache unreadable")
            return None
        if not cached:
            return None
        try:
            rates = {code.upper(): Decimal(str(rate)) for code, rate in cached["rates"].items()}
            fetched_at = DateUtils.parse_iso_string(cached["timestamp"])
        except (KeyError, TypeError, AttributeError, ValueError, ArithmeticError):
            logger.warning("Ignoring malformed exchange rate cache")
            return None
        return ExchangeRateTable(rates=rates, anchor=self.anchor, fetched_at=fetched_at, source="cache")

    def _save_cache(self, table: ExchangeRateTable) -> None:
        try:
            self.storage.set_json(CACHE_KEY, {
                "rates": {code: str(rate) for code, rate in table.rates.items()},
                "timestamp": DateUtils.to_iso_string(table.fetched_at),
            })
        except DatabaseError:
            logger.warning("Could not persist exchange rate cache")

    def initialize(self, background: Optional[bool] = None) -> None:
        """Adopt a fresh cache, then refresh (in a daemon thread when background)"""
        with self._lock:
            if self._initialized:
                return
            self._initialized = True
            cached = self._load_cache()
            if cached is not None and cached.is_fresh(self.config.cache_ttl_seconds, self.clock()):
                self._table = cached
                logger.info(f"Using cached exchange rates from {DateUtils.to_iso_string(cached.fetched_at)}")

        if background is None:
            background = self.config.refresh_in_background
        if background:
            self._refresh_thread = threading.Thread(
                target=self.refresh, name="exchange-rate-refresh", daemon=True
            )
            self._refresh_thread.start()
        else:
            self.refresh()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    def wait_for_refresh(self, timeout: Optional[float] = None) -> None:
        """Block until the background refresh started by initialize finishes"""
        if self._refresh_thread is not None:
            self._refresh_thread.join(timeout)

    def refresh(self) -> bool:
        """
        Fetch live rates; returns True when the live table was adopted

        A failure is recorded in last_error and never raised.
        """
        self.is_loading = True
        try:
            rates = self.repository.fetch_latest(self.config.supported_currencies)
        except ExternalServiceError as e:
            self.last_error = e.message
            self._fall_back()
            return False
        finally:
            self.is_loading = False

        table = ExchangeRateTable(rates=rates, anchor=self.anchor, fetched_at=self.clock(), source="live")
        with self._lock:
            self._table = table
            self.last_error = None
        self._save_cache(table)
        logger.info(f"Exchange rates updated: {table.to_dict()['rates']}")
        return True

    def _fall_back(self) -> None:
        with self._lock:
            if self._table.source != "default":
                logger.warning(f"Exchange rate refresh failed ({self.last_error}); keeping {self._table.source} rates")
                return
            cached = self._load_cache()
            if cached is not None:
                if not cached.is_fresh(self.config.cache_ttl_seconds, self.clock()):
                    logger.warning("Exchange rate refresh failed; using stale cached rates")
                self._table = cached
            else:
                logger.warning("Exchange rate refresh failed and no cache exists; using default rates")

    def _anchor_rate(self, currency: str) -> Decimal:
        rate = self._table.rate_for(currency)
        if rate is None:
            rate = self.config.default_rates.get(currency)
        if rate is None or rate <= 0:
            logger.warning(f"No exchange rate for {currency}; treating as 1")
            return Decimal("1")
        return rate

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """Multiplier converting from_currency amounts into to_currency"""
        from_currency = (from_currency or "").upper()
        to_currency = (to_currency or "").upper()
        if from_currency == to_currency:
            return Decimal("1")
        self._ensure_initialized()
        return self._anchor_rate(to_currency) / self._anchor_rate(from_currency)

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        return amount * self.get_rate(from_currency, to_currency)

    def format_price(self, amount: Any, target_currency: str = "MXN", base_currency: str = "MXN") -> str:
        """
        Convert and format for display

        Missing, unparseable or non-positive amounts render as the zero value.
        """
        price = ValidationUtils.parse_price(amount)
        if price is None or price <= 0:
            return FormattingUtils.zero_price(target_currency)
        return FormattingUtils.format_money(self.convert(price, base_currency, target_currency), target_currency)

    def status(self) -> Dict[str, Any]:
        table = self.table
        status = table.to_dict()
        status.update({
            "loading": self.is_loading,
            "lastError": self.last_error,
            "supportedCurrencies": list(self.config.supported_currencies),
        })
        return status
