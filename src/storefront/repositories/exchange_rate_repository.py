from decimal import Decimal
from typing import Dict, Optional, Sequence
import logging

import requests

from storefront.repositories.base import BaseApiRepository
from storefront.schemas.product_schemas import ExchangeRatesResponse

logger = logging.getLogger(__name__)


class ExchangeRateRepository(BaseApiRepository):
    """Client for an Open Exchange Rates compatible latest-rates endpoint"""

    service_name = "exchange_rates"

    def __init__(
        self,
        base_url: str,
        app_id: str = "",
        http_session: Optional[requests.Session] = None,
        timeout: float = 10
    ):
        super().__init__(base_url, http_session, timeout)
        self.app_id = app_id

    def fetch_latest(self, symbols: Sequence[str]) -> Dict[str, Decimal]:
        """
        Latest rates for the given currency codes, relative to the provider's base

        Raises:
            ExternalServiceError: request failed
            MalformedResponseError: payload has no usable ``rates``
        """
        params = {"symbols": ",".join(symbols)}
        if self.app_id:
            params["app_id"] = self.app_id
        body = self.execute_json("GET", "/latest.json", params=params)
        parsed = self.parse(ExchangeRatesResponse, body)
        logger.info(f"Fetched {len(parsed.rates)} exchange rates (base {parsed.base or 'unknown'})")
        return {code.upper(): rate for code, rate in parsed.rates.items()}
