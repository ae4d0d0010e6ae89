"""
Exchange rates for displaying plan prices.

Fetches live rates relative to the base currency; any failure falls back
to the built-in table so prices can always be shown.
"""

from __future__ import annotations

import httpx
from loguru import logger

from pmiprep.config import Settings, get_settings
from pmiprep.core.plans import CURRENCY_SYMBOLS, FALLBACK_RATES, convert_price


class ExchangeRateClient:
    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(timeout=self.settings.http_timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ExchangeRateClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def fetch_rates(self) -> dict[str, float]:
        """Rates for the supported currencies, live when possible."""
        try:
            response = self._client.get(self.settings.exchange_rate_url)
            response.raise_for_status()
            live = response.json().get("rates", {})
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Exchange rate fetch failed, using fallback rates: {}", exc)
            return dict(FALLBACK_RATES)

        rates = dict(FALLBACK_RATES)
        for currency in CURRENCY_SYMBOLS:
            if isinstance(live.get(currency), (int, float)):
                rates[currency] = float(live[currency])
        rates[self.settings.base_currency] = 1.0
        logger.debug("Loaded exchange rates: {}", rates)
        return rates

    def convert(self, amount: float, currency: str, rates: dict[str, float] | None = None) -> float:
        return convert_price(amount, currency, rates if rates is not None else self.fetch_rates())
