"""Native-asset (SOL) price oracle backed by the CoinGecko simple price API."""

from __future__ import annotations

from threading import Lock
from typing import Optional

import requests
from cachetools import TTLCache
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import DataSourceConfig, get_app_config
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

_CACHE_KEY = "solana:usd"


class PriceOracle:
    """Returns the current SOL/USD price, degrading to the last known or a static fallback."""

    def __init__(
        self,
        config: Optional[DataSourceConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().data_sources
        self._session = session or requests.Session()
        self._cache: TTLCache[str, float] = TTLCache(
            maxsize=1, ttl=max(self._config.price_cache_ttl_seconds, 0)
        )
        self._lock = Lock()
        self._last_known: Optional[float] = None
        self._logger = get_logger(__name__)

    @property
    def last_known_price(self) -> Optional[float]:
        return self._last_known

    @retry(
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        stop=stop_after_attempt(2),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _fetch(self) -> float:
        response = self._session.get(
            str(self._config.price_url),
            headers={"Accept": "application/json"},
            timeout=self._config.http_timeout,
        )
        response.raise_for_status()
        payload = response.json()
        value = payload.get("solana", {}).get("usd") if isinstance(payload, dict) else None
        if value is None:
            raise ValueError("price payload missing solana.usd")
        price = float(value)
        if price <= 0:
            raise ValueError(f"non-positive price {price}")
        return price

    def refresh(self, fallback: Optional[float] = None) -> float:
        """Fetch a fresh price, bypassing the cache."""

        try:
            price = self._fetch()
        except (requests.RequestException, ValueError, TypeError, AttributeError) as exc:
            default = self._default(fallback)
            METRICS.increment("earnings.partial.price")
            self._logger.warning("SOL price fetch failed (%s); using %.4f", exc, default)
            return default
        with self._lock:
            self._cache[_CACHE_KEY] = price
            self._last_known = price
        return price

    def get_sol_price(self, fallback: Optional[float] = None) -> float:
        with self._lock:
            cached = self._cache.get(_CACHE_KEY)
        if cached is not None:
            return cached
        return self.refresh(fallback)

    def _default(self, fallback: Optional[float]) -> float:
        if self._last_known is not None:
            return self._last_known
        if fallback is not None:
            return float(fallback)
        return float(self._config.fallback_sol_price)


__all__ = ["PriceOracle"]
