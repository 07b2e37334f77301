"""Token metadata lookups (name, symbol, logo) against the Jupiter token API."""

from __future__ import annotations

from threading import Lock
from typing import Optional

import requests
from cachetools import TTLCache

from ..config.settings import DataSourceConfig, get_app_config
from ..datalake.schemas import TokenMetadata
from ..errors import UpstreamError
from ..monitoring.logger import get_logger


class MetadataClient:
    """Fetches display metadata for a mint; ``None`` means the mint is unknown."""

    def __init__(
        self,
        config: Optional[DataSourceConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().data_sources
        self._session = session or requests.Session()
        self._cache: TTLCache[str, Optional[TokenMetadata]] = TTLCache(
            maxsize=2_048, ttl=max(self._config.metadata_cache_ttl_seconds, 0)
        )
        self._cache_lock = Lock()
        self._logger = get_logger(__name__)

    def fetch(self, mint: str) -> Optional[TokenMetadata]:
        """Return metadata for ``mint``; raises :class:`UpstreamError` on transport failure."""

        with self._cache_lock:
            if mint in self._cache:
                return self._cache[mint]

        url = self._config.metadata_url_template.format(mint=mint)
        try:
            response = self._session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=self._config.http_timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"metadata request for {mint} failed: {exc}") from exc

        if response.status_code == 404:
            self._set_cached(mint, None)
            return None
        if not response.ok:
            raise UpstreamError(
                f"metadata service returned {response.status_code} for {mint}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"metadata service returned invalid JSON for {mint}") from exc
        if not isinstance(payload, dict):
            self._set_cached(mint, None)
            return None

        metadata = TokenMetadata(
            mint=mint,
            name=payload.get("name") or None,
            symbol=payload.get("symbol") or None,
            logo_uri=payload.get("logoURI") or None,
        )
        self._set_cached(mint, metadata)
        return metadata

    def _set_cached(self, mint: str, value: Optional[TokenMetadata]) -> None:
        with self._cache_lock:
            self._cache[mint] = value


__all__ = ["MetadataClient"]
