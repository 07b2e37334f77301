"""Clients for the fee-sharing platform's claimable-positions and claim-stats endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import DataSourceConfig, get_app_config
from ..datalake.schemas import Position
from ..errors import UpstreamError
from ..monitoring.logger import get_logger

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "User-Agent": "bagstats/1.0",
}


@dataclass(slots=True, frozen=True)
class ClaimStat:
    """Lifetime claimed amount of one wallet for one token."""

    wallet: str
    total_claimed_lamports: int


def _to_lamports(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    try:
        return max(int(str(value).strip()), 0)
    except ValueError:
        try:
            return max(int(float(value)), 0)
        except (TypeError, ValueError):
            return 0


class _BagsApiClient:
    """Shared transport for the platform's public REST API."""

    def __init__(
        self,
        config: Optional[DataSourceConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().data_sources
        self._session = session or requests.Session()
        self._base_url = str(self._config.bags_base_url).rstrip("/")
        self._logger = get_logger(__name__)

    def _headers(self) -> dict:
        headers = dict(DEFAULT_HEADERS)
        if self._config.bags_api_key:
            headers["x-api-key"] = self._config.bags_api_key
        return headers

    @retry(
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _get_json(self, path: str, params: dict) -> Any:
        response = self._session.get(
            f"{self._base_url}{path}",
            params=params,
            headers=self._headers(),
            timeout=self._config.http_timeout,
        )
        if not response.ok:
            raise UpstreamError(
                f"Bags API error: {response.status_code} for {path}",
                status_code=response.status_code,
            )
        return response.json()

    def _request(self, path: str, params: dict) -> List[Any]:
        try:
            payload = self._get_json(path, params)
        except requests.RequestException as exc:
            raise UpstreamError(f"Bags API request to {path} failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError(f"Bags API returned invalid JSON for {path}") from exc
        if isinstance(payload, dict):
            if payload.get("success") is False:
                raise UpstreamError(str(payload.get("error") or "Bags API returned error"))
            payload = payload.get("response", [])
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise UpstreamError(f"Unexpected Bags API payload for {path}: {type(payload).__name__}")
        return payload


class PositionsClient(_BagsApiClient):
    """Fetches the claimable fee-share positions of a wallet."""

    def fetch_positions(self, wallet: str) -> List[Position]:
        """Return raw positions; raises :class:`UpstreamError` on any failure."""

        items = self._request(self._config.positions_endpoint, {"wallet": wallet})
        positions: List[Position] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            mint = item.get("baseMint")
            if not mint:
                self._logger.debug("Skipping position without baseMint for %s", wallet)
                continue
            positions.append(
                Position(
                    mint=str(mint),
                    claimable_lamports=_to_lamports(item.get("totalClaimableLamportsUserShare")),
                )
            )
        return positions


class ClaimStatsClient(_BagsApiClient):
    """Fetches per-token lifetime claim statistics."""

    def fetch_claim_stats(self, mint: str) -> List[ClaimStat]:
        items = self._request(self._config.claim_stats_endpoint, {"tokenMint": mint})
        stats: List[ClaimStat] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("wallet"):
                continue
            stats.append(
                ClaimStat(
                    wallet=str(item["wallet"]),
                    total_claimed_lamports=_to_lamports(item.get("totalClaimed")),
                )
            )
        return stats

    def claimed_by(self, mint: str, wallet: str) -> int:
        """Return the amount ``wallet`` has claimed for ``mint`` (0 when absent)."""

        for stat in self.fetch_claim_stats(mint):
            if stat.wallet == wallet:
                return stat.total_claimed_lamports
        return 0


__all__ = ["ClaimStat", "ClaimStatsClient", "PositionsClient"]
