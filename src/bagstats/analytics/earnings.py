"""Aggregates positions, claim stats, metadata and price into a wallet earnings view."""

from __future__ import annotations

import time
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from ..config.settings import DataSourceConfig, get_app_config
from ..datalake.schemas import Position, TokenAggregate, TokenMetadata, WalletEarningsView
from ..errors import PartialDataWarning, UpstreamError
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import lamports_to_sol, utc_now
from .cache import ExpiringCache, KeyedLocks


class PositionsSource(Protocol):
    def fetch_positions(self, wallet: str) -> List[Position]:
        ...


class ClaimStatsSource(Protocol):
    def claimed_by(self, mint: str, wallet: str) -> int:
        ...


class MetadataSource(Protocol):
    def fetch(self, mint: str) -> Optional[TokenMetadata]:
        ...


class PriceSource(Protocol):
    def get_sol_price(self, fallback: Optional[float] = None) -> float:
        ...


def lamports_to_value(lamports: int, price: float) -> float:
    """Convert minor units of the native asset into the pricing currency."""
    return lamports_to_sol(lamports) * price


def total_unclaimed_lamports(positions: Iterable[Position]) -> int:
    return sum(position.claimable_lamports for position in positions)


def fold_positions(positions: Sequence[Position]) -> Dict[str, List[int]]:
    """Merge positions by mint into ``{mint: [unclaimed_lamports, position_count]}``.

    Insertion order follows the first appearance of each mint.
    """
    folded: Dict[str, List[int]] = {}
    for position in positions:
        entry = folded.get(position.mint)
        if entry is None:
            folded[position.mint] = [position.claimable_lamports, 1]
        else:
            entry[0] += position.claimable_lamports
            entry[1] += 1
    return folded


class StatsAggregator:
    """Builds :class:`WalletEarningsView` objects and caches them per wallet."""

    def __init__(
        self,
        positions_client: PositionsSource,
        claim_stats_client: ClaimStatsSource,
        metadata_client: Optional[MetadataSource],
        price_oracle: PriceSource,
        *,
        config: Optional[DataSourceConfig] = None,
        cache: Optional[ExpiringCache[str, WalletEarningsView]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or get_app_config().data_sources
        self._positions = positions_client
        self._claims = claim_stats_client
        self._metadata = metadata_client
        self._price = price_oracle
        self._cache = cache if cache is not None else ExpiringCache(
            self._config.stats_cache_ttl_seconds, maxsize=self._config.stats_cache_size
        )
        self._inflight = KeyedLocks()
        self._sleep = sleep
        self._logger = get_logger(__name__)

    def compute_earnings(self, wallet: str, *, sol_price: Optional[float] = None) -> WalletEarningsView:
        """Return the earnings view for ``wallet``.

        Served from cache while the entry is live. Raises :class:`UpstreamError`
        only when the positions source fails; every other source degrades.
        """
        cached = self._cache.get(wallet)
        if cached is not None:
            METRICS.increment("earnings.cache_hit")
            self._logger.debug("Cache hit for %s", wallet)
            return cached

        with self._inflight.hold(wallet):
            cached = self._cache.get(wallet)
            if cached is not None:
                METRICS.increment("earnings.cache_hit")
                return cached
            METRICS.increment("earnings.cache_miss")
            self._logger.info("Computing fresh earnings for %s", wallet)
            view = self._compute(wallet, sol_price)
            self._cache.put(wallet, view)
            return view

    def _compute(self, wallet: str, sol_price: Optional[float]) -> WalletEarningsView:
        positions = self._positions.fetch_positions(wallet)
        price = sol_price if sol_price is not None else self._price.get_sol_price(
            fallback=self._config.fallback_sol_price
        )
        folded = fold_positions(positions)
        mints = list(folded)

        unclaimed_total = total_unclaimed_lamports(positions)
        claimed_per_mint = self._collect_claims(wallet, mints)
        claimed_total = sum(claimed_per_mint.values())
        metadata = self._collect_metadata(mints[: self._config.metadata_fetch_limit])

        tokens: List[TokenAggregate] = []
        for mint, (unclaimed, count) in folded.items():
            claimed = claimed_per_mint.get(mint, 0)
            meta = metadata.get(mint)
            tokens.append(
                TokenAggregate(
                    mint=mint,
                    unclaimed_lamports=unclaimed,
                    claimed_lamports=claimed,
                    position_count=count,
                    name=meta.name if meta else None,
                    symbol=meta.symbol if meta else None,
                    logo_uri=meta.logo_uri if meta else None,
                    unclaimed_value=lamports_to_value(unclaimed, price),
                    claimed_value=lamports_to_value(claimed, price),
                    total_value=lamports_to_value(unclaimed + claimed, price),
                )
            )
        tokens.sort(key=lambda token: token.total_value, reverse=True)

        # Wallet totals come from exact integer sums, converted once.
        return WalletEarningsView(
            wallet=wallet,
            total_earned_value=lamports_to_value(unclaimed_total + claimed_total, price),
            unclaimed_value=lamports_to_value(unclaimed_total, price),
            claimed_value=lamports_to_value(claimed_total, price),
            tokens_count=len(mints),
            positions_count=len(positions),
            tokens=tuple(tokens),
            sol_price=price,
            total_unclaimed_lamports=unclaimed_total,
            total_claimed_lamports=claimed_total,
            computed_at=utc_now(),
        )

    def _collect_claims(self, wallet: str, mints: Sequence[str]) -> Dict[str, int]:
        claimed: Dict[str, int] = {}
        delay = self._config.claim_stats_delay_seconds
        for index, mint in enumerate(mints):
            if index and delay > 0:
                self._sleep(delay)
            try:
                amount = self._claims.claimed_by(mint, wallet)
            except UpstreamError as exc:
                self._partial("claim_stats", "Failed to get claim stats for %s: %s", mint, exc)
                continue
            if amount:
                claimed[mint] = amount
        return claimed

    def _collect_metadata(self, mints: Sequence[str]) -> Dict[str, TokenMetadata]:
        if self._metadata is None:
            return {}
        found: Dict[str, TokenMetadata] = {}
        for mint in mints:
            try:
                meta = self._metadata.fetch(mint)
            except UpstreamError as exc:
                self._partial("metadata", "Failed to get metadata for %s: %s", mint, exc)
                continue
            if meta is not None:
                found[mint] = meta
        return found

    def _partial(self, source: str, message: str, *args: object) -> None:
        METRICS.increment(f"earnings.partial.{source}")
        self._logger.warning(
            message, *args, extra={"category": PartialDataWarning.__name__, "source": source}
        )


__all__ = [
    "StatsAggregator",
    "fold_positions",
    "lamports_to_value",
    "total_unclaimed_lamports",
]
