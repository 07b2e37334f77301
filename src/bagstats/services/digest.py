"""Sends the daily unclaimed-earnings summary to every subscribed device."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ..analytics.earnings import StatsAggregator
from ..datalake.schemas import NotificationRecord
from ..datalake.storage import StorageAdapter
from ..errors import UpstreamError
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from ..notifications.dispatcher import NotificationDispatcher

logger = get_logger(__name__)


def send_daily_summaries(
    storage: StorageAdapter,
    aggregator: StatsAggregator,
    dispatcher: NotificationDispatcher,
    wallets: Optional[Iterable[str]] = None,
) -> List[NotificationRecord]:
    """Push one summary per subscription and return the audit records written.

    A wallet whose positions cannot be fetched is skipped.
    """

    targets = list(wallets) if wallets is not None else storage.list_subscribed_wallets()
    records: List[NotificationRecord] = []
    for wallet in targets:
        with correlation_scope(wallet):
            try:
                view = aggregator.compute_earnings(wallet)
            except UpstreamError as exc:
                METRICS.increment("digest.wallet_failures")
                logger.warning("Skipping daily summary for %s: %s", wallet, exc)
                continue
            for subscription in storage.list_subscriptions_by_wallet(wallet):
                result = dispatcher.send_daily_summary(
                    subscription.device_token, wallet, view.unclaimed_value, view.positions_count
                )
                payload = {
                    "device_token": subscription.device_token,
                    "total_unclaimed_usd": view.unclaimed_value,
                    "positions_count": view.positions_count,
                    "success": result.success,
                }
                if result.error is not None:
                    payload["error"] = result.error
                record = NotificationRecord(wallet=wallet, type="daily_summary", payload=payload)
                records.append(storage.record_notification(record))
    logger.info("Sent %d daily summaries across %d wallets", len(records), len(targets))
    return records


__all__ = ["send_daily_summaries"]
