"""Builds notification messages and hands them to a transport."""

from __future__ import annotations

from typing import Optional

from ..config.settings import NotificationConfig, get_app_config
from ..datalake.schemas import EarningsEvent, PushMessage, SendResult
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .transport import NotificationTransport

NEW_BAG_TITLE = "New Bag Received! 💰"
DAILY_SUMMARY_TITLE = "Daily Bags Summary 📊"


def new_bag_message(event: EarningsEvent, token_symbol: str) -> PushMessage:
    return PushMessage(
        title=NEW_BAG_TITLE,
        body=f"+{event.delta_sol:.4f} SOL (~${event.delta_value:.2f}) from {token_symbol}",
        data={
            "type": "new_bag",
            "wallet": event.wallet,
            "tokenSymbol": token_symbol,
            "amountSOL": event.delta_sol,
            "amountUSD": event.delta_value,
        },
    )


def daily_summary_message(wallet: str, total_unclaimed_value: float, positions_count: int) -> PushMessage:
    return PushMessage(
        title=DAILY_SUMMARY_TITLE,
        body=f"You have ${total_unclaimed_value:.2f} unclaimed across {positions_count} positions",
        data={
            "type": "daily_summary",
            "wallet": wallet,
            "totalUnclaimed": total_unclaimed_value,
            "positionsCount": positions_count,
        },
    )


class NotificationDispatcher:
    """Sends messages through a transport; never raises on delivery failure."""

    def __init__(
        self,
        transport: NotificationTransport,
        config: Optional[NotificationConfig] = None,
    ) -> None:
        self._transport = transport
        self._config = config or get_app_config().notifications
        self._logger = get_logger(__name__)

    def send(self, device_token: str, message: PushMessage) -> SendResult:
        try:
            result = self._transport.send(device_token, message)
        except Exception as exc:  # noqa: BLE001
            self._logger.exception("Transport raised while sending to %s...", device_token[:8])
            result = SendResult(success=False, error=str(exc) or type(exc).__name__)
        METRICS.increment("notifications.sent" if result.success else "notifications.failed")
        return result

    def send_new_bag(
        self,
        device_token: str,
        event: EarningsEvent,
        token_symbol: Optional[str] = None,
    ) -> SendResult:
        symbol = token_symbol or self._config.default_token_symbol
        return self.send(device_token, new_bag_message(event, symbol))

    def send_daily_summary(
        self,
        device_token: str,
        wallet: str,
        total_unclaimed_value: float,
        positions_count: int,
    ) -> SendResult:
        return self.send(device_token, daily_summary_message(wallet, total_unclaimed_value, positions_count))


__all__ = [
    "DAILY_SUMMARY_TITLE",
    "NEW_BAG_TITLE",
    "NotificationDispatcher",
    "daily_summary_message",
    "new_bag_message",
]
