"""Subscription registration and per-wallet history queries."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..config.settings import AppConfig, get_app_config
from ..datalake.schemas import NotificationRecord, Snapshot, Subscription
from ..datalake.storage import StorageAdapter
from ..errors import NotFoundError, UpstreamError, ValidationError
from ..monitor.bag_monitor import BagMonitor
from ..monitoring.logger import get_logger


class SubscriptionService:
    """Thin layer over the store that validates input and seeds baselines."""

    def __init__(
        self,
        storage: StorageAdapter,
        monitor: Optional[BagMonitor] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._config = config or get_app_config()
        self._storage = storage
        self._monitor = monitor
        self._logger = get_logger(__name__)

    def validate_wallet(self, wallet: Optional[str]) -> str:
        wallet = (wallet or "").strip()
        low = self._config.monitor.min_address_length
        high = self._config.monitor.max_address_length
        if not low <= len(wallet) <= high:
            raise ValidationError("Invalid wallet address")
        return wallet

    def subscribe(self, device_token: str, wallet: str, platform: str = "ios") -> Subscription:
        if not device_token or not wallet:
            raise ValidationError("Missing deviceToken or wallet")
        wallet = self.validate_wallet(wallet)
        subscription = self._storage.upsert_subscription(
            Subscription(device_token=device_token, wallet=wallet, platform=platform or "ios")
        )
        self._logger.info("Device %s... subscribed to %s", device_token[:8], wallet)
        self._seed_baseline(wallet)
        return subscription

    def _seed_baseline(self, wallet: str) -> None:
        if self._monitor is None:
            return
        try:
            self._monitor.check_wallet(wallet)
        except UpstreamError as exc:
            self._logger.warning("Initial check failed for %s: %s", wallet, exc)

    def unsubscribe(self, device_token: str, wallet: str) -> None:
        if not device_token:
            raise ValidationError("Missing device token")
        if not self._storage.delete_subscription(device_token, wallet):
            raise NotFoundError("Subscription not found")
        self._logger.info("Device %s... unsubscribed from %s", device_token[:8], wallet)

    def list_by_device(self, device_token: str) -> List[Subscription]:
        if not device_token:
            raise ValidationError("Missing device token")
        return self._storage.list_subscriptions_by_device(device_token)

    def wallet_history(self, wallet: str, limit: Optional[int] = None) -> Dict[str, Any]:
        limit = limit or self._config.storage.snapshot_history_limit
        latest: Optional[Snapshot] = self._storage.get_latest_snapshot(wallet)
        history = self._storage.list_recent_snapshots(wallet, limit=limit)
        return {
            "wallet": wallet,
            "current": latest.to_dict() if latest else None,
            "history": [snapshot.to_dict() for snapshot in history],
        }

    def notification_history(self, wallet: str, limit: Optional[int] = None) -> List[NotificationRecord]:
        limit = limit or self._config.storage.notification_history_limit
        return self._storage.list_notifications(wallet, limit=limit)


__all__ = ["SubscriptionService"]
