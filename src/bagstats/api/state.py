"""Shared API state and serialisation helpers."""

from __future__ import annotations

from typing import Any, Dict, List

from ..config.settings import AppConfig
from ..datalake.schemas import PushMessage, Subscription
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..services.container import Services
from ..utils.constants import utc_now

TEST_MESSAGE = PushMessage(
    title="Test Notification 🎒",
    body="Your Bags notifications are working!",
    data={"type": "test"},
)


def _subscription_to_dict(subscription: Subscription) -> Dict[str, Any]:
    return {
        "wallet": subscription.wallet,
        "platform": subscription.platform,
        "createdAt": subscription.created_at.isoformat() if subscription.created_at else None,
    }


class ServiceState:
    """Wraps the service graph for request handlers."""

    def __init__(self, services: Services, metrics: MetricsRegistry = METRICS) -> None:
        self.services = services
        self.metrics = metrics

    @property
    def config(self) -> AppConfig:
        return self.services.config

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": utc_now().isoformat(),
            "monitorRunning": self.services.monitor.is_running,
        }

    def wallet_stats(self, address: str) -> Dict[str, Any]:
        wallet = self.services.subscriptions.validate_wallet(address)
        return self.services.aggregator.compute_earnings(wallet).to_dict()

    def subscribe(self, device_token: str, wallet: str, platform: str) -> Dict[str, Any]:
        subscription = self.services.subscriptions.subscribe(device_token, wallet, platform)
        return {"success": True, "message": "Subscribed successfully", **_subscription_to_dict(subscription)}

    def subscriptions(self, device_token: str) -> Dict[str, Any]:
        subs = self.services.subscriptions.list_by_device(device_token)
        return {"subscriptions": [_subscription_to_dict(sub) for sub in subs]}

    def unsubscribe(self, device_token: str, wallet: str) -> Dict[str, Any]:
        self.services.subscriptions.unsubscribe(device_token, wallet)
        return {"success": True, "message": "Unsubscribed successfully"}

    def wallet_history(self, wallet: str) -> Dict[str, Any]:
        return self.services.subscriptions.wallet_history(wallet)

    def notifications(self, wallet: str, limit: int) -> List[Dict[str, Any]]:
        records = self.services.subscriptions.notification_history(wallet, limit=limit)
        return [record.to_dict() for record in records]

    def send_test(self, device_token: str) -> Dict[str, Any]:
        return self.services.dispatcher.send(device_token, TEST_MESSAGE).to_dict()


__all__ = ["ServiceState", "TEST_MESSAGE"]
