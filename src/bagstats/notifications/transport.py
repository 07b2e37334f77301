"""Push transports delivering notifications to subscribed devices."""

from __future__ import annotations

from typing import Optional, Protocol

import requests

from ..config.settings import NotificationConfig, get_app_config
from ..datalake.schemas import PushMessage, SendResult
from ..monitoring.logger import get_logger


class NotificationTransport(Protocol):
    def send(self, device_token: str, message: PushMessage) -> SendResult:
        ...


class WebhookPushTransport:
    """Relays notifications to an HTTP push gateway which forwards them to APNs/FCM."""

    def __init__(
        self,
        config: Optional[NotificationConfig] = None,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().notifications
        if not self._config.push_gateway_url:
            raise ValueError("push_gateway_url is required for WebhookPushTransport")
        self._url = str(self._config.push_gateway_url)
        self._session = session or requests.Session()
        self._logger = get_logger(__name__)

    def send(self, device_token: str, message: PushMessage) -> SendResult:
        payload = {
            "deviceToken": device_token,
            "topic": self._config.bundle_id,
            "alert": {"title": message.title, "body": message.body},
            "sound": "default",
            "badge": 1,
            "data": message.data,
        }
        headers = {"Content-Type": "application/json"}
        if self._config.push_gateway_token:
            headers["Authorization"] = f"Bearer {self._config.push_gateway_token}"
        try:
            response = self._session.post(
                self._url, json=payload, headers=headers, timeout=self._config.request_timeout
            )
        except requests.RequestException as exc:
            self._logger.warning("Push relay request failed for %s: %s", device_token[:8], exc)
            return SendResult(success=False, error=str(exc))
        if not response.ok:
            reason = _failure_reason(response)
            self._logger.warning("Push relay rejected %s: %s", device_token[:8], reason)
            return SendResult(success=False, error=reason)
        self._logger.info("Notification sent to %s...", device_token[:8])
        return SendResult(success=True)


def _failure_reason(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("reason"):
        return str(body["reason"])
    return f"HTTP {response.status_code}"


class DisabledTransport:
    """Used when no push relay is configured; every send fails softly."""

    ERROR = "push transport not configured"

    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    def send(self, device_token: str, message: PushMessage) -> SendResult:
        self._logger.warning("Push transport not configured, dropping %r for %s...", message.title, device_token[:8])
        return SendResult(success=False, error=self.ERROR)


def build_transport(
    config: Optional[NotificationConfig] = None,
    *,
    session: Optional[requests.Session] = None,
) -> NotificationTransport:
    cfg = config or get_app_config().notifications
    if cfg.push_gateway_url:
        return WebhookPushTransport(cfg, session=session)
    return DisabledTransport()


__all__ = [
    "DisabledTransport",
    "NotificationTransport",
    "WebhookPushTransport",
    "build_transport",
]
