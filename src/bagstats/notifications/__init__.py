"""Notification delivery exports."""

from .dispatcher import NotificationDispatcher
from .transport import DisabledTransport, NotificationTransport, WebhookPushTransport, build_transport

__all__ = [
    "DisabledTransport",
    "NotificationDispatcher",
    "NotificationTransport",
    "WebhookPushTransport",
    "build_transport",
]
