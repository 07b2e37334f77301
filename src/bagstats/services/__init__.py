"""Service layer exports."""

from .container import Services, build_services
from .subscriptions import SubscriptionService

__all__ = ["Services", "SubscriptionService", "build_services"]
