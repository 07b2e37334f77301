"""Wires configuration, storage, clients and the monitor into one object graph."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests

from ..analytics.cache import ExpiringCache
from ..analytics.earnings import StatsAggregator
from ..config.settings import AppConfig, get_app_config
from ..datalake.storage import SQLiteStorage, StorageAdapter
from ..ingestion.bags_api import ClaimStatsClient, PositionsClient
from ..ingestion.pricing import PriceOracle
from ..ingestion.token_metadata import MetadataClient
from ..monitor.bag_monitor import BagMonitor
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.transport import NotificationTransport, build_transport
from .subscriptions import SubscriptionService


@dataclass(slots=True)
class Services:
    config: AppConfig
    storage: StorageAdapter
    price_oracle: PriceOracle
    aggregator: StatsAggregator
    dispatcher: NotificationDispatcher
    monitor: BagMonitor
    subscriptions: SubscriptionService


def build_services(
    config: Optional[AppConfig] = None,
    *,
    storage: Optional[StorageAdapter] = None,
    transport: Optional[NotificationTransport] = None,
    session: Optional[requests.Session] = None,
) -> Services:
    """Build the default object graph; collaborators can be overridden for tests."""

    config = config or get_app_config()
    sources = config.data_sources
    session = session or requests.Session()
    storage = storage or SQLiteStorage(config.storage.database_path)

    positions = PositionsClient(sources, session=session)
    price_oracle = PriceOracle(sources, session=session)
    aggregator = StatsAggregator(
        positions,
        ClaimStatsClient(sources, session=session),
        MetadataClient(sources, session=session),
        price_oracle,
        config=sources,
        cache=ExpiringCache(sources.stats_cache_ttl_seconds, maxsize=sources.stats_cache_size),
    )
    dispatcher = NotificationDispatcher(
        transport or build_transport(config.notifications, session=session),
        config.notifications,
    )
    monitor = BagMonitor(storage, positions, price_oracle, dispatcher, config=config.monitor)
    return Services(
        config=config,
        storage=storage,
        price_oracle=price_oracle,
        aggregator=aggregator,
        dispatcher=dispatcher,
        monitor=monitor,
        subscriptions=SubscriptionService(storage, monitor, config),
    )


__all__ = ["Services", "build_services"]
