from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pytest

from bagstats.analytics.cache import ExpiringCache
from bagstats.analytics.earnings import StatsAggregator
from bagstats.config import settings
from bagstats.datalake.schemas import Position, PushMessage, SendResult, Subscription
from bagstats.datalake.storage import SQLiteStorage
from bagstats.errors import UpstreamError
from bagstats.notifications.dispatcher import NotificationDispatcher
from bagstats.services.digest import send_daily_summaries

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
DOWN_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


class FakePositions:
    def fetch_positions(self, wallet: str) -> List[Position]:
        if wallet == DOWN_WALLET:
            raise UpstreamError("Bags API error: 503", status_code=503)
        return [
            Position(mint="MintAAAA", claimable_lamports=2_000_000_000),
            Position(mint="MintBBBB", claimable_lamports=500_000_000),
        ]


class NoClaims:
    def claimed_by(self, mint: str, wallet: str) -> int:
        return 0


class FakePrice:
    def get_sol_price(self, fallback: Optional[float] = None) -> float:
        return 100.0


class RecordingTransport:
    def __init__(self) -> None:
        self.sent: List[tuple] = []

    def send(self, device_token: str, message: PushMessage) -> SendResult:
        self.sent.append((device_token, message))
        return SendResult(success=True)


def _setup(tmp_path: Path):
    storage = SQLiteStorage(tmp_path / "digest.sqlite3")
    aggregator = StatsAggregator(
        FakePositions(),
        NoClaims(),
        None,
        FakePrice(),
        config=settings.DataSourceConfig(),
        cache=ExpiringCache(0),
        sleep=lambda _: None,
    )
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport, settings.NotificationConfig())
    return storage, aggregator, dispatcher, transport


def test_summary_sent_to_each_subscription(tmp_path: Path) -> None:
    storage, aggregator, dispatcher, transport = _setup(tmp_path)
    storage.upsert_subscription(Subscription(device_token="device-1", wallet=WALLET))
    storage.upsert_subscription(Subscription(device_token="device-2", wallet=WALLET))

    records = send_daily_summaries(storage, aggregator, dispatcher)

    assert [token for token, _ in transport.sent] == ["device-1", "device-2"]
    message = transport.sent[0][1]
    assert message.title == "Daily Bags Summary 📊"
    assert message.body == "You have $250.00 unclaimed across 2 positions"
    assert len(records) == 2
    stored = storage.list_notifications(WALLET)
    assert {record.type for record in stored} == {"daily_summary"}
    assert all(record.payload["total_unclaimed_usd"] == pytest.approx(250.0) for record in stored)


def test_summary_skips_wallets_without_positions_data(tmp_path: Path) -> None:
    storage, aggregator, dispatcher, transport = _setup(tmp_path)
    storage.upsert_subscription(Subscription(device_token="device-1", wallet=DOWN_WALLET))
    storage.upsert_subscription(Subscription(device_token="device-2", wallet=WALLET))

    records = send_daily_summaries(storage, aggregator, dispatcher)

    assert [record.wallet for record in records] == [WALLET]
    assert [token for token, _ in transport.sent] == ["device-2"]
    assert storage.list_notifications(DOWN_WALLET) == []


def test_summary_limited_to_given_wallets(tmp_path: Path) -> None:
    storage, aggregator, dispatcher, transport = _setup(tmp_path)
    storage.upsert_subscription(Subscription(device_token="device-1", wallet=WALLET))
    storage.upsert_subscription(Subscription(device_token="device-2", wallet=DOWN_WALLET))

    records = send_daily_summaries(storage, aggregator, dispatcher, [WALLET])

    assert len(records) == 1
    assert transport.sent[0][0] == "device-1"
