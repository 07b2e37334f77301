"""Tests for the bag monitor pipeline and its scheduling state machine."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from bagstats.config import settings
from bagstats.datalake.schemas import NotificationRecord, Position, PushMessage, SendResult, Snapshot, Subscription
from bagstats.datalake.storage import SQLiteStorage
from bagstats.errors import UpstreamError
from bagstats.monitor.bag_monitor import BagMonitor
from bagstats.monitoring.metrics import METRICS
from bagstats.notifications.dispatcher import NotificationDispatcher
from bagstats.utils.constants import utc_now

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
OTHER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


class ScriptedPositions:
    """Returns the next scripted unclaimed total for each wallet on every call."""

    def __init__(self, script: Dict[str, List[object]]) -> None:
        self.script = {wallet: list(values) for wallet, values in script.items()}
        self.calls: List[str] = []

    def fetch_positions(self, wallet: str) -> List[Position]:
        self.calls.append(wallet)
        value = self.script[wallet].pop(0)
        if isinstance(value, Exception):
            raise value
        return [Position(mint="MintAAAA", claimable_lamports=int(value))]


class FakePrice:
    def __init__(self, price: float = 200.0) -> None:
        self.price = price
        self.refreshes = 0

    def refresh(self, fallback: Optional[float] = None) -> float:
        self.refreshes += 1
        return self.price

    def get_sol_price(self, fallback: Optional[float] = None) -> float:
        return self.price


class RecordingTransport:
    def __init__(self, fail_for: tuple = ()) -> None:
        self.fail_for = set(fail_for)
        self.sent: List[tuple] = []

    def send(self, device_token: str, message: PushMessage) -> SendResult:
        self.sent.append((device_token, message))
        if device_token in self.fail_for:
            return SendResult(success=False, error="BadDeviceToken")
        return SendResult(success=True)


def _monitor(tmp_path: Path, script, transport=None, price=None, sleeps=None):
    storage = SQLiteStorage(tmp_path / "bagstats.sqlite3")
    transport = transport or RecordingTransport()
    dispatcher = NotificationDispatcher(transport, settings.NotificationConfig())
    monitor = BagMonitor(
        storage,
        ScriptedPositions(script),
        price or FakePrice(),
        dispatcher,
        config=settings.MonitorConfig(wallet_delay_seconds=1.0),
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
    )
    return monitor, storage, transport


def test_first_check_only_records_baseline(tmp_path: Path) -> None:
    monitor, storage, transport = _monitor(tmp_path, {WALLET: [5_000_000_000]})
    storage.upsert_subscription(Subscription(device_token="device-1", wallet=WALLET))

    assert monitor.check_wallet(WALLET) is None

    latest = storage.get_latest_snapshot(WALLET)
    assert latest is not None
    assert latest.total_unclaimed_lamports == 5_000_000_000
    assert transport.sent == []
    assert storage.list_notifications(WALLET) == []


def test_increase_fans_out_to_every_subscription(tmp_path: Path) -> None:
    METRICS.reset()
    transport = RecordingTransport(fail_for=("device-2",))
    monitor, storage, _ = _monitor(
        tmp_path, {WALLET: [1_000_000_000, 1_500_000_000]}, transport=transport
    )
    for token in ("device-1", "device-2", "device-3"):
        storage.upsert_subscription(Subscription(device_token=token, wallet=WALLET))

    assert monitor.scan_all() == []
    events = monitor.scan_all()

    assert len(events) == 1
    assert events[0].delta_lamports == 500_000_000
    assert [token for token, _ in transport.sent] == ["device-1", "device-2", "device-3"]
    message = transport.sent[0][1]
    assert message.title == "New Bag Received! 💰"
    assert message.body == "+0.5000 SOL (~$100.00) from Bags"
    assert message.data["type"] == "new_bag"

    records = storage.list_notifications(WALLET)
    assert len(records) == 3
    assert all(record.payload["amount_usd"] == pytest.approx(100.0) for record in records)
    by_device = {record.payload["device_token"]: record.payload for record in records}
    assert by_device["device-2"]["success"] is False
    assert by_device["device-2"]["error"] == "BadDeviceToken"
    assert by_device["device-1"]["success"] is True
    assert METRICS.get("monitor.events") == 1
    assert METRICS.get("notifications.sent") == 2
    assert METRICS.get("notifications.failed") == 1
    METRICS.reset()


def test_decrease_records_snapshot_without_event(tmp_path: Path) -> None:
    monitor, storage, transport = _monitor(tmp_path, {WALLET: [1_000_000_000, 800_000_000]})
    storage.upsert_subscription(Subscription(device_token="device-1", wallet=WALLET))

    monitor.scan_all()
    assert monitor.scan_all() == []

    assert transport.sent == []
    assert storage.get_latest_snapshot(WALLET).total_unclaimed_lamports == 800_000_000
    assert len(storage.list_recent_snapshots(WALLET)) == 2


def test_wallet_failure_does_not_abort_pass(tmp_path: Path) -> None:
    METRICS.reset()
    sleeps: list = []
    price = FakePrice()
    monitor, storage, _ = _monitor(
        tmp_path,
        {WALLET: [UpstreamError("positions down")], OTHER_WALLET: [42]},
        price=price,
        sleeps=sleeps,
    )
    storage.upsert_subscription(Subscription(device_token="device-1", wallet=WALLET))
    storage.upsert_subscription(Subscription(device_token="device-2", wallet=OTHER_WALLET))
    storage.upsert_subscription(Subscription(device_token="device-3", wallet=WALLET))

    monitor.scan_all()

    assert storage.get_latest_snapshot(WALLET) is None
    assert storage.get_latest_snapshot(OTHER_WALLET).total_unclaimed_lamports == 42
    assert price.refreshes == 1
    assert sleeps == [1.0]
    assert METRICS.get("monitor.wallet_failures") == 1
    assert METRICS.get("monitor.passes") == 1
    METRICS.reset()


def test_start_is_idempotent_and_stop_cancels(tmp_path: Path) -> None:
    storage = SQLiteStorage(tmp_path / "bagstats.sqlite3")
    passes = threading.Event()

    class CountingMonitor(BagMonitor):
        def scan_all(self):
            passes.set()
            return []

    monitor = CountingMonitor(
        storage,
        ScriptedPositions({}),
        FakePrice(),
        NotificationDispatcher(RecordingTransport(), settings.NotificationConfig()),
        config=settings.MonitorConfig(),
    )

    assert monitor.start(interval_minutes=60) is True
    first_task = monitor.state.task
    assert monitor.start(interval_minutes=60) is False
    assert monitor.state.task is first_task
    assert passes.wait(timeout=5)
    assert monitor.is_running

    monitor.stop(timeout=5)

    assert not monitor.is_running
    assert monitor.state.task is None
    assert not first_task.is_alive()


class GatedPositions:
    """Blocks the first fetch until released so two checks can overlap."""

    def __init__(self, lamports: int) -> None:
        self.lamports = lamports
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_positions(self, wallet: str) -> List[Position]:
        self.entered.set()
        self.release.wait(timeout=5)
        return [Position(mint="MintAAAA", claimable_lamports=self.lamports)]


def test_manual_check_during_pass_notifies_once(tmp_path: Path) -> None:
    storage = SQLiteStorage(tmp_path / "bagstats.sqlite3")
    storage.upsert_subscription(Subscription(device_token="device-1", wallet=WALLET))
    storage.record_snapshot(
        Snapshot(wallet=WALLET, total_unclaimed_lamports=1_000_000_000, positions_count=1, taken_at=utc_now())
    )
    positions = GatedPositions(1_500_000_000)
    transport = RecordingTransport()
    monitor = BagMonitor(
        storage,
        positions,
        FakePrice(),
        NotificationDispatcher(transport, settings.NotificationConfig()),
        config=settings.MonitorConfig(wallet_delay_seconds=0),
        sleep=lambda _: None,
    )
    results: Dict[str, object] = {}

    scan = threading.Thread(target=lambda: results.__setitem__("scan", monitor.scan_all()))
    scan.start()
    assert positions.entered.wait(timeout=5)
    manual = threading.Thread(target=lambda: results.__setitem__("check", monitor.check_wallet(WALLET)))
    manual.start()
    time.sleep(0.05)
    positions.release.set()
    scan.join(timeout=5)
    manual.join(timeout=5)

    assert len(results["scan"]) == 1
    assert results["check"] is None
    assert [token for token, _ in transport.sent] == ["device-1"]
    assert len(storage.list_notifications(WALLET)) == 1


def test_audit_write_failure_does_not_stop_fan_out(tmp_path: Path) -> None:
    METRICS.reset()

    class FlakyAuditStorage(SQLiteStorage):
        def record_notification(self, record: NotificationRecord) -> NotificationRecord:
            if record.payload["device_token"] == "device-1":
                raise RuntimeError("database is locked")
            return super().record_notification(record)

    storage = FlakyAuditStorage(tmp_path / "bagstats.sqlite3")
    transport = RecordingTransport()
    monitor = BagMonitor(
        storage,
        ScriptedPositions({WALLET: [1_000_000_000, 1_200_000_000]}),
        FakePrice(),
        NotificationDispatcher(transport, settings.NotificationConfig()),
        config=settings.MonitorConfig(wallet_delay_seconds=0),
        sleep=lambda _: None,
    )
    for token in ("device-1", "device-2"):
        storage.upsert_subscription(Subscription(device_token=token, wallet=WALLET))

    monitor.scan_all()
    events = monitor.scan_all()

    assert len(events) == 1
    assert [token for token, _ in transport.sent] == ["device-1", "device-2"]
    records = storage.list_notifications(WALLET)
    assert [record.payload["device_token"] for record in records] == ["device-2"]
    assert METRICS.get("monitor.notify_failures") == 1
    assert METRICS.get("monitor.wallet_failures") == 0
    METRICS.reset()
