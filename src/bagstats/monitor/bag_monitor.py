"""Periodic monitor that snapshots subscribed wallets and notifies on new earnings."""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, Protocol

from ..analytics.cache import KeyedLocks
from ..analytics.earnings import PositionsSource, total_unclaimed_lamports
from ..config.settings import MonitorConfig, get_app_config
from ..datalake.schemas import EarningsEvent, NotificationRecord, SendResult, Snapshot
from ..datalake.storage import StorageAdapter
from ..errors import UpstreamError
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from ..notifications.dispatcher import NotificationDispatcher
from ..utils.constants import utc_now
from .detector import ChangeDetector
from .scheduler import MonitorState, RepeatingTask


class RefreshablePrice(Protocol):
    def refresh(self, fallback: Optional[float] = None) -> float:
        ...

    def get_sol_price(self, fallback: Optional[float] = None) -> float:
        ...


class BagMonitor:
    """Owns the Stopped/Running state machine and the per-wallet check pipeline."""

    def __init__(
        self,
        storage: StorageAdapter,
        positions_client: PositionsSource,
        price_oracle: RefreshablePrice,
        dispatcher: NotificationDispatcher,
        *,
        config: Optional[MonitorConfig] = None,
        detector: Optional[ChangeDetector] = None,
        state: Optional[MonitorState] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or get_app_config().monitor
        self._storage = storage
        self._positions = positions_client
        self._price = price_oracle
        self._dispatcher = dispatcher
        self._detector = detector or ChangeDetector()
        self._state = state or MonitorState()
        self._sleep = sleep
        self._state_lock = threading.Lock()
        self._pass_lock = threading.Lock()
        self._wallet_locks = KeyedLocks()
        self._logger = get_logger(__name__)

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.running

    def start(self, interval_minutes: Optional[float] = None) -> bool:
        """Start scheduled passes; returns ``False`` when already running."""

        interval = interval_minutes if interval_minutes is not None else self._config.interval_minutes
        with self._state_lock:
            if self._state.running:
                self._logger.info("Bag monitor already running")
                return False
            task = RepeatingTask(self._scheduled_pass, interval * 60.0, name="bag-monitor")
            self._state.task = task
            self._state.running = True
            task.start()
        self._logger.info("Starting bag monitor (interval: %s minutes)", interval)
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel future passes. A pass already in flight runs to completion."""

        with self._state_lock:
            task = self._state.task
            self._state.task = None
            self._state.running = False
        if task is not None:
            task.stop(timeout)
            self._logger.info("Bag monitor stopped")

    def _scheduled_pass(self) -> None:
        if not self._state.running:
            return
        self.scan_all()

    def scan_all(self) -> List[EarningsEvent]:
        """Check every subscribed wallet once and return the events that fired."""

        events: List[EarningsEvent] = []
        with self._pass_lock, METRICS.timer("monitor.pass.duration_seconds"):
            METRICS.increment("monitor.passes")
            price = self._price.refresh()
            wallets = self._storage.list_subscribed_wallets()
            self._logger.info("Checking %d wallets for new bags", len(wallets))
            for index, wallet in enumerate(wallets):
                if index and self._config.wallet_delay_seconds > 0:
                    self._sleep(self._config.wallet_delay_seconds)
                try:
                    event = self._check(wallet, price)
                except UpstreamError as exc:
                    METRICS.increment("monitor.wallet_failures")
                    self._logger.warning("Error checking wallet %s: %s", wallet, exc)
                    continue
                except Exception:  # noqa: BLE001
                    METRICS.increment("monitor.wallet_failures")
                    self._logger.exception("Unexpected failure checking wallet %s", wallet)
                    continue
                if event is not None:
                    events.append(event)
        return events

    def check_wallet(self, wallet: str, *, sol_price: Optional[float] = None) -> Optional[EarningsEvent]:
        """Run one check for ``wallet`` outside the schedule, e.g. to seed a baseline."""

        price = sol_price if sol_price is not None else self._price.get_sol_price()
        return self._check(wallet, price)

    def _check(self, wallet: str, sol_price: float) -> Optional[EarningsEvent]:
        # Baseline read, snapshot write and fan-out form one step per wallet.
        with self._wallet_locks.hold(wallet), correlation_scope(wallet):
            positions = self._positions.fetch_positions(wallet)
            current = total_unclaimed_lamports(positions)
            previous = self._storage.get_latest_snapshot(wallet)
            event = self._detector.detect(wallet, current, previous, sol_price)
            self._storage.record_snapshot(
                Snapshot(
                    wallet=wallet,
                    total_unclaimed_lamports=current,
                    positions_count=len(positions),
                    taken_at=utc_now(),
                )
            )
            if event is None:
                return None
            METRICS.increment("monitor.events")
            self._logger.info(
                "New bag detected for %s: +%.4f SOL ($%.2f)", wallet, event.delta_sol, event.delta_value
            )
            self._notify(event)
            return event

    def _notify(self, event: EarningsEvent) -> None:
        for subscription in self._storage.list_subscriptions_by_wallet(event.wallet):
            try:
                result = self._dispatcher.send_new_bag(subscription.device_token, event)
                self._storage.record_notification(
                    NotificationRecord(
                        wallet=event.wallet,
                        type="new_bag",
                        payload=_audit_payload(subscription.device_token, event, result),
                    )
                )
            except Exception:  # noqa: BLE001
                METRICS.increment("monitor.notify_failures")
                self._logger.exception(
                    "Failed to notify %s... for %s", subscription.device_token[:8], event.wallet
                )


def _audit_payload(device_token: str, event: EarningsEvent, result: SendResult) -> dict:
    payload = {
        "device_token": device_token,
        "amount_sol": event.delta_sol,
        "amount_usd": event.delta_value,
        "delta_lamports": event.delta_lamports,
        "success": result.success,
    }
    if result.error is not None:
        payload["error"] = result.error
    return payload


__all__ = ["BagMonitor"]
