"""Cancellable repeating task used to drive monitor passes."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Optional

from ..monitoring.logger import get_logger


class RepeatingTask:
    """Runs ``func`` on a daemon thread immediately and then every ``interval`` seconds.

    The stop event is checked before each tick and waited on between ticks, so
    ``stop()`` never interrupts a running call but prevents the next one. A
    call that takes longer than the interval delays the next tick instead of
    overlapping with it.
    """

    def __init__(self, func: Callable[[], None], interval: float, *, name: str = "repeating-task") -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._func = func
        self._interval = float(interval)
        self._name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._logger = get_logger(__name__)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"{self._name} already started")
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and timeout is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._func()
            except Exception:  # noqa: BLE001
                self._logger.exception("%s tick failed", self._name)
            if self._stop.wait(self._interval):
                break


@dataclass(slots=True)
class MonitorState:
    """Owned scheduling state of one monitor instance."""

    running: bool = False
    task: Optional[RepeatingTask] = None


__all__ = ["MonitorState", "RepeatingTask"]
