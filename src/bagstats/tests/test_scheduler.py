from __future__ import annotations

import threading

import pytest

from bagstats.monitor.scheduler import MonitorState, RepeatingTask


def test_runs_immediately_and_stops_before_next_tick() -> None:
    ran = threading.Event()
    calls = []

    def tick() -> None:
        calls.append(1)
        ran.set()

    task = RepeatingTask(tick, interval=60.0, name="test-task")
    task.start()
    assert ran.wait(timeout=5)

    task.stop(timeout=5)

    assert calls == [1]
    assert not task.is_alive()


def test_failing_tick_does_not_end_loop() -> None:
    second = threading.Event()
    calls = []

    def tick() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        second.set()

    task = RepeatingTask(tick, interval=0.01, name="flaky-task")
    task.start()
    try:
        assert second.wait(timeout=5)
    finally:
        task.stop(timeout=5)
    assert len(calls) >= 2


def test_rejects_invalid_interval_and_double_start() -> None:
    with pytest.raises(ValueError):
        RepeatingTask(lambda: None, interval=0)

    task = RepeatingTask(lambda: None, interval=60.0)
    task.start()
    try:
        with pytest.raises(RuntimeError):
            task.start()
    finally:
        task.stop(timeout=5)


def test_monitor_state_defaults_to_stopped() -> None:
    state = MonitorState()
    assert state.running is False
    assert state.task is None
