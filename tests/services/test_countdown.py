"""Unit tests for src/services/countdown.py"""

from typing import Callable
from unittest.mock import Mock

import pytest

from src.services.countdown import Countdown, ThreadingScheduler
from tests.fakes import ManualScheduler


@pytest.fixture
def on_expire() -> Mock:
    return Mock()


def test_counts_down_then_expires_once(scheduler: ManualScheduler, on_expire: Mock) -> None:
    ticks: list[int] = []
    countdown = Countdown(scheduler, 3, on_expire, interval=1.0, on_tick=ticks.append)
    countdown.start()
    assert countdown.running
    assert countdown.remaining == 3

    scheduler.advance(2)
    assert ticks == [2, 1]
    on_expire.assert_not_called()

    scheduler.advance(10)
    assert ticks == [2, 1, 0]
    on_expire.assert_called_once()
    assert not countdown.running
    assert scheduler.pending == 0


def test_stop_cancels_expiry(scheduler: ManualScheduler, on_expire: Mock) -> None:
    countdown = Countdown(scheduler, 3, on_expire)
    countdown.start()
    scheduler.advance(1)
    countdown.stop()
    countdown.stop()  # idempotent

    scheduler.advance(10)
    on_expire.assert_not_called()
    assert countdown.remaining == 3


def test_restart_from_full_duration(scheduler: ManualScheduler, on_expire: Mock) -> None:
    """A restart drops the ticks of the previous run."""
    countdown = Countdown(scheduler, 3, on_expire)
    countdown.start()
    scheduler.advance(2)
    countdown.start()
    assert countdown.remaining == 3

    scheduler.advance(2)
    on_expire.assert_not_called()
    scheduler.advance(1)
    on_expire.assert_called_once()


def test_stale_tick_is_ignored(on_expire: Mock) -> None:
    """A tick that fires although its timer was cancelled (e.g. already running on another thread) is a no-op."""
    captured: list[Callable[[], None]] = []

    class LeakyScheduler:
        def call_later(self, delay: float, callback: Callable[[], None]) -> Mock:
            captured.append(callback)
            return Mock()

    countdown = Countdown(LeakyScheduler(), 1, on_expire)
    countdown.start()
    countdown.stop()
    captured[0]()
    on_expire.assert_not_called()


def test_interval(scheduler: ManualScheduler, on_expire: Mock) -> None:
    countdown = Countdown(scheduler, 2, on_expire, interval=0.5)
    countdown.start()
    scheduler.advance(1.0)
    on_expire.assert_called_once()


def test_threading_scheduler_handle_can_be_cancelled() -> None:
    callback = Mock()
    handle = ThreadingScheduler().call_later(60, callback)
    handle.cancel()
    callback.assert_not_called()
