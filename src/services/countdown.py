"""
Local countdowns (turn clock, rematch offer).

Timers only ever live inside one client. Whatever they trigger must re-check the shared document before writing,
because a timer may fire after the state that started it has become moot.
"""

import logging
import threading
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Just the part of an event loop the countdowns need"""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Every callback runs on its own daemon timer thread."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class Countdown:
    """
    Counts from `duration` down to 0, one step per `interval`, then calls `on_expire` exactly once.

    ---
    * start() (re)starts from the full duration
    * stop() is idempotent
    * ticks scheduled by an earlier run are ignored
    """

    def __init__(
        self,
        scheduler: Scheduler,
        duration: int,
        on_expire: Callable[[], None],
        interval: float = 1.0,
        on_tick: Optional[Callable[[int], None]] = None,
        name: str = "countdown",
    ) -> None:
        self.scheduler = scheduler
        self.duration = duration
        self.interval = interval
        self.on_expire = on_expire
        self.on_tick = on_tick
        self.name = name
        self.remaining = duration
        self.running = False
        self._generation = 0
        self._handle: Optional[TimerHandle] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            self._cancel_handle()
            self._generation += 1
            self.remaining = self.duration
            self.running = True
            self._schedule(self._generation)
        logger.debug("[%s-start] duration=%s", self.name, self.duration)

    def stop(self) -> None:
        with self._lock:
            if not self.running:
                return
            self._cancel_handle()
            self._generation += 1
            self.running = False
            self.remaining = self.duration
        logger.debug("[%s-stop]", self.name)

    def _schedule(self, generation: int) -> None:
        self._handle = self.scheduler.call_later(self.interval, lambda: self._tick(generation))

    def _cancel_handle(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self.running:
                return
            self.remaining -= 1
            remaining = self.remaining
            expired = remaining <= 0
            if expired:
                self.running = False
                self._handle = None
            else:
                self._schedule(generation)

        if self.on_tick is not None:
            self.on_tick(remaining)
        if expired:
            logger.info("[%s-expired]", self.name)
            self.on_expire()
