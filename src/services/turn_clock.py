"""
Per-match turn clock.

Only the client whose player holds the turn runs a clock, so there is never more than one "pass turn" write
racing for the same turn.
"""

import logging
import threading
from typing import Callable, ContextManager, Optional

from src.core.config import SessionConfig
from src.core.exceptions import StoreError
from src.core.models import MatchModel
from src.core.shared_types import DocumentId, MatchStatus, UserId
from src.services.countdown import Countdown, Scheduler
from src.services.match_service import MatchService

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[Exception], None]


class TurnClock:
    def __init__(
        self,
        match_service: MatchService,
        player: UserId,
        scheduler: Scheduler,
        config: SessionConfig,
        on_tick: Optional[Callable[[int], None]] = None,
        on_error: Optional[ErrorHandler] = None,
        lock: Optional[ContextManager] = None,
    ) -> None:
        """
        `lock` guards the clock state against the timer thread. A session passes its own lock so that
        the expiry is serialised with the store notifications it handles.
        """
        self.match_service = match_service
        self.player = player
        self.on_error = on_error
        self.match_id: Optional[DocumentId] = None
        self._lock = lock if lock is not None else threading.RLock()
        # the position the clock was started on; a new position always means a fresh turn
        self._started_on: Optional[tuple[DocumentId, tuple[str, ...]]] = None
        self._countdown = Countdown(
            scheduler,
            config.turn_seconds,
            self._expire,
            interval=config.tick_seconds,
            on_tick=on_tick,
            name="turn-clock",
        )

    @property
    def running(self) -> bool:
        return self._countdown.running

    @property
    def time_left(self) -> int:
        return self._countdown.remaining

    def observe(self, match: MatchModel) -> None:
        """Start or stop according to the latest snapshot of the match."""
        holds_turn = (
            match.status == MatchStatus.ONGOING
            and match.winner is None
            and match.symbol_of(self.player) == match.current_turn
        )
        with self._lock:
            if not holds_turn:
                self.stop()
                return

            position = (match.id, tuple(match.board))
            if self.running and self._started_on == position:
                return
            self.match_id = match.id
            self._started_on = position
            self._countdown.start()
        logger.debug("[turn-clock-start] match=%s player=%s", match.id, self.player)

    def stop(self) -> None:
        with self._lock:
            self._countdown.stop()
            self._started_on = None

    def _expire(self) -> None:
        with self._lock:
            # restarted on a newer position while this expiry waited for the lock
            if self.match_id is None or self.running:
                return
            self._started_on = None
            try:
                # guarded: no-op when the turn or the match status changed meanwhile
                self.match_service.pass_turn(self.match_id, self.player)
            except StoreError as exc:
                logger.error("[turn-pass-failed] match=%s player=%s error=%s", self.match_id, self.player, exc)
                if self.on_error is not None:
                    self.on_error(exc)
