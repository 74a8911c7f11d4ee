"""
Per-client session: the observer loop between the UI layer and the record store.

The session subscribes to the one document the client currently looks at (challenge, match or series).
On every notification it re-derives the local state from the snapshot (never from what it wrote itself) and re-evaluates
the board. It drives the turn clock, the rematch negotiation and the series handshake, and moves on to the next
document when the protocol says so. The UI gets read-only projections and a `Navigation` whenever the screen changes.

All callbacks (store notifications, timer ticks and expiries) are serialised by one re-entrant lock, so the session
behaves like a single-threaded event loop.
"""

import logging
import threading
from dataclasses import dataclass
from itertools import count
from typing import Callable, Optional

from src.api.models import (
    ChallengeView,
    ChatRequest,
    MatchResult,
    MatchView,
    MoveRequest,
    Navigation,
    RespondToChallengeRequest,
    SendChallengeRequest,
    SeriesView,
)
from src.core.config import SessionConfig
from src.core.exceptions import (
    GameError,
    GameStateError,
    InconsistentStateError,
    NotFoundError,
    StoreError,
)
from src.core.models import ChallengeModel, MatchModel, SeriesModel
from src.core.shared_types import (
    ChallengeStatus,
    Collection,
    DocumentId,
    MatchKind,
    MatchStatus,
    Outcome,
    RematchStatus,
    Screen,
    SeriesStatus,
    UserId,
)
from src.engine.board import Board, evaluate
from src.services.challenge_negotiator import ChallengeNegotiator
from src.services.chat import ChatMessage, ChatService
from src.services.countdown import Countdown, Scheduler, ThreadingScheduler
from src.services.lobby import LobbyService
from src.services.match_service import MatchService
from src.services.rematch_negotiator import (
    RematchNegotiator,
    is_valid_transition,
    rematch_status,
)
from src.services.series_coordinator import SeriesCoordinator
from src.services.turn_clock import TurnClock
from src.store.record_store import DocumentSnapshot, RecordStore, Subscription

logger = logging.getLogger(__name__)

NavigationListener = Callable[[Navigation], None]


@dataclass
class SessionGuards:
    """
    Local flags that keep a transition from firing twice for the document currently open.
    Reset whenever another document is opened.
    """

    navigated: bool = False
    navigation_in_progress: bool = False
    result_processed: bool = False

    def reset(self) -> None:
        self.navigated = False
        self.navigation_in_progress = False
        self.result_processed = False


class ClientSession:
    def __init__(
        self,
        store: RecordStore,
        user_id: UserId,
        user_name: str,
        config: Optional[SessionConfig] = None,
        scheduler: Optional[Scheduler] = None,
        on_navigate: Optional[NavigationListener] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.user_name = user_name
        self.config = config or SessionConfig()
        self.scheduler = scheduler or ThreadingScheduler()
        self.on_navigate = on_navigate
        self.on_change = on_change

        self.matches = MatchService(store)
        self.series_coordinator = SeriesCoordinator(store, self.matches)
        self.challenges = ChallengeNegotiator(store, self.matches, self.series_coordinator)
        self.rematches = RematchNegotiator(store, self.matches)
        self.chat = ChatService(store)
        self.lobby = LobbyService(store)

        self._lock = threading.RLock()
        self.turn_clock = TurnClock(
            self.matches,
            user_id,
            self.scheduler,
            self.config,
            on_tick=self._on_tick,
            on_error=self._report,
            lock=self._lock,
        )
        self.rematch_countdown = Countdown(
            self.scheduler,
            self.config.rematch_seconds,
            self._on_rematch_timeout,
            interval=self.config.tick_seconds,
            on_tick=self._on_tick,
            name="rematch",
        )

        # local state machine
        self.screen = Screen.LOBBY
        self.document_id: Optional[DocumentId] = None
        self.guards = SessionGuards()
        self.challenge: Optional[ChallengeModel] = None
        self.match: Optional[MatchModel] = None
        self.series: Optional[SeriesModel] = None
        self.rematch_status = RematchStatus.IDLE
        self.last_error: Optional[Exception] = None
        self._ready_index: Optional[int] = None
        self._subscription: Optional[Subscription] = None
        self._generation = count()
        self._current_generation = next(self._generation)

    # --- NAVIGATION ---
    def open_challenge(self, challenge_id: DocumentId) -> None:
        self._open(Screen.CHALLENGE, Collection.CHALLENGES, challenge_id, self._on_challenge_snapshot)

    def open_match(self, match_id: DocumentId) -> None:
        self._open(Screen.MATCH, Collection.GAMES, match_id, self._on_match_snapshot)

    def open_series(self, series_id: DocumentId) -> None:
        self._open(Screen.SERIES, Collection.SERIES, series_id, self._on_series_snapshot)

    def spectate(self, match_id: DocumentId) -> None:
        """Watch someone else's match (read-only)."""
        with self._lock:
            self.matches.add_spectator(match_id, self.user_id)
            self._open(Screen.SPECTATOR, Collection.GAMES, match_id, self._on_spectator_snapshot)

    def leave(self) -> None:
        """Back to the lobby (explicit user action)."""
        with self._lock:
            self._teardown()
            self._navigate(Screen.LOBBY, None)

    def close(self) -> None:
        """Session teardown: stop timers, drop the subscription and every guard."""
        with self._lock:
            self._teardown()
            self.screen = Screen.LOBBY
            self.document_id = None

    # --- INTENTS ---
    def send_challenge(self, request: SendChallengeRequest) -> DocumentId:
        with self._lock:
            if request.match_kind == MatchKind.SERIES and request.best_of is None:
                raise GameStateError("A series challenge needs a best_of value.")
            challenge_id = self.challenges.send(
                self.user_id,
                self.user_name,
                request.opponent_id,
                request.opponent_name,
                request.match_kind,
                request.best_of,
            )
            self.open_challenge(challenge_id)
            return challenge_id

    def respond_to_challenge(self, request: RespondToChallengeRequest) -> ChallengeModel:
        with self._lock:
            challenge = self.challenges.respond(request.challenge_id, self.user_id, request.accept)
            if challenge.status == ChallengeStatus.ACCEPTED:
                # the challenge screen moves on to the match/series by itself
                if self.screen not in (Screen.MATCH, Screen.SERIES):
                    self.open_challenge(request.challenge_id)
            elif challenge.status == ChallengeStatus.DECLINED:
                self.leave()
            return challenge

    def make_move(self, index: int) -> MatchModel:
        """Raises InvalidMoveError / NotYourTurnError / GameStateError without writing anything."""
        with self._lock:
            match = self._require_match()
            request = MoveRequest(match_id=match.id, index=index)
            return self.matches.make_move(request.match_id, request.index, self.user_id)

    def request_rematch(self) -> bool:
        with self._lock:
            return self.rematches.request(self._require_match().id, self.user_id)

    def accept_rematch(self) -> Optional[DocumentId]:
        with self._lock:
            return self.rematches.accept(self._require_match().id, self.user_id)

    def decline_rematch(self) -> bool:
        with self._lock:
            return self.rematches.decline(self._require_match().id, self.user_id)

    def mark_ready_for_next_game(self) -> None:
        with self._lock:
            series = self._require_series()
            self._ready_index = series.current_game_index
            try:
                self.series_coordinator.mark_ready(series.id, self.user_id)
            except (GameError, StoreError):
                self._ready_index = None
                raise

    def cancel_ready(self) -> None:
        with self._lock:
            series = self._require_series()
            self.series_coordinator.cancel_ready(series.id, self.user_id)
            self._ready_index = None

    def set_allow_spectators(self, allow: bool) -> None:
        with self._lock:
            self.matches.set_allow_spectators(self._require_match().id, self.user_id, allow)

    def send_chat_message(self, text: str) -> Optional[DocumentId]:
        with self._lock:
            if self.match is None or self.screen not in (Screen.MATCH, Screen.SPECTATOR):
                raise GameStateError("Chat is only available inside a match.")
            request = ChatRequest(match_id=self.match.id, message=text)
            return self.chat.send(request.match_id, self.user_id, self.user_name, request.message)

    def chat_messages(self) -> list[ChatMessage]:
        with self._lock:
            if self.match is None:
                return []
            return self.chat.messages(self.match.id)

    # --- PROJECTIONS ---
    def challenge_view(self) -> Optional[ChallengeView]:
        challenge = self.challenge
        if challenge is None:
            return None
        is_outgoing = challenge.from_user_id == self.user_id
        return ChallengeView(
            challenge_id=challenge.id,
            is_outgoing=is_outgoing,
            opponent_id=challenge.to_user_id if is_outgoing else challenge.from_user_id,
            opponent_name=challenge.to_user_name if is_outgoing else challenge.from_user_name,
            status=challenge.status,
            match_kind=challenge.match_kind,
            best_of=challenge.best_of,
            series_id=challenge.series_id,
        )

    def match_view(self) -> Optional[MatchView]:
        match = self.match
        if match is None:
            return None
        my_symbol = match.symbol_of(self.user_id)
        is_my_turn = (
            my_symbol is not None
            and match.status == MatchStatus.ONGOING
            and match.current_turn == my_symbol
        )
        return MatchView(
            match_id=match.id,
            board=list(match.board),
            players=list(match.players),
            current_turn=match.current_turn,
            status=match.status,
            winner=match.winner,
            my_symbol=my_symbol,
            is_my_turn=is_my_turn,
            legal_moves=Board.from_cells(match.board).empty_slots() if is_my_turn else [],
            time_left=self.turn_clock.time_left if is_my_turn else self.config.turn_seconds,
            result=self._result(match),
            rematch_status=self.rematch_status,
            rematch_time_left=self.rematch_countdown.remaining,
            allow_spectators=match.allow_spectators,
            spectators=list(match.spectators),
            series_id=match.series_id,
            game_number=match.game_number,
        )

    def series_view(self) -> Optional[SeriesView]:
        series = self.series
        if series is None:
            return None
        opponent = series.opponent_of(self.user_id)
        starter = self.series_coordinator.players_for_game(series, series.current_game_index)[0]
        return SeriesView(
            series_id=series.id,
            players=list(series.players),
            player_names=list(series.player_names),
            best_of=series.best_of,
            required_wins=series.required_wins,
            scores=dict(series.scores),
            status=series.status,
            winner=series.winner,
            current_game_index=series.current_game_index,
            games=list(series.games),
            i_am_ready=series.is_ready(self.user_id),
            opponent_ready=series.is_ready(opponent),
            i_start_next_game=starter == self.user_id,
        )

    # --- NOTIFICATION HANDLERS ---
    def _on_challenge_snapshot(self, snapshot: DocumentSnapshot) -> None:
        challenge = ChallengeModel.from_document(snapshot.id, self._existing(snapshot))
        self.challenge = challenge
        if challenge.status != ChallengeStatus.ACCEPTED or self.guards.navigated:
            return

        if challenge.match_kind == MatchKind.SERIES:
            # the series id is backfilled last, wait for it
            if challenge.series_id:
                self.guards.navigated = True
                self.open_series(challenge.series_id)
        else:
            self.guards.navigated = True
            self.open_match(challenge.id)

    def _on_match_snapshot(self, snapshot: DocumentSnapshot) -> None:
        match = self._evaluated(MatchModel.from_document(snapshot.id, self._existing(snapshot)))
        self.match = match
        self.turn_clock.observe(match)
        if match.status != MatchStatus.FINISHED:
            return

        if not self.guards.result_processed:
            self.guards.result_processed = True
            if match.series_id:
                self.series_coordinator.record_result(match, self.user_id)

        if match.series_id:
            if not self.guards.navigated:
                self.guards.navigated = True
                self.open_series(match.series_id)
            return
        self._observe_rematch(match)

    def _observe_rematch(self, match: MatchModel) -> None:
        status = rematch_status(match, self.user_id)
        if not is_valid_transition(self.rematch_status, status):
            # snapshots may skip intermediate writes
            logger.debug("[rematch-skip-ahead] match=%s %s -> %s", match.id, self.rematch_status, status)
        self.rematch_status = status

        if status == RematchStatus.ACCEPTED and match.rematch_game_id:
            self.rematch_countdown.stop()
            if not self.guards.navigated:
                self.guards.navigated = True
                self.open_match(match.rematch_game_id)
        elif status == RematchStatus.DECLINED:
            self.rematch_countdown.stop()
            if not self.guards.navigated:
                self.guards.navigated = True
                self._teardown()
                self._navigate(Screen.LOBBY, None)
        elif status in (RematchStatus.WAITING, RematchStatus.REQUESTED):
            if not self.rematch_countdown.running:
                self.rematch_countdown.start()
        else:
            self.rematch_countdown.stop()

    def _on_series_snapshot(self, snapshot: DocumentSnapshot) -> None:
        series = SeriesModel.from_document(snapshot.id, self._existing(snapshot))
        # a partially initialized series is repaired in place, evaluation goes on with the defaults
        series = self.series_coordinator.repair(series)
        self.series = series
        if series.status != SeriesStatus.ONGOING:
            return
        if self.guards.navigated or self.guards.navigation_in_progress:
            return

        target: Optional[DocumentId] = None
        if series.both_ready:
            self.guards.navigation_in_progress = True
            try:
                target = self.series_coordinator.advance(series)
            finally:
                self.guards.navigation_in_progress = False
        elif (
            self._ready_index is not None
            and series.current_game_index > self._ready_index
            and len(series.games) > self._ready_index
        ):
            # the opponent's client completed the handshake before we saw both flags set
            target = series.games[self._ready_index]

        if target is not None:
            self.guards.navigated = True
            self.open_match(target)

    def _on_spectator_snapshot(self, snapshot: DocumentSnapshot) -> None:
        match = self._evaluated(MatchModel.from_document(snapshot.id, self._existing(snapshot)))
        self.match = match
        if not match.allow_spectators and not self.guards.navigated:
            self.guards.navigated = True
            self._teardown()
            self._navigate(Screen.LOBBY, None)

    def _on_rematch_timeout(self) -> None:
        with self._lock:
            match = self.match
            if self.screen != Screen.MATCH or match is None:
                return
            try:
                # guarded: no-op if the offer was accepted/declined in the meantime
                self.rematches.timeout(match.id, self.user_id)
            except (GameError, StoreError) as exc:
                self._report(exc)

    def _on_tick(self, _remaining: int) -> None:
        with self._lock:
            if self.on_change is not None:
                self.on_change()

    # -- Internal helpers --
    def _open(
        self,
        screen: Screen,
        collection: Collection,
        doc_id: DocumentId,
        handler: Callable[[DocumentSnapshot], None],
    ) -> None:
        with self._lock:
            self._teardown()
            generation = self._current_generation
            self._navigate(screen, doc_id)
            subscription = self.store.subscribe(
                collection,
                doc_id,
                lambda snapshot: self._dispatch(generation, handler, snapshot),
            )
            if generation != self._current_generation:
                # the first snapshot already moved the session on to another document
                subscription.unsubscribe()
                return
            self._subscription = subscription

    def _dispatch(
        self,
        generation: int,
        handler: Callable[[DocumentSnapshot], None],
        snapshot: DocumentSnapshot,
    ) -> None:
        with self._lock:
            # notification for a document this session already left
            if generation != self._current_generation:
                return
            try:
                handler(snapshot)
            except NotFoundError as exc:
                self._report(exc)
                self._teardown()
                self._navigate(Screen.LOBBY, None)
            except (StoreError, GameError, InconsistentStateError) as exc:
                self._report(exc)
            if self.on_change is not None:
                self.on_change()

    def _teardown(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._current_generation = next(self._generation)
        self.turn_clock.stop()
        self.rematch_countdown.stop()
        self.guards.reset()
        self.rematch_status = RematchStatus.IDLE
        self._ready_index = None
        self.challenge = None
        self.match = None
        self.series = None

    def _navigate(self, screen: Screen, doc_id: Optional[DocumentId]) -> None:
        self.screen = screen
        self.document_id = doc_id
        logger.info("[navigate] user=%s screen=%s document=%s", self.user_id, screen, doc_id)
        if self.on_navigate is not None:
            self.on_navigate(Navigation(screen=screen, document_id=doc_id))

    def _evaluated(self, match: MatchModel) -> MatchModel:
        """
        The board is the only thing both clients agree on: a decided board wins over the stored
        status/winner (nothing enforces the rules store-side).
        """
        outcome = evaluate(match.board)
        if outcome == Outcome.NONE:
            return match
        if match.winner != outcome or match.status != MatchStatus.FINISHED:
            logger.warning(
                "[match-inconsistent] match=%s stored=%s/%s board=%s",
                match.id,
                match.status,
                match.winner,
                outcome,
            )
            match.winner = outcome
            match.status = MatchStatus.FINISHED
        return match

    def _existing(self, snapshot: DocumentSnapshot) -> dict:
        if not snapshot.exists or snapshot.data is None:
            raise NotFoundError(snapshot.collection, snapshot.id)
        return snapshot.data

    def _require_match(self) -> MatchModel:
        if self.screen != Screen.MATCH or self.match is None:
            raise GameStateError("No match is open.")
        return self.match

    def _require_series(self) -> SeriesModel:
        if self.screen != Screen.SERIES or self.series is None:
            raise GameStateError("No series is open.")
        return self.series

    def _result(self, match: MatchModel) -> Optional[MatchResult]:
        my_symbol = match.symbol_of(self.user_id)
        if match.winner is None or my_symbol is None:
            return None
        if match.winner == Outcome.DRAW:
            return "draw"
        return "win" if match.winner.value == my_symbol.value else "lose"

    def _report(self, exc: Exception) -> None:
        """Errors raised while reacting to notifications are reported to the UI, never fatal for the session."""
        self.last_error = exc
        logger.error("[session-error] user=%s screen=%s error=%r", self.user_id, self.screen, exc)
