"""Orchestration of match documents: creation, moves, turn passes and spectators."""

import logging
from typing import Optional

from src.core.exceptions import GameStateError, NotFoundError
from src.core.models import MatchModel
from src.core.shared_types import Collection, DocumentId, MatchStatus, UserId
from src.engine.match import Match
from src.store.record_store import SERVER_TIMESTAMP, RecordStore

logger = logging.getLogger(__name__)


class MatchService:
    """Every write re-reads the latest snapshot first and is skipped when its precondition no longer holds."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def fetch(self, match_id: DocumentId) -> MatchModel:
        """Attempt to find the match in the store and raise error if it fails."""
        snapshot = self.store.get(Collection.GAMES, match_id)
        if not snapshot.exists or snapshot.data is None:
            raise NotFoundError(Collection.GAMES, match_id)
        return MatchModel.from_document(match_id, snapshot.data)

    def create(self, match: Match, doc_id: Optional[DocumentId] = None) -> DocumentId:
        """Store a new match. With a fixed `doc_id`, raises DocumentExistsError if it was created before."""
        fields = match.to_model().to_document()
        fields["createdAt"] = SERVER_TIMESTAMP
        fields["updatedAt"] = SERVER_TIMESTAMP
        match_id = self.store.create(Collection.GAMES, fields, doc_id=doc_id)
        logger.info(
            "[match-created] match=%s players=%s series=%s game=%s",
            match_id,
            match.model.players,
            match.model.series_id,
            match.model.game_number,
        )
        return match_id

    def make_move(self, match_id: DocumentId, index: int, player: UserId) -> MatchModel:
        """
        Place the player's symbol.

        Rule violations (InvalidMoveError, NotYourTurnError, GameStateError) are raised before anything is written.
        """
        match = Match.from_model(self.fetch(match_id))
        outcome = match.make_move(index, player)
        self.store.update(
            Collection.GAMES,
            match_id,
            {**match.move_fields(), "updatedAt": SERVER_TIMESTAMP},
        )
        logger.info("[move] match=%s player=%s index=%s outcome=%s", match_id, player, index, outcome)
        if match.status == MatchStatus.FINISHED:
            logger.info("[match-finished] match=%s winner=%s\n%s", match_id, outcome, match.board.render())
        return match.to_model()

    def pass_turn(self, match_id: DocumentId, player: UserId) -> bool:
        """
        The player ran out of time. Hands the turn to the opponent without touching the board.

        Returns False (and writes nothing) when the match has moved on in the meantime:
        not ongoing anymore, or the turn is not the player's anymore.
        """
        match = Match.from_model(self.fetch(match_id))
        if not match.is_turn_of(player):
            logger.debug("[turn-pass-skip] match=%s player=%s turn=%s", match_id, player, match.current_turn)
            return False
        match.pass_turn()
        self.store.update(
            Collection.GAMES,
            match_id,
            {**match.pass_fields(), "updatedAt": SERVER_TIMESTAMP},
        )
        logger.info("[turn-pass] match=%s player=%s next=%s", match_id, player, match.current_turn)
        return True

    def start(self, match_id: DocumentId) -> bool:
        """A waiting (pre-created) match becomes ongoing. No-op for any other status."""
        model = self.fetch(match_id)
        if model.status != MatchStatus.WAITING:
            return False
        self.store.update(
            Collection.GAMES,
            match_id,
            {"status": MatchStatus.ONGOING.value, "updatedAt": SERVER_TIMESTAMP},
        )
        logger.info("[match-started] match=%s", match_id)
        return True

    def set_allow_spectators(self, match_id: DocumentId, player: UserId, allow: bool) -> None:
        model = self.fetch(match_id)
        if player not in model.players:
            raise GameStateError("Only the players can change who may watch the match.")
        if model.allow_spectators == allow:
            return
        self.store.update(
            Collection.GAMES,
            match_id,
            {"allowSpectators": allow, "updatedAt": SERVER_TIMESTAMP},
        )

    def add_spectator(self, match_id: DocumentId, viewer: UserId) -> MatchModel:
        """Register a viewer. Refused when the players do not allow spectators."""
        model = self.fetch(match_id)
        if viewer in model.players:
            raise GameStateError("Players cannot spectate their own match.")
        if not model.allow_spectators:
            raise GameStateError(f"Match {match_id!r} does not allow spectators.")
        if viewer not in model.spectators:
            model.spectators.append(viewer)
            self.store.update(Collection.GAMES, match_id, {"spectators": model.spectators})
        return model
