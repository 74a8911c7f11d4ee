"""
Boundary layer data model(s).

The record store holds plain documents (camelCase field names, JSON-like values).
The models below are the transport-safe representation of those documents that the engine, the services and the
session facade pass around, so none of them needs to know the stored field names.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Self

from src.core.exceptions import InconsistentStateError
from src.core.shared_types import (
    EMPTY,
    ChallengeStatus,
    DocumentId,
    MatchKind,
    MatchStatus,
    Outcome,
    SeriesStatus,
    Symbol,
    UserId,
)

BOARD_SIZE = 9


def empty_board() -> list[str]:
    return [EMPTY] * BOARD_SIZE


def required_wins(best_of: int) -> int:
    """Wins needed to take a best-of-N series."""
    return math.ceil(best_of / 2)


@dataclass
class ChallengeModel:
    id: DocumentId
    from_user_id: UserId
    from_user_name: str
    to_user_id: UserId
    to_user_name: str
    status: ChallengeStatus = ChallengeStatus.PENDING
    match_kind: MatchKind = MatchKind.SINGLE
    best_of: Optional[int] = None
    series_id: Optional[DocumentId] = None
    created_at: Optional[str] = None
    responded_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc_id: DocumentId, data: Mapping[str, Any]) -> Self:
        try:
            return cls(
                id=doc_id,
                from_user_id=data["fromUserId"],
                from_user_name=data.get("fromUserName", ""),
                to_user_id=data["toUserId"],
                to_user_name=data.get("toUserName", ""),
                status=ChallengeStatus(data.get("status", ChallengeStatus.PENDING)),
                match_kind=MatchKind(data.get("matchKind", MatchKind.SINGLE)),
                best_of=data.get("bestOf"),
                series_id=data.get("seriesId"),
                created_at=data.get("createdAt"),
                responded_at=data.get("respondedAt"),
            )
        except (KeyError, ValueError) as exc:
            raise InconsistentStateError(f"Malformed challenge {doc_id!r}: {exc}") from exc

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "fromUserId": self.from_user_id,
            "fromUserName": self.from_user_name,
            "toUserId": self.to_user_id,
            "toUserName": self.to_user_name,
            "status": self.status.value,
            "matchKind": self.match_kind.value,
        }
        # bestOf only makes sense for a series
        if self.match_kind == MatchKind.SERIES and self.best_of is not None:
            document["bestOf"] = self.best_of
        if self.series_id is not None:
            document["seriesId"] = self.series_id
        return document


@dataclass
class MatchModel:
    id: DocumentId
    players: list[UserId]  # first player plays X
    board: list[str] = field(default_factory=empty_board)
    current_turn: Symbol = Symbol.X
    winner: Optional[Outcome] = None
    status: MatchStatus = MatchStatus.ONGOING
    allow_spectators: bool = True
    series_id: Optional[DocumentId] = None
    game_number: Optional[int] = None
    rematch_requested_by: Optional[UserId] = None
    rematch_declined_by: Optional[UserId] = None
    rematch_game_id: Optional[DocumentId] = None
    spectators: list[UserId] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc_id: DocumentId, data: Mapping[str, Any]) -> Self:
        board = list(data.get("board") or empty_board())
        if len(board) != BOARD_SIZE:
            raise InconsistentStateError(
                f"Match {doc_id!r} has {len(board)} board slots, expected {BOARD_SIZE}."
            )
        players = list(data.get("players") or [])
        if len(players) != 2:
            raise InconsistentStateError(f"Match {doc_id!r} must have exactly 2 players.")
        try:
            winner = data.get("winner")
            return cls(
                id=doc_id,
                players=players,
                board=board,
                # A match created without a turn starts with X
                current_turn=Symbol(data.get("currentTurn") or Symbol.X),
                winner=Outcome(winner) if winner else None,
                status=MatchStatus(data.get("status") or MatchStatus.ONGOING),
                allow_spectators=bool(data.get("allowSpectators", True)),
                series_id=data.get("seriesId"),
                game_number=data.get("gameNumber"),
                rematch_requested_by=data.get("rematchRequestedBy"),
                rematch_declined_by=data.get("rematchDeclinedBy"),
                rematch_game_id=data.get("rematchGameId"),
                spectators=list(data.get("spectators") or []),
                created_at=data.get("createdAt"),
                updated_at=data.get("updatedAt"),
            )
        except ValueError as exc:
            raise InconsistentStateError(f"Malformed match {doc_id!r}: {exc}") from exc

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "board": list(self.board),
            "currentTurn": self.current_turn.value,
            "winner": self.winner.value if self.winner else None,
            "players": list(self.players),
            "status": self.status.value,
            "allowSpectators": self.allow_spectators,
            "spectators": list(self.spectators),
        }
        optional = {
            "seriesId": self.series_id,
            "gameNumber": self.game_number,
            "rematchRequestedBy": self.rematch_requested_by,
            "rematchDeclinedBy": self.rematch_declined_by,
            "rematchGameId": self.rematch_game_id,
        }
        document.update({key: value for key, value in optional.items() if value is not None})
        return document

    def opponent_of(self, user_id: UserId) -> UserId:
        first, second = self.players
        return second if user_id == first else first

    def symbol_of(self, user_id: UserId) -> Optional[Symbol]:
        """X for the first player, O for the second one, None for anyone else (spectators)."""
        if user_id == self.players[0]:
            return Symbol.X
        if user_id == self.players[1]:
            return Symbol.O
        return None

    def player_with(self, symbol: Symbol) -> UserId:
        return self.players[0] if symbol == Symbol.X else self.players[1]


@dataclass
class SeriesModel:
    id: DocumentId
    players: list[UserId]  # first player is the one who sent the challenge
    best_of: int
    player_names: list[str] = field(default_factory=list)
    games: list[DocumentId] = field(default_factory=list)
    scores: dict[UserId, int] = field(default_factory=dict)
    status: SeriesStatus = SeriesStatus.ONGOING
    winner: Optional[UserId] = None
    current_game_index: int = 0
    # None means the field is missing from the document (repaired by the coordinator)
    next_game_ready: Optional[dict[UserId, bool]] = None
    scored_games: list[DocumentId] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc_id: DocumentId, data: Mapping[str, Any]) -> Self:
        players = list(data.get("players") or [])
        if len(players) != 2:
            raise InconsistentStateError(f"Series {doc_id!r} must have exactly 2 players.")
        try:
            ready = data.get("nextGameReady")
            return cls(
                id=doc_id,
                players=players,
                best_of=int(data.get("bestOf") or 3),
                player_names=list(data.get("playerNames") or []),
                games=list(data.get("games") or []),
                scores={player: int((data.get("scores") or {}).get(player, 0)) for player in players},
                status=SeriesStatus(data.get("status") or SeriesStatus.ONGOING),
                winner=data.get("winner"),
                current_game_index=int(data.get("currentGameIndex") or 0),
                next_game_ready=dict(ready) if ready is not None else None,
                scored_games=list(data.get("scoredGames") or []),
                created_at=data.get("createdAt"),
                updated_at=data.get("updatedAt"),
            )
        except ValueError as exc:
            raise InconsistentStateError(f"Malformed series {doc_id!r}: {exc}") from exc

    def to_document(self) -> dict[str, Any]:
        return {
            "players": list(self.players),
            "playerNames": list(self.player_names),
            "bestOf": self.best_of,
            "games": list(self.games),
            "scores": dict(self.scores),
            "status": self.status.value,
            "winner": self.winner,
            "currentGameIndex": self.current_game_index,
            "nextGameReady": dict(self.next_game_ready or {}),
            "scoredGames": list(self.scored_games),
        }

    @property
    def required_wins(self) -> int:
        return required_wins(self.best_of)

    def is_ready(self, user_id: UserId) -> bool:
        return bool((self.next_game_ready or {}).get(user_id, False))

    @property
    def both_ready(self) -> bool:
        return all(self.is_ready(player) for player in self.players)

    def opponent_of(self, user_id: UserId) -> UserId:
        first, second = self.players
        return second if user_id == first else first
