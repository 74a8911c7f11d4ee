"""Requests (UI intents) and read-only projections handed to the UI layer"""

from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from src.core.exceptions import InvalidMoveError, InvalidRequestError
from src.core.models import BOARD_SIZE
from src.core.shared_types import (
    ChallengeStatus,
    DocumentId,
    MatchKind,
    MatchStatus,
    Outcome,
    RematchStatus,
    Screen,
    SeriesStatus,
    Symbol,
    UserId,
)

MatchResult = Literal["win", "lose", "draw"]


# --- REQUEST MODELS ---
class SendChallengeRequest(BaseModel):
    opponent_id: UserId
    opponent_name: str
    match_kind: MatchKind = MatchKind.SINGLE
    best_of: Optional[int] = None

    @field_validator("best_of")
    @classmethod
    def validate_best_of(cls, value: Optional[int]) -> Optional[int]:
        if value is None:
            return value
        if value < 1 or value % 2 == 0:
            raise InvalidRequestError(
                f"A series is played as best of an odd number of games, got {value}."
            )
        return value


class RespondToChallengeRequest(BaseModel):
    challenge_id: DocumentId
    accept: bool


class MoveRequest(BaseModel):
    match_id: DocumentId
    index: int

    @field_validator("index")
    @classmethod
    def validate_index(cls, value: int) -> int:
        if not 0 <= value < BOARD_SIZE:
            raise InvalidMoveError(f"Slot {value} is off the board (0-{BOARD_SIZE - 1}).")
        return value


class ChatRequest(BaseModel):
    match_id: DocumentId
    message: str


# --- RESPONSE MODELS ---
class Navigation(BaseModel):
    screen: Screen
    document_id: Optional[DocumentId] = None


class ChallengeView(BaseModel):
    challenge_id: DocumentId
    is_outgoing: bool
    opponent_id: UserId
    opponent_name: str
    status: ChallengeStatus
    match_kind: MatchKind
    best_of: Optional[int]
    series_id: Optional[DocumentId]


class MatchView(BaseModel):
    match_id: DocumentId
    board: list[str]
    players: list[UserId]
    current_turn: Symbol
    status: MatchStatus
    winner: Optional[Outcome]
    my_symbol: Optional[Symbol]  # None for spectators
    is_my_turn: bool
    legal_moves: list[int]
    time_left: int
    result: Optional[MatchResult]
    rematch_status: RematchStatus
    rematch_time_left: int
    allow_spectators: bool
    spectators: list[UserId]
    series_id: Optional[DocumentId]
    game_number: Optional[int]


class SeriesView(BaseModel):
    series_id: DocumentId
    players: list[UserId]
    player_names: list[str]
    best_of: int
    required_wins: int
    scores: dict[UserId, int]
    status: SeriesStatus
    winner: Optional[UserId]
    current_game_index: int
    games: list[DocumentId]
    i_am_ready: bool
    opponent_ready: bool
    i_start_next_game: bool
