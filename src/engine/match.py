"""
The Match class is the entrypoint into the domain layer for the service layer.
It is responsible for checking whose turn it is, placing the symbol and deciding the result of the match,
after which the services translate the new state into a (partial) document write.
"""

from dataclasses import dataclass
from typing import Any, Optional, Self

from src.core.exceptions import GameStateError, NotYourTurnError
from src.core.models import MatchModel, empty_board
from src.core.shared_types import (
    DocumentId,
    MatchStatus,
    Outcome,
    Symbol,
    UserId,
)
from src.engine.board import Board


@dataclass
class Match:
    # --- DOMAIN LAYER API CALLED BY SERVICES ---

    model: MatchModel
    board: Board

    @classmethod
    def from_model(cls, model: MatchModel) -> Self:
        return cls(model, Board.from_cells(model.board))

    def to_model(self) -> MatchModel:
        self.model.board = list(self.board.cells)
        return self.model

    @classmethod
    def new_match(
        cls,
        match_id: DocumentId,
        players: list[UserId],
        series_id: Optional[DocumentId] = None,
        game_number: Optional[int] = None,
        status: MatchStatus = MatchStatus.ONGOING,
    ) -> Self:
        """Empty board, X (the first player) to move."""
        if len(players) != 2 or players[0] == players[1]:
            raise GameStateError(f"A match needs two different players, got {players!r}.")
        model = MatchModel(
            id=match_id,
            players=list(players),
            board=empty_board(),
            current_turn=Symbol.X,
            winner=None,
            status=status,
            series_id=series_id,
            game_number=game_number,
        )
        return cls.from_model(model)

    @property
    def status(self) -> MatchStatus:
        return self.model.status

    @property
    def current_turn(self) -> Symbol:
        return self.model.current_turn

    @property
    def is_ongoing(self) -> bool:
        # a decided board ends the match even if the stored status says otherwise
        return self.model.status == MatchStatus.ONGOING and self.board.outcome() == Outcome.NONE

    def symbol_for(self, player: UserId) -> Symbol:
        symbol = self.model.symbol_of(player)
        if symbol is None:
            raise GameStateError(f"{player!r} is not playing in match {self.model.id!r}.")
        return symbol

    def is_turn_of(self, player: UserId) -> bool:
        return self.is_ongoing and self.model.symbol_of(player) == self.current_turn

    def make_move(self, index: int, player: UserId) -> Outcome:
        """
        Attempt to make a move
        -----
        1. the match must be ongoing
        2. it must be your turn
        3. the slot must be on the board and empty (raises InvalidMoveError otherwise)
        4. the turn passes to the opponent, and the result is decided
        """
        if not self.is_ongoing:
            raise GameStateError(f"Match is not ongoing. status: {self.status}")

        symbol = self.symbol_for(player)
        if symbol != self.current_turn:
            raise NotYourTurnError(
                f"It is not your turn. Waiting for {self.current_turn} to make a move first."
            )

        self.board.place(index, symbol)
        self.model.current_turn = symbol.opponent
        outcome = self.board.outcome()
        if outcome != Outcome.NONE:
            self.model.winner = outcome
            self.model.status = MatchStatus.FINISHED
        return outcome

    def pass_turn(self) -> None:
        """Out of time: the turn goes to the opponent, the board stays as it is."""
        if not self.is_ongoing:
            raise GameStateError(f"Cannot pass the turn. Match is not ongoing. status: {self.status}")
        self.model.current_turn = self.current_turn.opponent

    def move_fields(self) -> dict[str, Any]:
        """The fields a move changes (for a partial document write)."""
        return {
            "board": list(self.board.cells),
            "currentTurn": self.model.current_turn.value,
            "winner": self.model.winner.value if self.model.winner else None,
            "status": self.model.status.value,
        }

    def pass_fields(self) -> dict[str, Any]:
        return {"currentTurn": self.model.current_turn.value}
