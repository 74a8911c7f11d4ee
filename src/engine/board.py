"""
The board implements the only rules that concern the position itself: where a symbol may be placed and who (if anyone)
has three in a row.

Both clients run exactly these functions on the same document, the store does not validate anything.
"""

from dataclasses import dataclass, field
from typing import Sequence, Self

from src.core.exceptions import InvalidMoveError
from src.core.models import BOARD_SIZE, empty_board
from src.core.shared_types import EMPTY, Outcome, Symbol

# Board slots are numbered row by row:
#  0 | 1 | 2
#  3 | 4 | 5
#  6 | 7 | 8
WIN_LINES: tuple[tuple[int, int, int], ...] = (
    # rows
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    # columns
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    # diagonals
    (0, 4, 8),
    (2, 4, 6),
)


def apply_move(board: Sequence[str], index: int, symbol: Symbol) -> list[str]:
    """Return a new board with `symbol` placed on `index`. The input board is left untouched."""
    if not 0 <= index < BOARD_SIZE:
        raise InvalidMoveError(f"Slot {index} is off the board (0-{BOARD_SIZE - 1}).")
    if board[index] != EMPTY:
        raise InvalidMoveError(f"Slot {index} is already taken by {board[index]!r}.")
    new_board = list(board)
    new_board[index] = symbol.value
    return new_board


def evaluate(board: Sequence[str]) -> Outcome:
    """
    Decide the state of a board
    ---
    * X or O: one of the 8 lines holds three equal symbols
    * DRAW: all slots filled and no such line
    * NONE: still being played
    """
    for a, b, c in WIN_LINES:
        if board[a] != EMPTY and board[a] == board[b] == board[c]:
            return Outcome(board[a])
    if all(cell != EMPTY for cell in board):
        return Outcome.DRAW
    return Outcome.NONE


@dataclass
class Board:
    cells: list[str] = field(default_factory=empty_board)

    @classmethod
    def from_cells(cls, cells: Sequence[str]) -> Self:
        if len(cells) != BOARD_SIZE:
            raise InvalidMoveError(f"A board has {BOARD_SIZE} slots, got {len(cells)}.")
        return cls(list(cells))

    def place(self, index: int, symbol: Symbol) -> None:
        self.cells = apply_move(self.cells, index, symbol)

    def outcome(self) -> Outcome:
        return evaluate(self.cells)

    def empty_slots(self) -> list[int]:
        return [index for index, cell in enumerate(self.cells) if cell == EMPTY]

    def render(self) -> str:
        """Three text rows, empty slots shown as their index (handy in logs)."""
        shown = [cell or str(index) for index, cell in enumerate(self.cells)]
        return "\n".join(" | ".join(shown[row : row + 3]) for row in range(0, BOARD_SIZE, 3))
