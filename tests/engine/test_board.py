"""Unit tests for /src/engine/board.py"""

import pytest

from src.core.exceptions import InvalidMoveError
from src.core.models import empty_board
from src.core.shared_types import Outcome, Symbol
from src.engine.board import WIN_LINES, Board, apply_move, evaluate

X, O, _ = "X", "O", ""


# --- EVALUATE ---
@pytest.mark.parametrize("line", WIN_LINES)
@pytest.mark.parametrize("symbol", [Symbol.X, Symbol.O])
def test_every_line_is_decisive(line: tuple[int, int, int], symbol: Symbol) -> None:
    """Three equal symbols on any of the 8 lines win, whatever else is on the board."""
    board = empty_board()
    for index in line:
        board[index] = symbol.value
    assert evaluate(board) == Outcome(symbol.value)


def test_empty_board_is_undecided() -> None:
    assert evaluate(empty_board()) == Outcome.NONE


def test_full_board_without_line_is_draw() -> None:
    board = [
        X, O, X,
        X, O, O,
        O, X, X,
    ]  # fmt: skip
    assert evaluate(board) == Outcome.DRAW


def test_full_board_with_line_is_not_draw() -> None:
    """A move that fills the board and completes a line is a win."""
    board = [
        X, O, X,
        O, X, O,
        O, X, X,
    ]  # fmt: skip
    assert evaluate(board) == Outcome.X


def test_mixed_line_is_not_decisive() -> None:
    board = [X, X, O, _, _, _, _, _, _]
    assert evaluate(board) == Outcome.NONE


# --- APPLY MOVE ---
def test_apply_move_returns_new_board() -> None:
    """The input board is never mutated."""
    board = empty_board()
    new_board = apply_move(board, 4, Symbol.X)
    assert new_board[4] == X
    assert board == empty_board()


def test_occupied_slot_is_refused() -> None:
    """Re-applying the same index fails and leaves the slot as it was."""
    board = apply_move(empty_board(), 4, Symbol.X)
    with pytest.raises(InvalidMoveError):
        apply_move(board, 4, Symbol.O)
    assert board[4] == X


@pytest.mark.parametrize("index", [-1, 9, 42])
def test_off_board_index_is_refused(index: int) -> None:
    with pytest.raises(InvalidMoveError):
        apply_move(empty_board(), index, Symbol.X)


# --- BOARD ---
def test_board_place_and_empty_slots() -> None:
    board = Board()
    board.place(0, Symbol.X)
    board.place(8, Symbol.O)
    assert board.empty_slots() == [1, 2, 3, 4, 5, 6, 7]
    assert board.outcome() == Outcome.NONE


def test_board_from_cells_checks_size() -> None:
    with pytest.raises(InvalidMoveError):
        Board.from_cells([X, O])


def test_render_shows_free_slots_as_index() -> None:
    board = Board.from_cells([X, _, _, _, O, _, _, _, _])
    assert board.render() == "X | 1 | 2\n3 | O | 5\n6 | 7 | 8"
