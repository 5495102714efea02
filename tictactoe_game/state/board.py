"""Pure 3×3 tic-tac-toe board state machine."""

from __future__ import annotations

from typing import List, Optional, Tuple

MARK_X = "X"
MARK_O = "O"
EMPTY = ""
MARKS = (MARK_X, MARK_O)
SIZE = 3


class BoardError(Exception):
    """Base class for rejected moves; ``code`` is stable across versions."""

    code = "BOARD_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class WrongTurn(BoardError):
    code = "WRONG_TURN"


class OutOfBounds(BoardError):
    code = "OUT_OF_BOUNDS"


class CellOccupied(BoardError):
    code = "CELL_OCCUPIED"


class InvalidMark(BoardError):
    code = "INVALID_MARK"


def other_mark(mark: str) -> str:
    """Return the opposing mark."""

    return MARK_O if mark == MARK_X else MARK_X


class Board:
    """Grid, next mark and move counter for a single game."""

    def __init__(self) -> None:
        self._cells: List[List[str]] = [[EMPTY] * SIZE for _ in range(SIZE)]
        self.turn_mark = MARK_X
        self.move_count = 0

    def cell(self, row: int, col: int) -> str:
        return self._cells[row][col]

    def rows(self) -> Tuple[Tuple[str, ...], ...]:
        """Return an immutable snapshot of the grid."""

        return tuple(tuple(row) for row in self._cells)

    def apply_move(self, row: int, col: int, mark: str) -> bool:
        """Place ``mark`` at ``(row, col)`` and report whether the game is over.

        Raises a :class:`BoardError` subclass and leaves the board untouched
        when the move is illegal.
        """

        if mark not in MARKS:
            raise InvalidMark("invalid input")
        if mark != self.turn_mark:
            raise WrongTurn("not your turn")
        if not (0 <= row < SIZE and 0 <= col < SIZE):
            raise OutOfBounds("invalid square")
        if self._cells[row][col] != EMPTY:
            raise CellOccupied("square is not empty")

        self._cells[row][col] = mark
        self.move_count += 1
        self.turn_mark = other_mark(mark)
        return self.is_terminal

    def winner(self) -> Optional[str]:
        """Return the mark owning a completed line, if any."""

        c = self._cells
        # rows
        if c[0][0] != EMPTY and c[0][0] == c[0][1] == c[0][2]:
            return c[0][0]
        if c[1][0] != EMPTY and c[1][0] == c[1][1] == c[1][2]:
            return c[1][0]
        if c[2][0] != EMPTY and c[2][0] == c[2][1] == c[2][2]:
            return c[2][0]
        # columns
        if c[0][0] != EMPTY and c[0][0] == c[1][0] == c[2][0]:
            return c[0][0]
        if c[0][1] != EMPTY and c[0][1] == c[1][1] == c[2][1]:
            return c[0][1]
        if c[0][2] != EMPTY and c[0][2] == c[1][2] == c[2][2]:
            return c[0][2]
        # diagonals
        if c[0][0] != EMPTY and c[0][0] == c[1][1] == c[2][2]:
            return c[0][0]
        if c[0][2] != EMPTY and c[0][2] == c[1][1] == c[2][0]:
            return c[0][2]
        return None

    def is_win(self) -> bool:
        return self.winner() is not None

    def is_draw(self) -> bool:
        return self.move_count == SIZE * SIZE and not self.is_win()

    @property
    def is_terminal(self) -> bool:
        return self.is_win() or self.is_draw()


__all__ = [
    "Board",
    "BoardError",
    "CellOccupied",
    "EMPTY",
    "InvalidMark",
    "MARK_O",
    "MARK_X",
    "MARKS",
    "OutOfBounds",
    "SIZE",
    "WrongTurn",
    "other_mark",
]
