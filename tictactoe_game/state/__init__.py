"""State primitives for the tic-tac-toe game."""

from .board import Board, BoardError, CellOccupied, InvalidMark, OutOfBounds, WrongTurn
from .models import GameState

__all__ = [
    "Board",
    "BoardError",
    "CellOccupied",
    "GameState",
    "InvalidMark",
    "OutOfBounds",
    "WrongTurn",
]
