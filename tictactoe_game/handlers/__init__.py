"""Telegram handlers for the tic-tac-toe game."""

from .gameplay import move_callback, move_cmd
from .lobby import board_cmd, help_cmd, join_callback, join_cmd, newgame, quit_cmd, start_cmd
from .router import register_handlers

__all__ = [
    "board_cmd",
    "help_cmd",
    "join_callback",
    "join_cmd",
    "move_callback",
    "move_cmd",
    "newgame",
    "quit_cmd",
    "register_handlers",
    "start_cmd",
]
