"""Rendering facade for the tic-tac-toe game."""

from .board import BoardRenderer, BoardRenderTheme

__all__ = ["BoardRenderer", "BoardRenderTheme"]
