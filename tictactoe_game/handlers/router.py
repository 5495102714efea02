"""Registration helpers for tic-tac-toe handlers."""

from __future__ import annotations

from typing import Optional

from telegram.ext import Application, CallbackQueryHandler, CommandHandler

from .gameplay import move_callback, move_cmd
from .lobby import board_cmd, help_cmd, join_callback, join_cmd, newgame, quit_cmd, start_cmd


def register_handlers(application: Optional[Application]) -> None:
    """Attach tic-tac-toe command and callback handlers to the application."""

    if not application:
        return

    application.add_handler(CommandHandler("tictactoe", start_cmd))
    application.add_handler(CommandHandler("newgame", newgame))
    application.add_handler(CommandHandler("join", join_cmd, block=False))
    application.add_handler(CommandHandler("move", move_cmd, block=False))
    application.add_handler(CommandHandler("board", board_cmd, block=False))
    application.add_handler(CommandHandler("quit", quit_cmd, block=False))
    application.add_handler(CommandHandler("help", help_cmd, block=False))
    application.add_handler(CallbackQueryHandler(join_callback, pattern="^ttt:join:", block=False))
    application.add_handler(CallbackQueryHandler(move_callback, pattern="^ttt:move:", block=False))
