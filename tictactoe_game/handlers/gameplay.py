"""Runtime move handling for tic-tac-toe games."""

from __future__ import annotations

from typing import Optional, Tuple

from telegram import Update
from telegram.ext import ContextTypes

from ..state.manager import STATE_MANAGER
from .lobby import resolve_player_game


def _parse_callback(data: str) -> Optional[Tuple[str, int, int]]:
    _, _, payload = data.partition(":move:")
    parts = payload.split(":")
    if len(parts) != 3:
        return None
    game_id, row_raw, col_raw = parts
    try:
        return game_id, int(row_raw), int(col_raw)
    except ValueError:
        return None


async def move_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle a press on one of the inline board buttons."""

    query = update.callback_query
    if not query:
        return
    parsed = _parse_callback(query.data or "")
    user = query.from_user
    if not parsed or not user:
        await query.answer()
        return
    game_id, row, col = parsed
    state = STATE_MANAGER.get_by_id(game_id)
    if not state or not state.coordinator:
        await query.answer("Партия уже завершена.", show_alert=True)
        return
    await query.answer()
    await state.coordinator.on_message(user.id, {"row": row, "col": col})


async def move_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle ``/move <row> <col>`` with 1-based coordinates."""

    message = update.effective_message
    user = update.effective_user
    if not message or not user:
        return
    state = resolve_player_game(update, user.id)
    if not state or not state.coordinator:
        await message.reply_text("Вы не участвуете в партии. Используйте /tictactoe, чтобы начать.")
        return
    args = context.args or []
    try:
        row, col = (int(value) - 1 for value in args)
    except ValueError:
        await message.reply_text("Нужен формат: /move <строка> <столбец>, например /move 2 3.")
        return
    await state.coordinator.on_message(user.id, {"row": row, "col": col})


__all__ = ["move_callback", "move_cmd"]
