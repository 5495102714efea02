"""Lobby handlers: creating, joining and leaving tic-tac-toe games."""

from __future__ import annotations

import html
import logging
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update, User
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..config import load_settings
from ..rendering import BoardRenderer
from ..services import create_session
from ..state import GameState
from ..state.manager import STATE_MANAGER

logger = logging.getLogger(__name__)

NAME_KEY = "tictactoe_display_name"
RENDERER = BoardRenderer()

HELP_TEXT = (
    "<b>Крестики-нолики — краткие правила</b>\n"
    "1. Создайте партию командой /tictactoe (или /newgame).\n"
    "2. Второй игрок жмёт «Присоединиться» или вводит /join &lt;код&gt;.\n"
    "3. Кто ходит первым, решает жребий; первый игрок ставит X.\n"
    "4. Ходите кнопками под полем или командой /move &lt;строка&gt; &lt;столбец&gt; (числа 1–3).\n"
    "5. Кто первым соберёт три знака в ряд, по столбцу или диагонали — победил.\n"
    "6. На каждый ход отведено ограниченное время. Не успели — победа сопернику.\n"
    "\nКоманды:\n"
    "• /board — показать поле и чей сейчас ход.\n"
    "• /quit — выйти из партии (засчитывается поражение).\n"
)


def _get_display_name(context: ContextTypes.DEFAULT_TYPE, user: User) -> str:
    user_data = getattr(context, "user_data", None) or {}
    stored = user_data.get(NAME_KEY)
    if isinstance(stored, str) and stored.strip():
        return stored.strip()
    return (user.full_name or user.username or "Игрок").strip()


def _format_lobby(state: GameState) -> str:
    code = state.join_code or "—"
    lines = [
        "<b>Новая партия в крестики-нолики</b>",
        f"Код для /join: <code>{html.escape(code)}</code>",
    ]
    for idx, name in enumerate(state.names.values(), start=1):
        lines.append(f"{idx}. {html.escape(name)}")
    if len(state.names) < 2:
        lines.append("Ждём второго игрока.")
    return "\n".join(lines)


def _build_lobby_keyboard(state: GameState) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton("🎮 Присоединиться", callback_data=f"ttt:join:{state.game_id}")]]
    )


async def _publish_lobby(state: GameState, context: ContextTypes.DEFAULT_TYPE) -> None:
    bot = getattr(context, "bot", None)
    if not bot:
        return
    try:
        sent = await bot.send_message(
            state.chat_id,
            _format_lobby(state),
            parse_mode="HTML",
            reply_markup=_build_lobby_keyboard(state),
            message_thread_id=state.thread_id,
        )
    except TelegramError as exc:
        logger.warning("Failed to publish lobby %s: %s", state.game_id, exc)
        return
    state.lobby_message_id = getattr(sent, "message_id", None)


async def close_chat_games(chat_id: int) -> List[GameState]:
    """Close every session bound to the chat without announcing a result."""

    closed = STATE_MANAGER.detach_chat(chat_id)
    for state in closed:
        if state.coordinator:
            await state.coordinator.on_close()
    return closed


def resolve_player_game(update: Update, user_id: int) -> Optional[GameState]:
    """Prefer the game of the current chat, then any game seating the user."""

    chat = update.effective_chat
    message = update.effective_message
    if chat:
        thread_id = message.message_thread_id if message else None
        state = STATE_MANAGER.get_by_chat(chat.id, thread_id or None)
        if state and state.coordinator and state.coordinator.participant(user_id):
            return state
    return STATE_MANAGER.find_by_player(user_id)


async def start_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if context.args:
        await join_cmd(update, context)
        return
    await newgame(update, context)


async def newgame(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    chat = update.effective_chat
    user = update.effective_user
    if not all([message, chat, user]):
        return
    thread_id = message.message_thread_id or None
    existing = STATE_MANAGER.get_by_chat(chat.id, thread_id)
    if existing and existing.has_started:
        await message.reply_text("Партия уже идёт в этом чате. Дождитесь конца или используйте /quit.")
        return
    for closed in await close_chat_games(chat.id):
        if closed.host_id != user.id:
            host = html.escape(closed.display_name(closed.host_id))
            await message.reply_text(
                f"Лобби игрока <b>{host}</b> закрыто: в чате открыта новая партия.",
                parse_mode="HTML",
            )
    state = STATE_MANAGER.create_lobby(user.id, chat.id, thread_id)
    STATE_MANAGER.ensure_join_code(state)
    coordinator = create_session(state, context, load_settings())
    name = _get_display_name(context, user)
    state.names[user.id] = name
    await _publish_lobby(state, context)
    await coordinator.on_join(user.id, name)


async def join_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    user = update.effective_user
    if not message or not user:
        return
    args = context.args or []
    if not args:
        await message.reply_text("Укажите код приглашения после команды: /join <код>.")
        return
    state = STATE_MANAGER.get_by_join_code(args[0])
    if not state or not state.coordinator:
        await message.reply_text("Партия уже закрыта. Попросите создать новую.")
        return
    if await _join_game(state, user, context):
        await message.reply_text("Вы в игре! Следите за полем в чате партии.")


async def join_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not query:
        return
    data = query.data or ""
    _, _, game_id = data.partition(":join:")
    state = STATE_MANAGER.get_by_id(game_id)
    user = query.from_user
    if not state or not state.coordinator or not user:
        await query.answer("Партия не найдена.", show_alert=True)
        return
    await query.answer()
    await _join_game(state, user, context)


async def _join_game(state: GameState, user: User, context: ContextTypes.DEFAULT_TYPE) -> bool:
    coordinator = state.coordinator
    name = _get_display_name(context, user)
    if not coordinator.participant(user.id):
        state.names.setdefault(user.id, name)
    await coordinator.on_join(user.id, name)
    seated = coordinator.participant(user.id) is not None
    if not seated:
        state.names.pop(user.id, None)
    return seated


async def quit_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    user = update.effective_user
    if not message or not user:
        return
    state = resolve_player_game(update, user.id)
    if not state or not state.coordinator:
        await message.reply_text("Вы не участвуете в партии. Используйте /tictactoe, чтобы начать.")
        return
    started = state.has_started
    await state.coordinator.on_leave(user.id)
    if started:
        await message.reply_text("Вы покинули партию. Это засчитано как поражение.")
    else:
        await message.reply_text("Вы закрыли лобби.")


async def help_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    if message:
        await message.reply_text(HELP_TEXT, parse_mode="HTML", disable_web_page_preview=True)


async def board_cmd(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    chat = update.effective_chat
    if not message or not chat:
        return
    state = STATE_MANAGER.get_by_chat(chat.id, message.message_thread_id or None)
    if not state or not state.coordinator:
        await message.reply_text("В этом чате нет партии. Используйте /tictactoe.")
        return
    coordinator = state.coordinator
    lines = [RENDERER.render_text(coordinator.board)]
    if coordinator.turn_holder is None:
        lines.append("Ждём второго игрока.")
    else:
        name = html.escape(state.display_name(coordinator.turn_holder))
        lines.append(f"Ходит <b>{name}</b> ({coordinator.board.turn_mark}).")
    await message.reply_text("\n".join(lines), parse_mode="HTML")


__all__ = [
    "board_cmd",
    "close_chat_games",
    "help_cmd",
    "join_callback",
    "join_cmd",
    "newgame",
    "quit_cmd",
    "resolve_player_game",
    "start_cmd",
]
