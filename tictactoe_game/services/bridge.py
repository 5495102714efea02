"""Adapters that host a session coordinator inside a Telegram chat."""

from __future__ import annotations

import html
import logging
import random
from io import BytesIO
from typing import Any, Dict, Optional, Set, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, InputFile, InputMediaPhoto
from telegram.error import TelegramError
from telegram.ext import CallbackContext, ContextTypes, JobQueue

from ..config import SessionSettings
from ..rendering import BoardRenderer
from ..session import End, Error, PlayerMove, SessionCoordinator, Turn
from ..session.events import (
    ALREADY_JOINED,
    GAME_FINISHED,
    GAME_NOT_STARTED,
    MALFORMED_MESSAGE,
    NOT_YOUR_TURN,
    ROOM_FULL,
    OutboundEvent,
)
from ..state import GameState
from ..state.board import SIZE, Board, CellOccupied, InvalidMark, OutOfBounds, WrongTurn
from ..state.manager import STATE_MANAGER, GameStateManager

logger = logging.getLogger(__name__)

RENDERER = BoardRenderer()
JOB_PREFIX = "ttt"

ERROR_TEXTS: Dict[str, str] = {
    GAME_FINISHED: "Игра уже завершена.",
    GAME_NOT_STARTED: "Ждём второго игрока.",
    NOT_YOUR_TURN: "Сейчас ход другого игрока.",
    MALFORMED_MESSAGE: "Нужен формат: /move <строка> <столбец>.",
    ROOM_FULL: "В партии уже два игрока.",
    ALREADY_JOINED: "Вы уже в этой партии.",
    WrongTurn.code: "Сейчас не ваш ход.",
    OutOfBounds.code: "Такой клетки нет — используйте числа от 1 до 3.",
    CellOccupied.code: "Клетка уже занята.",
    InvalidMark.code: "Неизвестный знак — только X или O.",
}


async def scheduled_action_job(context: CallbackContext) -> None:
    """Deliver a fired job back into its session coordinator."""

    job = context.job
    data = job.data if job else None
    if not isinstance(data, dict):
        return
    game_id = data.get("game_id")
    action = data.get("action")
    if not game_id or not action:
        return
    state = STATE_MANAGER.get_by_id(game_id)
    if not state or not state.coordinator:
        logger.debug("Dropping %s for finished game %s", action, game_id)
        return
    await state.coordinator.on_scheduled_action(action, data.get("payload"))


class JobQueueScheduler:
    """Named one-shot jobs for one game on top of the PTB job queue."""

    def __init__(self, job_queue: Optional[JobQueue], game_id: str, callback=scheduled_action_job) -> None:
        self._job_queue = job_queue
        self._game_id = game_id
        self._callback = callback
        self._names: Set[str] = set()

    def job_name(self, name: str) -> str:
        return f"{JOB_PREFIX}_{self._game_id}_{name}"

    def schedule(self, name: str, payload: Any, delay: float) -> None:
        if self._job_queue is None:
            raise RuntimeError("job queue is not configured")
        self.cancel(name)
        self._job_queue.run_once(
            self._callback,
            delay,
            data={"game_id": self._game_id, "action": name, "payload": payload},
            name=self.job_name(name),
        )
        self._names.add(name)

    def cancel(self, name: str) -> None:
        self._names.discard(name)
        if self._job_queue is None:
            return
        for job in self._job_queue.get_jobs_by_name(self.job_name(name)):
            job.schedule_removal()

    def cancel_all(self) -> None:
        for name in list(self._names):
            self.cancel(name)


class ManagerLifecycle:
    """Release a finished game from the state manager."""

    def __init__(self, manager: GameStateManager, game_id: str) -> None:
        self._manager = manager
        self._game_id = game_id

    def destroy(self) -> None:
        self._manager.drop_game(self._game_id)


def build_board_keyboard(game_id: str, board: Board) -> InlineKeyboardMarkup:
    """3×3 inline keyboard whose buttons submit moves."""

    rows = []
    for row in range(SIZE):
        rows.append(
            [
                InlineKeyboardButton(
                    RENDERER.render_cell_label(board, row, col),
                    callback_data=f"{JOB_PREFIX}:move:{game_id}:{row}:{col}",
                )
                for col in range(SIZE)
            ]
        )
    return InlineKeyboardMarkup(rows)


def describe_event(state: GameState, event: OutboundEvent) -> str:
    """Human readable HTML text for an outbound event."""

    if isinstance(event, Turn):
        name = html.escape(state.display_name(event.participant_id))
        return f"Ход игрока <b>{name}</b> ({event.mark}). На ход {int(event.time_left)} с."
    if isinstance(event, PlayerMove):
        name = html.escape(state.display_name(event.participant_id))
        return f"💡 {name} ставит {event.mark} в клетку {event.row + 1}·{event.col + 1}."
    if isinstance(event, End):
        if event.winner_id is None:
            coordinator = state.coordinator
            if coordinator and coordinator.board.is_draw():
                return "🤝 Игра окончена — ничья."
            if coordinator and coordinator.turn_holder is None:
                return "Лобби закрыто: партия так и не началась."
            return "Игра окончена без победителя."
        name = html.escape(state.display_name(event.winner_id))
        return f"🏆 Победитель: <b>{name}</b>!"
    if isinstance(event, Error):
        return f"⚠️ {html.escape(event.message)}"
    return html.escape(str(event))


class ChatBroadcaster:
    """Publish session events into the game chat and private messages."""

    def __init__(self, bot: Any, state: GameState) -> None:
        self._bot = bot
        self._state = state

    @property
    def _board(self) -> Optional[Board]:
        coordinator = self._state.coordinator
        return coordinator.board if coordinator else None

    async def send_to_all(self, event: OutboundEvent) -> None:
        if not self._bot:
            return
        state = self._state
        board = self._board
        if isinstance(event, PlayerMove) and board is not None:
            await self._publish_board(board, highlight=(event.row, event.col), caption=describe_event(state, event))
            return
        reply_markup = None
        text = describe_event(state, event)
        if isinstance(event, Turn) and board is not None:
            reply_markup = build_board_keyboard(state.game_id, board)
        elif isinstance(event, End) and board is not None:
            text = f"{text}\n{RENDERER.render_text(board)}"
        try:
            await self._bot.send_message(
                state.chat_id,
                text,
                parse_mode="HTML",
                reply_markup=reply_markup,
                message_thread_id=state.thread_id,
            )
        except TelegramError as exc:
            logger.warning("Failed to post %s to chat %s: %s", type(event).__name__, state.chat_id, exc)

    async def send_to_one(self, participant_id: int, event: OutboundEvent) -> None:
        if not self._bot:
            return
        text = describe_event(self._state, event)
        board = self._board
        if board is not None:
            text = f"{text}\n{RENDERER.render_text(board)}"
        await self._send_private(participant_id, text)

    async def send_error(self, participant_id: Optional[int], code: str, message: str) -> None:
        if not self._bot or participant_id is None:
            return
        logger.debug("Rejecting request from %s: %s", participant_id, code)
        text = ERROR_TEXTS.get(code, message)
        await self._send_private(participant_id, f"⚠️ {html.escape(text)}")

    async def _send_private(self, user_id: int, text: str) -> None:
        state = self._state
        try:
            await self._bot.send_message(user_id, text, parse_mode="HTML")
            return
        except TelegramError as exc:
            logger.info("Private message to %s failed (%s), using the game chat", user_id, exc)
        mention = f'<a href="tg://user?id={user_id}">{html.escape(state.display_name(user_id))}</a>'
        try:
            await self._bot.send_message(
                state.chat_id,
                f"{mention}: {text}",
                parse_mode="HTML",
                message_thread_id=state.thread_id,
            )
        except TelegramError as exc:
            logger.warning("Failed to reach %s in chat %s: %s", user_id, state.chat_id, exc)

    async def _publish_board(
        self, board: Board, *, highlight: Optional[Tuple[int, int]], caption: str
    ) -> None:
        """Send a brand new board or update the existing image message."""

        state = self._state
        send_photo = getattr(self._bot, "send_photo", None)
        if not callable(send_photo):
            await self._bot.send_message(
                state.chat_id,
                f"{caption}\n{RENDERER.render_text(board)}",
                parse_mode="HTML",
                message_thread_id=state.thread_id,
            )
            return
        payload = RENDERER.render_board_image(board, highlight=highlight).getvalue()

        def _build_file() -> InputFile:
            return InputFile(BytesIO(payload), filename="tictactoe_board.png")

        edit_media = getattr(self._bot, "edit_message_media", None)
        if state.board_message_id and callable(edit_media):
            try:
                await edit_media(
                    chat_id=state.chat_id,
                    message_id=state.board_message_id,
                    media=InputMediaPhoto(media=_build_file(), caption=caption, parse_mode="HTML"),
                )
                return
            except TelegramError:
                state.board_message_id = None
        try:
            sent = await send_photo(
                state.chat_id,
                photo=_build_file(),
                caption=caption,
                parse_mode="HTML",
                message_thread_id=state.thread_id,
            )
        except TelegramError as exc:
            logger.warning("Failed to send board image to chat %s: %s", state.chat_id, exc)
            return
        state.board_message_id = sent.message_id


def create_session(
    state: GameState,
    context: ContextTypes.DEFAULT_TYPE,
    settings: SessionSettings,
    *,
    rng: Optional[random.Random] = None,
    manager: GameStateManager = STATE_MANAGER,
) -> SessionCoordinator:
    """Wire a coordinator to the chat, the job queue and the manager."""

    coordinator = SessionCoordinator(
        JobQueueScheduler(getattr(context, "job_queue", None), state.game_id),
        ChatBroadcaster(getattr(context, "bot", None), state),
        ManagerLifecycle(manager, state.game_id),
        settings=settings,
        rng=rng,
        session_id=state.game_id,
    )
    state.coordinator = coordinator
    return coordinator


__all__ = [
    "ChatBroadcaster",
    "JobQueueScheduler",
    "ManagerLifecycle",
    "build_board_keyboard",
    "create_session",
    "describe_event",
    "scheduled_action_job",
]
