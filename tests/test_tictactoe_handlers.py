"""Telegram-facing tests: handlers, chat adapters, settings and rendering."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from telegram.error import Forbidden

from tictactoe_game.config import DEFAULT_LOBBY_TIMEOUT, DEFAULT_TIME_PER_MOVE, SessionSettings, load_settings
from tictactoe_game.handlers import gameplay, lobby
from tictactoe_game.rendering import BoardRenderer
from tictactoe_game.services import (
    ChatBroadcaster,
    JobQueueScheduler,
    ManagerLifecycle,
    build_board_keyboard,
    describe_event,
    scheduled_action_job,
)
from tictactoe_game.session import (
    LOBBY_EXPIRY_ACTION,
    TIMEOUT_ACTION,
    End,
    PlayerMove,
    SessionPhase,
    TimeoutPayload,
    Turn,
)
from tictactoe_game.state import Board
from tictactoe_game.state.manager import STATE_MANAGER

CHAT_ID = 100
ALICE = 1
BOB = 2


class _DummyJob:
    def __init__(self, callback, when, data, name) -> None:
        self.callback = callback
        self.when = when
        self.data = data
        self.name = name
        self.removed = False

    def schedule_removal(self) -> None:
        self.removed = True


class _DummyJobQueue:
    def __init__(self) -> None:
        self.jobs: list[_DummyJob] = []

    def run_once(self, callback, when, data=None, name=None):
        job = _DummyJob(callback, when, data, name)
        self.jobs.append(job)
        return job

    def get_jobs_by_name(self, name: str) -> list[_DummyJob]:
        return [job for job in self.jobs if job.name == name and not job.removed]

    def live(self) -> list[_DummyJob]:
        return [job for job in self.jobs if not job.removed]


def _build_bot() -> SimpleNamespace:
    return SimpleNamespace(send_message=AsyncMock(return_value=SimpleNamespace(message_id=7)))


def _build_context(bot=None, job_queue=None, args=None) -> SimpleNamespace:
    return SimpleNamespace(
        bot=bot or _build_bot(),
        job_queue=job_queue if job_queue is not None else _DummyJobQueue(),
        args=args or [],
        user_data={},
    )


def _build_user(user_id: int, name: str) -> SimpleNamespace:
    return SimpleNamespace(id=user_id, full_name=name, username=name.lower())


def _build_update(user_id: int, name: str, *, chat_id: int = CHAT_ID) -> SimpleNamespace:
    chat = SimpleNamespace(id=chat_id)
    message = SimpleNamespace(reply_text=AsyncMock(), chat=chat, message_thread_id=None)
    return SimpleNamespace(
        effective_message=message,
        effective_chat=chat,
        effective_user=_build_user(user_id, name),
    )


def _build_query_update(data: str, user_id: int, name: str) -> SimpleNamespace:
    query = SimpleNamespace(data=data, from_user=_build_user(user_id, name), answer=AsyncMock())
    return SimpleNamespace(callback_query=query)


def _sent_texts(bot) -> list[str]:
    return [call.args[1] for call in bot.send_message.await_args_list]


@pytest.fixture
def fixed_alice(monkeypatch) -> None:
    monkeypatch.setenv("TICTACTOE_FIXED_STARTER", str(ALICE))
    monkeypatch.setenv("TICTACTOE_TIME_PER_MOVE", "20")


async def _start_game(context):
    await lobby.newgame(_build_update(ALICE, "Alice"), context)
    state = STATE_MANAGER.get_by_chat(CHAT_ID, None)
    await lobby.join_callback(_build_query_update(f"ttt:join:{state.game_id}", BOB, "Bob"), context)
    return state


# Settings -------------------------------------------------------------------


def test_load_settings_reads_environment() -> None:
    settings = load_settings({"TICTACTOE_TIME_PER_MOVE": "12.5", "TICTACTOE_FIXED_STARTER": "42"})

    assert settings == SessionSettings(time_per_move=12.5, fixed_starter=42)
    assert settings.lobby_timeout == DEFAULT_LOBBY_TIMEOUT


@pytest.mark.parametrize("raw", ["", "soon", "0", "-3", "nan", "inf", "-inf", "1e400"])
def test_load_settings_falls_back_on_bad_time(raw: str) -> None:
    settings = load_settings(
        {
            "TICTACTOE_TIME_PER_MOVE": raw,
            "TICTACTOE_LOBBY_TIMEOUT": raw,
            "TICTACTOE_FIXED_STARTER": "alice",
        }
    )

    assert settings.time_per_move == DEFAULT_TIME_PER_MOVE
    assert settings.lobby_timeout == DEFAULT_LOBBY_TIMEOUT
    assert settings.fixed_starter is None


def test_turn_text_renders_with_fallback_time() -> None:
    state = STATE_MANAGER.create_lobby(ALICE, CHAT_ID)
    settings = load_settings({"TICTACTOE_TIME_PER_MOVE": "nan"})

    text = describe_event(state, Turn(ALICE, settings.time_per_move, "X"))

    assert "На ход 30 с." in text


# Rendering ------------------------------------------------------------------


def test_render_text_and_cell_labels() -> None:
    renderer = BoardRenderer()
    board = Board()
    board.apply_move(0, 0, "X")
    board.apply_move(1, 1, "O")

    assert renderer.render_text(board) == "❌⬜⬜\n⬜⭕⬜\n⬜⬜⬜"
    assert renderer.render_cell_label(board, 0, 0) == "❌"
    assert renderer.render_cell_label(board, 2, 1) == "3·2"


def test_render_board_image_produces_png() -> None:
    board = Board()
    board.apply_move(2, 2, "X")

    buffer = BoardRenderer().render_board_image(board, highlight=(2, 2))

    assert buffer.getvalue().startswith(b"\x89PNG")


def test_board_keyboard_encodes_moves() -> None:
    board = Board()
    board.apply_move(0, 1, "X")

    keyboard = build_board_keyboard("g1", board)

    rows = keyboard.inline_keyboard
    assert len(rows) == 3 and all(len(row) == 3 for row in rows)
    assert rows[0][1].text == "❌"
    assert rows[2][0].callback_data == "ttt:move:g1:2:0"


# Chat adapters --------------------------------------------------------------


def test_job_queue_scheduler_replaces_and_cancels_jobs() -> None:
    queue = _DummyJobQueue()
    scheduler = JobQueueScheduler(queue, "g1")

    scheduler.schedule(TIMEOUT_ACTION, "first", 10)
    scheduler.schedule(TIMEOUT_ACTION, "second", 10)

    live = queue.live()
    assert [job.data["payload"] for job in live] == ["second"]
    assert live[0].name == "ttt_g1_move_timeout"
    assert live[0].data == {"game_id": "g1", "action": TIMEOUT_ACTION, "payload": "second"}

    scheduler.schedule("reminder", None, 5)
    scheduler.cancel_all()
    assert queue.live() == []


def test_job_queue_scheduler_without_queue_raises() -> None:
    scheduler = JobQueueScheduler(None, "g1")

    with pytest.raises(RuntimeError):
        scheduler.schedule(TIMEOUT_ACTION, None, 1)
    scheduler.cancel_all()


def test_manager_lifecycle_drops_game() -> None:
    state = STATE_MANAGER.create_lobby(ALICE, CHAT_ID)
    code = STATE_MANAGER.ensure_join_code(state)

    ManagerLifecycle(STATE_MANAGER, state.game_id).destroy()

    assert STATE_MANAGER.get_by_id(state.game_id) is None
    assert STATE_MANAGER.get_by_chat(CHAT_ID, None) is None
    assert not STATE_MANAGER.has_join_code(code)


def test_describe_event_uses_display_names() -> None:
    state = STATE_MANAGER.create_lobby(ALICE, CHAT_ID)
    state.names = {ALICE: "Alice", BOB: "<Bob>"}

    assert "<b>Alice</b> (X)" in describe_event(state, Turn(ALICE, 30.0, "X"))
    assert "&lt;Bob&gt; ставит O в клетку 2·3" in describe_event(state, PlayerMove(BOB, 1, 2, "O"))
    assert "Победитель" in describe_event(state, End(ALICE))
    assert "без победителя" in describe_event(state, End(None))


@pytest.mark.anyio
async def test_private_error_falls_back_to_chat_mention() -> None:
    state = STATE_MANAGER.create_lobby(ALICE, CHAT_ID)
    state.names[BOB] = "Bob"
    bot = SimpleNamespace(send_message=AsyncMock(side_effect=[Forbidden("blocked"), None]))

    await ChatBroadcaster(bot, state).send_error(BOB, "CELL_OCCUPIED", "square is not empty")

    first, second = bot.send_message.await_args_list
    assert first.args[0] == BOB
    assert second.args[0] == CHAT_ID
    assert "tg://user?id=2" in second.args[1]
    assert "Клетка уже занята." in second.args[1]


@pytest.mark.anyio
async def test_board_image_is_sent_then_edited(fixed_alice) -> None:
    bot = SimpleNamespace(
        send_message=AsyncMock(return_value=SimpleNamespace(message_id=7)),
        send_photo=AsyncMock(return_value=SimpleNamespace(message_id=55)),
        edit_message_media=AsyncMock(),
    )
    context = _build_context(bot=bot)
    state = await _start_game(context)

    await gameplay.move_callback(_build_query_update(f"ttt:move:{state.game_id}:0:0", ALICE, "Alice"), context)
    await gameplay.move_callback(_build_query_update(f"ttt:move:{state.game_id}:1:1", BOB, "Bob"), context)

    assert bot.send_photo.await_count == 1
    assert bot.edit_message_media.await_count == 1
    assert state.board_message_id == 55
    assert bot.edit_message_media.await_args.kwargs["message_id"] == 55


# Handlers -------------------------------------------------------------------


@pytest.mark.anyio
async def test_newgame_opens_lobby_and_seats_host(fixed_alice) -> None:
    context = _build_context()
    update = _build_update(ALICE, "Alice")

    await lobby.newgame(update, context)

    state = STATE_MANAGER.get_by_chat(CHAT_ID, None)
    assert state is not None
    assert state.join_code
    assert state.lobby_message_id == 7
    assert state.names == {ALICE: "Alice"}
    assert state.coordinator.phase is SessionPhase.WAITING
    assert state.coordinator.participant(ALICE) is not None
    assert state.join_code in _sent_texts(context.bot)[0]


@pytest.mark.anyio
async def test_lobby_expiry_job_closes_unjoined_lobby(fixed_alice) -> None:
    context = _build_context()
    await lobby.newgame(_build_update(ALICE, "Alice"), context)
    state = STATE_MANAGER.get_by_chat(CHAT_ID, None)
    (job,) = context.job_queue.live()
    assert job.data["action"] == LOBBY_EXPIRY_ACTION
    assert job.when == DEFAULT_LOBBY_TIMEOUT

    await scheduled_action_job(SimpleNamespace(job=job))

    assert state.coordinator.phase is SessionPhase.ENDED
    assert state.coordinator.winner_id is None
    assert "Лобби закрыто" in _sent_texts(context.bot)[-1]
    assert len(STATE_MANAGER) == 0


@pytest.mark.anyio
async def test_newgame_replacing_foreign_lobby_notifies_chat(fixed_alice) -> None:
    context = _build_context()
    await lobby.newgame(_build_update(ALICE, "Alice"), context)
    old = STATE_MANAGER.get_by_chat(CHAT_ID, None)
    update = _build_update(BOB, "Bob")

    await lobby.newgame(update, context)

    reply = update.effective_message.reply_text.await_args
    assert "Лобби игрока <b>Alice</b> закрыто" in reply.args[0]
    new = STATE_MANAGER.get_by_chat(CHAT_ID, None)
    assert new is not old and new.host_id == BOB
    assert old.coordinator.phase is SessionPhase.ENDED
    assert [job.data["game_id"] for job in context.job_queue.live()] == [new.game_id]


@pytest.mark.anyio
async def test_newgame_by_same_host_replaces_lobby_quietly(fixed_alice) -> None:
    context = _build_context()
    await lobby.newgame(_build_update(ALICE, "Alice"), context)
    update = _build_update(ALICE, "Alice")

    await lobby.newgame(update, context)

    update.effective_message.reply_text.assert_not_awaited()
    assert len(STATE_MANAGER) == 1


@pytest.mark.anyio
async def test_join_starts_game_and_arms_timeout_job(fixed_alice) -> None:
    context = _build_context()

    state = await _start_game(context)

    coordinator = state.coordinator
    assert coordinator.phase is SessionPhase.ACTIVE
    assert coordinator.turn_holder == ALICE
    assert "Ход игрока <b>Alice</b> (X)" in _sent_texts(context.bot)[-1]
    markup = context.bot.send_message.await_args.kwargs["reply_markup"]
    assert markup.inline_keyboard[0][0].callback_data == f"ttt:move:{state.game_id}:0:0"
    (job,) = context.job_queue.live()
    assert job.when == 20.0
    assert job.data["payload"] == TimeoutPayload(winner_id=BOB, generation=coordinator.pending_timeout)


@pytest.mark.anyio
async def test_join_command_uses_invite_code(fixed_alice) -> None:
    context = _build_context()
    await lobby.newgame(_build_update(ALICE, "Alice"), context)
    state = STATE_MANAGER.get_by_chat(CHAT_ID, None)
    update = _build_update(BOB, "Bob", chat_id=BOB)
    context.args = [state.join_code]

    await lobby.join_cmd(update, context)

    update.effective_message.reply_text.assert_awaited_once()
    assert "Вы в игре" in update.effective_message.reply_text.await_args.args[0]
    assert state.coordinator.phase is SessionPhase.ACTIVE


@pytest.mark.anyio
async def test_join_command_rejects_unknown_code() -> None:
    context = _build_context(args=["nope"])
    update = _build_update(BOB, "Bob")

    await lobby.join_cmd(update, context)

    assert "закрыта" in update.effective_message.reply_text.await_args.args[0]


@pytest.mark.anyio
async def test_third_player_is_not_seated(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)

    await lobby.join_callback(_build_query_update(f"ttt:join:{state.game_id}", 3, "Carol"), context)

    assert 3 not in state.names
    assert context.bot.send_message.await_args.args[0] == 3
    assert "два игрока" in context.bot.send_message.await_args.args[1]


@pytest.mark.anyio
async def test_newgame_refuses_while_game_is_running(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    update = _build_update(BOB, "Bob")

    await lobby.newgame(update, context)

    assert "уже идёт" in update.effective_message.reply_text.await_args.args[0]
    assert STATE_MANAGER.get_by_chat(CHAT_ID, None) is state


@pytest.mark.anyio
async def test_move_callback_applies_move_and_rearms_timer(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    update = _build_query_update(f"ttt:move:{state.game_id}:1:1", ALICE, "Alice")

    await gameplay.move_callback(update, context)

    update.callback_query.answer.assert_awaited_once_with()
    assert state.coordinator.board.cell(1, 1) == "X"
    assert state.coordinator.turn_holder == BOB
    (job,) = context.job_queue.live()
    assert job.data["payload"].winner_id == ALICE
    texts = _sent_texts(context.bot)
    assert any("Alice ставит X в клетку 2·2" in text for text in texts)
    assert "Ход игрока <b>Bob</b> (O)" in texts[-1]


@pytest.mark.anyio
async def test_move_callback_for_missing_game_alerts() -> None:
    update = _build_query_update("ttt:move:gone:0:0", ALICE, "Alice")

    await gameplay.move_callback(update, _build_context())

    update.callback_query.answer.assert_awaited_once_with("Партия уже завершена.", show_alert=True)


@pytest.mark.anyio
async def test_move_command_uses_one_based_coordinates(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    context.args = ["3", "1"]

    await gameplay.move_cmd(_build_update(ALICE, "Alice"), context)

    assert state.coordinator.board.cell(2, 0) == "X"


@pytest.mark.anyio
@pytest.mark.parametrize("args", [["a", "b"], ["1"], []])
async def test_move_command_rejects_bad_arguments(fixed_alice, args) -> None:
    context = _build_context()
    state = await _start_game(context)
    update = _build_update(ALICE, "Alice")
    context.args = args

    await gameplay.move_cmd(update, context)

    assert "Нужен формат" in update.effective_message.reply_text.await_args.args[0]
    assert state.coordinator.board.move_count == 0


@pytest.mark.anyio
async def test_move_out_of_turn_notifies_sender_privately(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    context.args = ["1", "1"]

    await gameplay.move_cmd(_build_update(BOB, "Bob"), context)

    call = context.bot.send_message.await_args
    assert call.args[0] == BOB
    assert "Сейчас ход другого игрока." in call.args[1]
    assert state.coordinator.board.move_count == 0


@pytest.mark.anyio
async def test_fired_timeout_job_ends_game(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    (job,) = context.job_queue.live()

    await scheduled_action_job(SimpleNamespace(job=job))

    assert state.coordinator.winner_id == BOB
    assert "Победитель: <b>Bob</b>" in _sent_texts(context.bot)[-1]
    assert len(STATE_MANAGER) == 0
    assert context.job_queue.live() == []


@pytest.mark.anyio
async def test_stale_timeout_job_is_ignored(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    (stale,) = context.job_queue.live()
    await gameplay.move_callback(_build_query_update(f"ttt:move:{state.game_id}:0:0", ALICE, "Alice"), context)

    await scheduled_action_job(SimpleNamespace(job=stale))

    assert state.coordinator.phase is SessionPhase.ACTIVE
    assert STATE_MANAGER.get_by_id(state.game_id) is state


@pytest.mark.anyio
async def test_timeout_job_for_dropped_game_is_ignored() -> None:
    job = SimpleNamespace(data={"game_id": "gone", "action": TIMEOUT_ACTION, "payload": None})

    await scheduled_action_job(SimpleNamespace(job=job))
    await scheduled_action_job(SimpleNamespace(job=None))


@pytest.mark.anyio
async def test_quit_mid_game_awards_opponent(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    update = _build_update(BOB, "Bob")

    await lobby.quit_cmd(update, context)

    assert "поражение" in update.effective_message.reply_text.await_args.args[0]
    assert state.coordinator.winner_id == ALICE
    assert "Победитель: <b>Alice</b>" in _sent_texts(context.bot)[-1]
    assert len(STATE_MANAGER) == 0


@pytest.mark.anyio
async def test_quit_in_lobby_closes_it(fixed_alice) -> None:
    context = _build_context()
    await lobby.newgame(_build_update(ALICE, "Alice"), context)
    update = _build_update(ALICE, "Alice")

    await lobby.quit_cmd(update, context)

    assert update.effective_message.reply_text.await_args.args[0] == "Вы закрыли лобби."
    assert "Лобби закрыто" in _sent_texts(context.bot)[-1]
    assert len(STATE_MANAGER) == 0


@pytest.mark.anyio
async def test_quit_without_game_explains() -> None:
    update = _build_update(ALICE, "Alice")

    await lobby.quit_cmd(update, _build_context())

    assert "не участвуете" in update.effective_message.reply_text.await_args.args[0]


@pytest.mark.anyio
async def test_board_command_shows_grid_and_turn(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    context.args = ["2", "2"]
    await gameplay.move_cmd(_build_update(ALICE, "Alice"), context)
    update = _build_update(BOB, "Bob")

    await lobby.board_cmd(update, context)

    text = update.effective_message.reply_text.await_args.args[0]
    assert "⬜⬜⬜\n⬜❌⬜\n⬜⬜⬜" in text
    assert "Ходит <b>Bob</b> (O)." in text
    assert state.coordinator.board.move_count == 1


@pytest.mark.anyio
async def test_close_chat_games_is_silent(fixed_alice) -> None:
    context = _build_context()
    state = await _start_game(context)
    sent = context.bot.send_message.await_count

    closed = await lobby.close_chat_games(CHAT_ID)

    assert closed == [state]
    assert state.coordinator.phase is SessionPhase.ENDED
    assert context.bot.send_message.await_count == sent
    assert context.job_queue.live() == []
