import asyncio
import logging
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

sys.path.append(str(Path(__file__).resolve().parents[1]))

from fastapi.testclient import TestClient
from telegram.ext import Application, CallbackQueryHandler, CommandHandler

import app as root_app
import tictactoe_game
from shared.logging_utils import RedactingFormatter, collect_sensitive_values
from tictactoe_game.state.manager import STATE_MANAGER


class DummyMessage:
    def __init__(self, chat_id: int, user_id: int, text: str = "") -> None:
        self.chat_id = chat_id
        self.chat = SimpleNamespace(id=chat_id, type="group")
        self.message_thread_id = None
        self.text = text
        self.from_user = SimpleNamespace(id=user_id)
        self.replies = []

    async def reply_text(self, text: str, **kwargs):
        self.replies.append((text, kwargs))
        return SimpleNamespace(message_id=1)


def _update_for(message: DummyMessage, user_id: int, name: str = "Alice") -> SimpleNamespace:
    return SimpleNamespace(
        message=message,
        effective_message=message,
        effective_chat=message.chat,
        effective_user=SimpleNamespace(id=user_id, full_name=name, username=name.lower()),
    )


def test_start_without_code_greets():
    async def run():
        message = DummyMessage(601, 501, text="/start")
        context = SimpleNamespace(args=[], user_data={}, bot=None)

        await root_app.start(_update_for(message, 501), context)

        assert message.replies, "start command should produce a reply"
        text, _ = message.replies[-1]
        assert "/tictactoe" in text

    asyncio.run(run())


def test_start_with_invite_code_joins_lobby():
    async def run():
        bot = SimpleNamespace(send_message=AsyncMock(return_value=SimpleNamespace(message_id=3)))
        host_message = DummyMessage(700, 1, text="/tictactoe")
        context = SimpleNamespace(args=[], user_data={}, bot=bot, job_queue=None)
        await tictactoe_game.newgame(_update_for(host_message, 1), context)
        state = tictactoe_game.get_game(700)
        assert state is not None

        guest_message = DummyMessage(2, 2, text=f"/start {state.join_code}")
        guest_context = SimpleNamespace(args=[state.join_code], user_data={}, bot=bot, job_queue=None)
        await root_app.start(_update_for(guest_message, 2, name="Bob"), guest_context)

        assert state.coordinator.participant(2) is not None
        assert tictactoe_game.find_game_for_player(2) is state
        assert "Вы в игре" in guest_message.replies[-1][0]
        # without a job queue the game still starts, only unarmed
        assert state.coordinator.pending_timeout is None

    asyncio.run(run())


def test_register_handlers_marks_gameplay_non_blocking():
    application = Application.builder().token("123:ABC").build()

    tictactoe_game.register_handlers(application)

    handlers = application.handlers.get(0, [])
    commands = {
        command: handler
        for handler in handlers
        if isinstance(handler, CommandHandler)
        for command in handler.commands
    }
    assert {"tictactoe", "newgame", "join", "move", "board", "quit", "help"} <= set(commands)
    assert commands["move"].block is False
    callbacks = [handler for handler in handlers if isinstance(handler, CallbackQueryHandler)]
    assert len(callbacks) == 2
    assert all(handler.block is False for handler in callbacks)


def test_package_exports_resolve():
    for name in tictactoe_game.__all__:
        assert hasattr(tictactoe_game, name), name
    assert not hasattr(tictactoe_game, "reset_for_chat")
    assert not hasattr(tictactoe_game.SessionSettings, "from_metadata")


def test_healthz_and_root():
    STATE_MANAGER.create_lobby(1, 10)
    client = TestClient(root_app.app)

    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.head("/healthz").status_code == 200
    assert client.get("/").json()["games"] == 1


def test_webhook_rejects_wrong_secret(monkeypatch):
    monkeypatch.setattr(root_app, "WEBHOOK_SECRET", "expected")
    client = TestClient(root_app.app)

    response = client.post(
        root_app.WEBHOOK_PATH,
        json={"update_id": 1},
        headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
    )

    assert response.status_code == 403


def test_redacting_formatter_masks_secrets(monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:SECRET")
    secrets = collect_sensitive_values(["hook-secret-value"])
    formatter = RedactingFormatter(logging.Formatter("%(message)s"), secrets)
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "token=%s hook=%s", ("123:SECRET", "hook-secret-value"), None)

    rendered = formatter.format(record)

    assert "123:SECRET" not in rendered
    assert "hook-secret-value" not in rendered
    assert rendered.count("[REDACTED]") == 2
