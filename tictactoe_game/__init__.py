"""Two-player tic-tac-toe sessions hosted in Telegram chats."""

from .config import SessionSettings, load_settings
from .handlers import newgame, quit_cmd, register_handlers, start_cmd
from .session import SessionCoordinator, SessionPhase
from .state import Board, GameState
from .state.manager import STATE_MANAGER


def get_game(chat_id: int, thread_id: int | None = None) -> GameState | None:
    """Public helper that proxies to the shared state manager."""

    return STATE_MANAGER.get_by_chat(chat_id, thread_id)


def find_game_for_player(user_id: int) -> GameState | None:
    """Resolve the active game that seats the provided user."""

    return STATE_MANAGER.find_by_player(user_id)


__all__ = [
    "Board",
    "GameState",
    "STATE_MANAGER",
    "SessionCoordinator",
    "SessionPhase",
    "SessionSettings",
    "find_game_for_player",
    "get_game",
    "load_settings",
    "newgame",
    "quit_cmd",
    "register_handlers",
    "start_cmd",
]
