"""In-memory registry of tic-tac-toe lobbies and running games."""

from __future__ import annotations

import logging
from secrets import token_urlsafe
from typing import Dict, List, Optional, Tuple

from .models import GameState

GameKey = Tuple[int, int]


class GameStateManager:
    """Index games by id, by chat/thread and by join code.

    Nothing is written to disk; a game disappears as soon as it is dropped.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)
        self._active_games: Dict[str, GameState] = {}
        self._chat_index: Dict[GameKey, str] = {}
        self._join_codes: Dict[str, str] = {}

    # Creation helpers -------------------------------------------------
    def create_lobby(self, host_id: int, chat_id: int, thread_id: Optional[int] = None) -> GameState:
        """Allocate a new lobby bound to the provided chat."""

        game_id = token_urlsafe(8)
        state = GameState(game_id=game_id, host_id=host_id, chat_id=chat_id, thread_id=thread_id)
        self._active_games[game_id] = state
        self._chat_index[(chat_id, thread_id or 0)] = game_id
        self._logger.info("Created tic-tac-toe lobby %s in chat %s", game_id, chat_id)
        return state

    def ensure_join_code(self, state: GameState) -> str:
        """Attach a reusable join code to the lobby."""

        if state.join_code and state.join_code in self._join_codes:
            return state.join_code
        code = token_urlsafe(4)
        self._join_codes[code] = state.game_id
        state.join_code = code
        return code

    # Lookup helpers ---------------------------------------------------
    def get_by_chat(self, chat_id: int, thread_id: Optional[int]) -> Optional[GameState]:
        key = (chat_id, thread_id or 0)
        game_id = self._chat_index.get(key)
        return self._active_games.get(game_id) if game_id else None

    def get_by_id(self, game_id: str) -> Optional[GameState]:
        return self._active_games.get(game_id)

    def get_by_join_code(self, join_code: str) -> Optional[GameState]:
        game_id = self._join_codes.get(join_code)
        return self._active_games.get(game_id) if game_id else None

    def games(self) -> List[GameState]:
        return list(self._active_games.values())

    def has_join_code(self, join_code: str) -> bool:
        return join_code in self._join_codes

    def find_by_player(self, user_id: int) -> Optional[GameState]:
        """Return the first game that seats the provided player."""

        for state in self._active_games.values():
            coordinator = state.coordinator
            if coordinator and coordinator.participant(user_id):
                return state
        return None

    # Mutation helpers -------------------------------------------------
    def detach_chat(self, chat_id: int) -> List[GameState]:
        """Unbind and return every game registered for the chat."""

        detached: List[GameState] = []
        keys = [key for key in self._chat_index if key[0] == chat_id]
        for key in keys:
            game_id = self._chat_index.pop(key, None)
            if not game_id:
                continue
            state = self._active_games.get(game_id)
            self.drop_game(game_id)
            if state:
                detached.append(state)
        return detached

    def drop_game(self, game_id: str) -> None:
        """Remove a single game and its join codes."""

        state = self._active_games.pop(game_id, None)
        if not state:
            return
        key = (state.chat_id, state.thread_id or 0)
        if self._chat_index.get(key) == game_id:
            self._chat_index.pop(key, None)
        stale_codes = [code for code, gid in self._join_codes.items() if gid == game_id]
        for code in stale_codes:
            self._join_codes.pop(code, None)
        self._logger.info("Dropped tic-tac-toe game %s", game_id)

    def reset(self) -> None:
        """Clear all stored data (used in tests)."""

        self._active_games.clear()
        self._chat_index.clear()
        self._join_codes.clear()

    def __len__(self) -> int:
        return len(self._active_games)


STATE_MANAGER = GameStateManager()

__all__ = ["GameStateManager", "STATE_MANAGER"]
