"""Dataclasses describing a tic-tac-toe lobby hosted in a Telegram chat."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from ..session.coordinator import SessionCoordinator


@dataclass(slots=True)
class GameState:
    """Chat bindings and display data around one session coordinator."""

    game_id: str
    host_id: int
    chat_id: int
    thread_id: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    names: Dict[int, str] = field(default_factory=dict)
    join_code: Optional[str] = None
    lobby_message_id: Optional[int] = None
    board_message_id: Optional[int] = None
    coordinator: Optional["SessionCoordinator"] = None

    def display_name(self, user_id: Optional[int]) -> str:
        if user_id is None:
            return "—"
        return self.names.get(user_id) or str(user_id)

    @property
    def has_started(self) -> bool:
        coordinator = self.coordinator
        return bool(coordinator and coordinator.turn_holder is not None)
