"""Session coordination for tic-tac-toe games."""

from .coordinator import (
    LOBBY_EXPIRY_ACTION,
    MAX_PARTICIPANTS,
    TIMEOUT_ACTION,
    Participant,
    SessionCoordinator,
    SessionPhase,
)
from .events import End, Error, Move, PlayerMove, SessionError, TimeoutPayload, Turn, parse_move
from .interfaces import Broadcaster, RoomLifecycle, Scheduler

__all__ = [
    "Broadcaster",
    "End",
    "Error",
    "LOBBY_EXPIRY_ACTION",
    "MAX_PARTICIPANTS",
    "Move",
    "Participant",
    "PlayerMove",
    "RoomLifecycle",
    "Scheduler",
    "SessionCoordinator",
    "SessionError",
    "SessionPhase",
    "TIMEOUT_ACTION",
    "TimeoutPayload",
    "Turn",
    "parse_move",
]
