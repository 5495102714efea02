"""Transport-agnostic events exchanged between a session and its players."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

GAME_FINISHED = "GAME_FINISHED"
GAME_NOT_STARTED = "GAME_NOT_STARTED"
NOT_YOUR_TURN = "NOT_YOUR_TURN"
MALFORMED_MESSAGE = "MALFORMED_MESSAGE"
ROOM_FULL = "ROOM_FULL"
ALREADY_JOINED = "ALREADY_JOINED"


@dataclass(frozen=True, slots=True)
class Move:
    """Inbound move request."""

    row: int
    col: int
    mark: str


@dataclass(frozen=True, slots=True)
class Turn:
    participant_id: int
    time_left: float
    mark: str


@dataclass(frozen=True, slots=True)
class PlayerMove:
    participant_id: int
    row: int
    col: int
    mark: str


@dataclass(frozen=True, slots=True)
class End:
    winner_id: Optional[int]


@dataclass(frozen=True, slots=True)
class Error:
    code: str
    message: str


@dataclass(frozen=True, slots=True)
class TimeoutPayload:
    """Data attached to an armed forfeit action.

    ``winner_id`` is fixed when the action is scheduled; ``generation``
    identifies which arming produced it.
    """

    winner_id: int
    generation: int


OutboundEvent = Union[Turn, PlayerMove, End, Error]


class SessionError(Exception):
    """A rejected request that is reported back to its sender only."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class MalformedMessage(SessionError):
    def __init__(self, message: str) -> None:
        super().__init__(MALFORMED_MESSAGE, message)


def _coerce_index(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise MalformedMessage(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise MalformedMessage(f"{field_name} must be an integer")


def parse_move(message: Union[Move, Mapping[str, Any], str], default_mark: Optional[str] = None) -> Move:
    """Turn an inbound payload into a :class:`Move`.

    Accepts an existing ``Move``, a mapping with ``row``/``col``/``mark`` keys
    or a ``"row col [mark]"`` string. Indices are 0-based. ``default_mark`` is
    used when the payload does not name one.
    """

    if isinstance(message, Move):
        return message
    if isinstance(message, Mapping):
        if "row" not in message or "col" not in message:
            raise MalformedMessage("move needs row and col")
        row = _coerce_index(message["row"], "row")
        col = _coerce_index(message["col"], "col")
        mark = message.get("mark", default_mark)
    elif isinstance(message, str):
        parts = message.split()
        if len(parts) not in (2, 3):
            raise MalformedMessage("expected: <row> <col> [mark]")
        row = _coerce_index(parts[0], "row")
        col = _coerce_index(parts[1], "col")
        mark = parts[2] if len(parts) == 3 else default_mark
    else:
        raise MalformedMessage("unsupported message")
    if not isinstance(mark, str) or not mark:
        raise MalformedMessage("move needs a mark")
    # unknown marks are left for the board to reject
    return Move(row=row, col=col, mark=mark.upper())


__all__ = [
    "ALREADY_JOINED",
    "End",
    "Error",
    "GAME_FINISHED",
    "GAME_NOT_STARTED",
    "MALFORMED_MESSAGE",
    "MalformedMessage",
    "Move",
    "NOT_YOUR_TURN",
    "OutboundEvent",
    "PlayerMove",
    "ROOM_FULL",
    "SessionError",
    "TimeoutPayload",
    "Turn",
    "parse_move",
]
