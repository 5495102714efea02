"""Session settings read once when a game is created."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

LOGGER = logging.getLogger(__name__)

DEFAULT_TIME_PER_MOVE = 30.0
DEFAULT_LOBBY_TIMEOUT = 600.0
TIME_PER_MOVE_ENV = "TICTACTOE_TIME_PER_MOVE"
LOBBY_TIMEOUT_ENV = "TICTACTOE_LOBBY_TIMEOUT"
FIXED_STARTER_ENV = "TICTACTOE_FIXED_STARTER"


def _parse_seconds(raw: Optional[str], source: str, default: float) -> float:
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        LOGGER.warning("Ignoring non-numeric %s=%r", source, raw)
        return default
    if not math.isfinite(value) or value <= 0:
        LOGGER.warning("Ignoring non-positive or non-finite %s=%r", source, raw)
        return default
    return value


def _parse_user_id(raw: Optional[str], source: str) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid %s=%r", source, raw)
        return None


@dataclass(frozen=True, slots=True)
class SessionSettings:
    """Per-session knobs.

    ``lobby_timeout`` closes a lobby that never found a second player.
    ``fixed_starter`` is a debugging hook: when it names one of the two
    participants, that participant always moves first instead of a random one.
    """

    time_per_move: float = DEFAULT_TIME_PER_MOVE
    lobby_timeout: float = DEFAULT_LOBBY_TIMEOUT
    fixed_starter: Optional[int] = None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> SessionSettings:
    """Read settings from the process environment."""

    env = os.environ if environ is None else environ
    return SessionSettings(
        time_per_move=_parse_seconds(env.get(TIME_PER_MOVE_ENV), TIME_PER_MOVE_ENV, DEFAULT_TIME_PER_MOVE),
        lobby_timeout=_parse_seconds(env.get(LOBBY_TIMEOUT_ENV), LOBBY_TIMEOUT_ENV, DEFAULT_LOBBY_TIMEOUT),
        fixed_starter=_parse_user_id(env.get(FIXED_STARTER_ENV), FIXED_STARTER_ENV),
    )


__all__ = ["DEFAULT_LOBBY_TIMEOUT", "DEFAULT_TIME_PER_MOVE", "SessionSettings", "load_settings"]
