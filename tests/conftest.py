"""Shared fixtures for the tic-tac-toe test-suite."""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from tictactoe_game.state.manager import STATE_MANAGER  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio only (Telegram handlers use asyncio)."""

    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_state_manager():
    """Ensure the singleton state manager is clean between tests."""

    STATE_MANAGER.reset()
    yield
    STATE_MANAGER.reset()
