"""Capabilities a session coordinator expects from its host."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from .events import OutboundEvent


class Scheduler(Protocol):
    """Named delayed actions scoped to one session."""

    def schedule(self, name: str, payload: Any, delay: float) -> None:
        ...

    def cancel(self, name: str) -> None:
        """Remove the pending action ``name``; no-op when absent."""

    def cancel_all(self) -> None:
        ...


class Broadcaster(Protocol):
    async def send_to_all(self, event: OutboundEvent) -> None:
        ...

    async def send_to_one(self, participant_id: int, event: OutboundEvent) -> None:
        ...

    async def send_error(self, participant_id: Optional[int], code: str, message: str) -> None:
        ...


class RoomLifecycle(Protocol):
    def destroy(self) -> None:
        """Release the session in the host; called once at termination."""


__all__ = ["Broadcaster", "RoomLifecycle", "Scheduler"]
