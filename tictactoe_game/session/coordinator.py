"""Turn sequencing, move timeouts and termination for one tic-tac-toe session."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from ..config import SessionSettings
from ..state.board import MARK_O, MARK_X, Board, BoardError
from .events import (
    ALREADY_JOINED,
    GAME_FINISHED,
    GAME_NOT_STARTED,
    NOT_YOUR_TURN,
    ROOM_FULL,
    End,
    Move,
    OutboundEvent,
    PlayerMove,
    SessionError,
    TimeoutPayload,
    Turn,
    parse_move,
)
from .interfaces import Broadcaster, RoomLifecycle, Scheduler

logger = logging.getLogger(__name__)

TIMEOUT_ACTION = "move_timeout"
LOBBY_EXPIRY_ACTION = "lobby_expired"
MAX_PARTICIPANTS = 2


class SessionPhase(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(slots=True)
class Participant:
    """A seated player; ``mark`` is assigned when the game starts."""

    user_id: int
    name: str
    mark: Optional[str] = None


class SessionCoordinator:
    """Drive a single game from the first join to its only ending.

    Every entry point runs under one ``asyncio.Lock`` so joins, moves, leaves
    and timer deliveries for the session are applied one at a time in arrival
    order. The coordinator never raises to its host: rejected requests go
    back to the sender through the broadcaster and infrastructure failures
    are logged.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        broadcaster: Broadcaster,
        lifecycle: RoomLifecycle,
        *,
        settings: Optional[SessionSettings] = None,
        rng: Optional[random.Random] = None,
        session_id: str = "",
    ) -> None:
        self.session_id = session_id
        self.settings = settings or SessionSettings()
        self.board = Board()
        self.participants: List[Participant] = []
        self.turn_holder: Optional[int] = None
        self.phase = SessionPhase.WAITING
        self.winner_id: Optional[int] = None
        self._scheduler = scheduler
        self._broadcaster = broadcaster
        self._lifecycle = lifecycle
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()
        self._generation = 0
        self._armed_generation: Optional[int] = None
        self._deadline: Optional[float] = None

    # Queries ----------------------------------------------------------
    @property
    def is_ended(self) -> bool:
        return self.phase is SessionPhase.ENDED

    @property
    def pending_timeout(self) -> Optional[int]:
        """Generation of the armed forfeit action, if any."""

        return self._armed_generation

    def participant(self, user_id: int) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def opponent(self, user_id: int) -> Optional[Participant]:
        if len(self.participants) < MAX_PARTICIPANTS:
            return None
        for participant in self.participants:
            if participant.user_id != user_id:
                return participant
        return None

    def time_left(self) -> float:
        """Seconds remaining for the current move."""

        if self._deadline is None:
            return self.settings.time_per_move
        remaining = self._deadline - asyncio.get_running_loop().time()
        return max(remaining, 0.0)

    # Entry points -----------------------------------------------------
    async def on_join(self, user_id: int, name: str = "") -> None:
        async with self._lock:
            existing = self.participant(user_id)
            if existing:
                if self.phase is SessionPhase.ACTIVE and self.turn_holder is not None:
                    await self._deliver_one(
                        user_id, Turn(self.turn_holder, self.time_left(), self.board.turn_mark)
                    )
                else:
                    await self._reject(user_id, ALREADY_JOINED, "already joined")
                return
            if self.is_ended or len(self.participants) >= MAX_PARTICIPANTS:
                await self._reject(user_id, ROOM_FULL, "room is full")
                return
            self.participants.append(Participant(user_id=user_id, name=name or str(user_id)))
            logger.info("Session %s: player %s joined", self.session_id, user_id)
            if len(self.participants) == MAX_PARTICIPANTS:
                await self._start()
            elif len(self.participants) == 1:
                self._schedule(LOBBY_EXPIRY_ACTION, None, self.settings.lobby_timeout)

    async def on_message(self, user_id: int, message: Any) -> None:
        async with self._lock:
            await self._handle_move(user_id, message)

    async def on_leave(self, user_id: int) -> None:
        async with self._lock:
            if self.is_ended or not self.participant(user_id):
                return
            remaining = self.opponent(user_id)
            logger.info("Session %s: player %s left", self.session_id, user_id)
            await self._end(remaining.user_id if remaining else None)

    async def on_scheduled_action(self, name: str, payload: Any) -> None:
        async with self._lock:
            if name == LOBBY_EXPIRY_ACTION:
                if self.phase is SessionPhase.WAITING:
                    logger.info("Session %s: lobby expired without an opponent", self.session_id)
                    await self._end(None)
                return
            if name != TIMEOUT_ACTION:
                logger.debug("Session %s: ignoring unknown action %s", self.session_id, name)
                return
            if self.phase is not SessionPhase.ACTIVE:
                logger.debug("Session %s: timeout fired while %s", self.session_id, self.phase.value)
                return
            if (
                not isinstance(payload, TimeoutPayload)
                or payload.generation != self._armed_generation
            ):
                logger.debug("Session %s: stale timeout %r", self.session_id, payload)
                return
            self._armed_generation = None
            logger.info(
                "Session %s: move timed out, %s wins by forfeit", self.session_id, payload.winner_id
            )
            await self._end(payload.winner_id)

    async def on_close(self) -> None:
        """Tear down without announcing a result; the host is already closing."""

        async with self._lock:
            if self.is_ended:
                return
            self.phase = SessionPhase.ENDED
            self._armed_generation = None
            self._deadline = None
            self._cancel_all()
            logger.info("Session %s: closed by host", self.session_id)

    # Transitions ------------------------------------------------------
    async def _start(self) -> None:
        starter = self._pick_starter()
        other = self.opponent(starter.user_id)
        if other is None:
            logger.error("Session %s: cannot start without an opponent", self.session_id)
            return
        self._cancel(LOBBY_EXPIRY_ACTION)
        starter.mark = MARK_X
        other.mark = MARK_O
        self.phase = SessionPhase.ACTIVE
        self.turn_holder = starter.user_id
        logger.info("Session %s: started, %s moves first", self.session_id, starter.user_id)
        await self._deliver_all(
            Turn(starter.user_id, self.settings.time_per_move, self.board.turn_mark)
        )
        self._arm_timeout(winner_id=other.user_id)

    def _pick_starter(self) -> Participant:
        fixed = self.settings.fixed_starter
        if fixed is not None:
            for participant in self.participants:
                if participant.user_id == fixed:
                    return participant
        return self.participants[self._rng.randrange(MAX_PARTICIPANTS)]

    async def _handle_move(self, user_id: int, message: Any) -> None:
        if self.is_ended or self.board.is_terminal:
            await self._reject(user_id, GAME_FINISHED, "game has finished")
            return
        if self.phase is SessionPhase.WAITING:
            await self._reject(user_id, GAME_NOT_STARTED, "waiting for an opponent")
            return
        if user_id != self.turn_holder:
            await self._reject(user_id, NOT_YOUR_TURN, "not your turn")
            return
        mover = self.participant(user_id)
        try:
            move: Move = parse_move(message, default_mark=mover.mark if mover else None)
        except SessionError as exc:
            await self._reject(user_id, exc.code, exc.message)
            return
        try:
            terminal = self.board.apply_move(move.row, move.col, move.mark)
        except BoardError as exc:
            await self._reject(user_id, exc.code, exc.message)
            return

        self._cancel_timeout()
        await self._deliver_all(PlayerMove(user_id, move.row, move.col, move.mark))
        if terminal and self.board.is_win():
            await self._end(user_id)
            return

        opponent = self.opponent(user_id)
        if opponent is None:
            logger.error("Session %s: move from %s without an opponent", self.session_id, user_id)
            return
        self.turn_holder = opponent.user_id
        await self._deliver_all(
            Turn(opponent.user_id, self.settings.time_per_move, self.board.turn_mark)
        )
        if self.board.is_draw():
            await self._end(None)
            return
        # stalling forfeits to the last mover
        self._arm_timeout(winner_id=user_id)

    async def _end(self, winner_id: Optional[int]) -> None:
        if self.is_ended:
            return
        self.phase = SessionPhase.ENDED
        self.winner_id = winner_id
        self._armed_generation = None
        self._deadline = None
        self._cancel_all()
        logger.info("Session %s: ended, winner=%s", self.session_id, winner_id)
        await self._deliver_all(End(winner_id))
        try:
            self._lifecycle.destroy()
        except Exception:
            logger.exception("Session %s: failed to release room", self.session_id)

    # Timer slot -------------------------------------------------------
    def _arm_timeout(self, *, winner_id: int) -> None:
        self._generation += 1
        payload = TimeoutPayload(winner_id=winner_id, generation=self._generation)
        delay = self.settings.time_per_move
        if not self._schedule(TIMEOUT_ACTION, payload, delay):
            self._armed_generation = None
            self._deadline = None
            return
        self._armed_generation = payload.generation
        self._deadline = asyncio.get_running_loop().time() + delay

    def _cancel_timeout(self) -> None:
        self._armed_generation = None
        self._deadline = None
        self._cancel(TIMEOUT_ACTION)

    def _schedule(self, name: str, payload: Any, delay: float) -> bool:
        try:
            self._scheduler.schedule(name, payload, delay)
        except Exception:
            logger.exception("Session %s: failed to schedule %s", self.session_id, name)
            return False
        return True

    def _cancel(self, name: str) -> None:
        try:
            self._scheduler.cancel(name)
        except Exception:
            logger.exception("Session %s: failed to cancel %s", self.session_id, name)

    def _cancel_all(self) -> None:
        try:
            self._scheduler.cancel_all()
        except Exception:
            logger.exception("Session %s: failed to cancel scheduled work", self.session_id)

    # Delivery ---------------------------------------------------------
    async def _deliver_all(self, event: OutboundEvent) -> None:
        try:
            await self._broadcaster.send_to_all(event)
        except Exception:
            logger.exception("Session %s: failed to broadcast %r", self.session_id, event)

    async def _deliver_one(self, user_id: int, event: OutboundEvent) -> None:
        try:
            await self._broadcaster.send_to_one(user_id, event)
        except Exception:
            logger.exception("Session %s: failed to send %r to %s", self.session_id, event, user_id)

    async def _reject(self, user_id: int, code: str, message: str) -> None:
        try:
            await self._broadcaster.send_error(user_id, code, message)
        except Exception:
            logger.exception("Session %s: failed to report %s to %s", self.session_id, code, user_id)


__all__ = [
    "LOBBY_EXPIRY_ACTION",
    "MAX_PARTICIPANTS",
    "Participant",
    "SessionCoordinator",
    "SessionPhase",
    "TIMEOUT_ACTION",
]
