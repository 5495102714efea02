"""Service layer that hosts sessions inside Telegram."""

from .bridge import (
    ChatBroadcaster,
    JobQueueScheduler,
    ManagerLifecycle,
    build_board_keyboard,
    create_session,
    describe_event,
    scheduled_action_job,
)

__all__ = [
    "ChatBroadcaster",
    "JobQueueScheduler",
    "ManagerLifecycle",
    "build_board_keyboard",
    "create_session",
    "describe_event",
    "scheduled_action_job",
]
