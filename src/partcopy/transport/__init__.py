"""Queue transports for partcopy."""

from typing import TYPE_CHECKING

from partcopy.transport.base import Delivery, MessageQueue

if TYPE_CHECKING:
    from partcopy.config import QueueConfig

__all__ = [
    "create_message_queue",
    "Delivery",
    "MessageQueue",
]


def create_message_queue(config: "QueueConfig") -> MessageQueue:
    """Create a queue transport based on configuration.

    Raises:
        ValueError: If the engine is unknown.
    """
    engine = config.engine

    if engine == "sqlite":
        from partcopy.transport.sqlite import SQLiteMessageQueue

        return SQLiteMessageQueue(
            config.sqlite.path,
            visibility_timeout=config.visibility_timeout_seconds,
        )

    elif engine == "memory":
        from partcopy.transport.memory import MemoryMessageQueue

        return MemoryMessageQueue(visibility_timeout=config.visibility_timeout_seconds)

    else:
        raise ValueError(f"Unknown queue engine: {engine}")
