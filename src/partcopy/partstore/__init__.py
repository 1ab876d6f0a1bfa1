"""Part store backends for partcopy."""

from typing import TYPE_CHECKING

from partcopy.partstore.models import (
    ByteRange,
    CompletedPart,
    PartCounts,
    PartRecord,
    SessionState,
    SessionSummary,
)
from partcopy.partstore.store import PartStore

if TYPE_CHECKING:
    from partcopy.config import PartStoreConfig

__all__ = [
    "ByteRange",
    "CompletedPart",
    "create_part_store",
    "PartCounts",
    "PartRecord",
    "PartStore",
    "SessionState",
    "SessionSummary",
]


def create_part_store(config: "PartStoreConfig") -> PartStore:
    """Create a part store instance based on configuration.

    Args:
        config: The part store configuration.

    Returns:
        A store instance implementing the PartStore protocol.

    Raises:
        ValueError: If the engine is unknown.
    """
    engine = config.engine

    if engine == "sqlite":
        from partcopy.partstore.sqlite import SQLitePartStore

        return SQLitePartStore(config.sqlite.path)

    elif engine == "memory":
        from partcopy.partstore.memory import MemoryPartStore

        return MemoryPartStore()

    else:
        raise ValueError(f"Unknown part store engine: {engine}")
