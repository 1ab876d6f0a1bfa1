"""Abstract part store protocol for partcopy."""

from typing import Protocol

from partcopy.partstore.models import (
    ByteRange,
    CompletedPart,
    PartCounts,
    PartRecord,
    SessionState,
    SessionSummary,
)
from partcopy.session import SessionKey


class PartStore(Protocol):
    """Protocol defining the part store interface.

    Every operation is partitioned by a SessionKey, so two uploads never
    contend. Within a session, writes are serialized by the backend and
    reads always reflect current durable state.
    """

    async def init_db(self) -> None:
        """Initialize storage. Must be idempotent (safe on every startup)."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...

    async def upsert_part(self, session: SessionKey, index: int, byte_range: ByteRange) -> None:
        """Create or replace a pending part record.

        Calling this again with the same index and range leaves the store
        unchanged, including a record that is already complete. A different
        range replaces the record as pending.

        Args:
            session: Session the part belongs to.
            index: Zero-based part index.
            byte_range: Inclusive byte range of the part.
        """
        ...

    async def complete_part(
        self, session: SessionKey, index: int, etag: str, part_number: int
    ) -> bool:
        """Mark a part complete with its destination credentials.

        Re-applying the same arguments is a no-op. Applying a different etag
        to a complete part overwrites it without changing counts.

        Returns:
            True if this call moved the part from pending to complete.

        Raises:
            UnknownPart: If the part index does not exist for the session.
        """
        ...

    async def get_part(self, session: SessionKey, index: int) -> PartRecord | None:
        """Return one part record, or None if the index does not exist."""
        ...

    async def counts(self, session: SessionKey) -> PartCounts:
        """Return (total, completed) read from current durable state."""
        ...

    async def completed_parts_ordered(self, session: SessionKey) -> list[CompletedPart]:
        """Return (etag, part_number) of complete parts ascending by part number."""
        ...

    async def list_all(self, session: SessionKey) -> list[PartRecord]:
        """Return every part record of the session ordered by index."""
        ...

    async def begin_closing(self, session: SessionKey) -> bool:
        """Atomically move the session from open to closing.

        Succeeds only when the session has at least one part and every part
        is complete. Exactly one caller observes True.
        """
        ...

    async def reopen(self, session: SessionKey) -> bool:
        """Move the session from closing back to open. Returns True on transition.

        Releases a closing claim whose all-done message was never enqueued.
        """
        ...

    async def mark_closed(self, session: SessionKey) -> bool:
        """Move the session from closing to closed. Returns True on transition."""
        ...

    async def session_state(self, session: SessionKey) -> SessionState | None:
        """Return the session state, or None if the session has no records."""
        ...

    async def list_sessions(self, state: SessionState | None = None) -> list[SessionSummary]:
        """List sessions with their progress, optionally filtered by state."""
        ...
