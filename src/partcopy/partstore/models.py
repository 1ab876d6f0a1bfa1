"""Data model types for the part store.

These dataclasses represent the per-session part records and the small
result containers returned by store reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SessionState(str, Enum):
    """Lifecycle of one upload session: open -> closing -> closed."""

    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range [start, end] of the source object."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def header(self) -> str:
        """Return the HTTP Range header value for this range."""
        return f"bytes={self.start}-{self.end}"


@dataclass
class PartRecord:
    """Durable record of one part's byte range and completion status.

    Attributes:
        part_index: Zero-based index, unique within a session.
        byte_start: First byte of the range (inclusive).
        byte_end: Last byte of the range (inclusive).
        complete: Whether the destination has acknowledged the part.
        etag: Destination-assigned ETag, set once complete.
        part_number: Destination part number (part_index + 1), set once complete.
    """

    part_index: int
    byte_start: int
    byte_end: int
    complete: bool = False
    etag: str | None = None
    part_number: int | None = None

    @property
    def byte_range(self) -> ByteRange:
        return ByteRange(self.byte_start, self.byte_end)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire (camelCase) representation of the record."""
        return {
            "partIndex": self.part_index,
            "byteStart": self.byte_start,
            "byteEnd": self.byte_end,
            "complete": self.complete,
            "etag": self.etag,
            "partNumber": self.part_number,
        }


@dataclass(frozen=True)
class PartCounts:
    """Derived session progress: total parts and how many are complete."""

    total: int
    completed: int

    @property
    def all_complete(self) -> bool:
        return self.total > 0 and self.completed == self.total


@dataclass(frozen=True)
class CompletedPart:
    """An (etag, part_number) pair as sent to complete-multipart-upload."""

    etag: str
    part_number: int

    def to_dict(self) -> dict[str, Any]:
        return {"etag": self.etag, "partNumber": self.part_number}


@dataclass
class SessionSummary:
    """One row of a session listing, used by diagnostics.

    Attributes:
        session_id: Stable session digest.
        bucket: Source bucket.
        key: Object key.
        upload_id: Destination upload id.
        state: Current session state.
        total: Number of part records.
        completed: Number of complete part records.
        created_at: ISO 8601 timestamp of the first part insert.
    """

    session_id: str
    bucket: str
    key: str
    upload_id: str
    state: SessionState
    total: int = 0
    completed: int = 0
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "bucket": self.bucket,
            "key": self.key,
            "uploadId": self.upload_id,
            "state": self.state.value,
            "total": self.total,
            "completed": self.completed,
            "createdAt": self.created_at,
        }
