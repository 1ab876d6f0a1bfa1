"""In-memory part store for partcopy.

Useful for testing and single-process ephemeral runs. Data is lost on
restart. Each session is guarded by its own asyncio.Lock so that a write and
the reads that follow it in the same handler never interleave with another
writer of the same session.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from partcopy.errors import UnknownPart
from partcopy.partstore.models import (
    ByteRange,
    CompletedPart,
    PartCounts,
    PartRecord,
    SessionState,
    SessionSummary,
)
from partcopy.session import SessionKey


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


@dataclass
class _Session:
    key: SessionKey
    state: SessionState = SessionState.OPEN
    created_at: str = field(default_factory=_now_iso)
    parts: dict[int, PartRecord] = field(default_factory=dict)


class MemoryPartStore:
    """In-memory part store using Python dicts.

    No persistence. Records handed out are copies, so callers can never
    mutate store state behind its back.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, _Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, session: SessionKey) -> asyncio.Lock:
        return self._locks.setdefault(session.id, asyncio.Lock())

    async def init_db(self) -> None:
        pass

    async def close(self) -> None:
        self._sessions.clear()
        self._locks.clear()

    async def upsert_part(self, session: SessionKey, index: int, byte_range: ByteRange) -> None:
        async with self._lock(session):
            entry = self._sessions.setdefault(session.id, _Session(key=session))
            existing = entry.parts.get(index)
            if existing is not None and existing.byte_range == byte_range:
                return
            entry.parts[index] = PartRecord(
                part_index=index,
                byte_start=byte_range.start,
                byte_end=byte_range.end,
            )

    async def complete_part(
        self, session: SessionKey, index: int, etag: str, part_number: int
    ) -> bool:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            record = entry.parts.get(index) if entry is not None else None
            if record is None:
                raise UnknownPart(session.id, index)
            transitioned = not record.complete
            record.complete = True
            record.etag = etag
            record.part_number = part_number
            return transitioned

    async def get_part(self, session: SessionKey, index: int) -> PartRecord | None:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            record = entry.parts.get(index) if entry is not None else None
            return replace(record) if record is not None else None

    async def counts(self, session: SessionKey) -> PartCounts:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            if entry is None:
                return PartCounts(total=0, completed=0)
            completed = sum(1 for p in entry.parts.values() if p.complete)
            return PartCounts(total=len(entry.parts), completed=completed)

    async def completed_parts_ordered(self, session: SessionKey) -> list[CompletedPart]:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            if entry is None:
                return []
            done = [p for p in entry.parts.values() if p.complete]
            done.sort(key=lambda p: p.part_number)
            return [CompletedPart(etag=p.etag, part_number=p.part_number) for p in done]

    async def list_all(self, session: SessionKey) -> list[PartRecord]:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            if entry is None:
                return []
            return [replace(entry.parts[i]) for i in sorted(entry.parts)]

    async def begin_closing(self, session: SessionKey) -> bool:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            if entry is None or entry.state is not SessionState.OPEN:
                return False
            if not entry.parts or not all(p.complete for p in entry.parts.values()):
                return False
            entry.state = SessionState.CLOSING
            return True

    async def reopen(self, session: SessionKey) -> bool:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            if entry is None or entry.state is not SessionState.CLOSING:
                return False
            entry.state = SessionState.OPEN
            return True

    async def mark_closed(self, session: SessionKey) -> bool:
        async with self._lock(session):
            entry = self._sessions.get(session.id)
            if entry is None or entry.state is not SessionState.CLOSING:
                return False
            entry.state = SessionState.CLOSED
            return True

    async def session_state(self, session: SessionKey) -> SessionState | None:
        entry = self._sessions.get(session.id)
        return entry.state if entry is not None else None

    async def list_sessions(self, state: SessionState | None = None) -> list[SessionSummary]:
        result = []
        for session_id, entry in self._sessions.items():
            if state is not None and entry.state is not state:
                continue
            result.append(
                SessionSummary(
                    session_id=session_id,
                    bucket=entry.key.bucket,
                    key=entry.key.key,
                    upload_id=entry.key.upload_id,
                    state=entry.state,
                    total=len(entry.parts),
                    completed=sum(1 for p in entry.parts.values() if p.complete),
                    created_at=entry.created_at,
                )
            )
        return sorted(result, key=lambda s: (s.created_at, s.session_id))
