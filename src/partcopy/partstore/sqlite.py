"""SQLite-backed part store for partcopy.

Implements the PartStore protocol using aiosqlite for async access.
All tables use CREATE TABLE IF NOT EXISTS for schema idempotency.

Every state transition is a single conditional statement, so concurrent
workers (in this process or another one sharing the database file) cannot
double-apply a transition: the rowcount of the UPDATE decides which caller
performed it.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

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

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _row_to_record(row: aiosqlite.Row) -> PartRecord:
    return PartRecord(
        part_index=row["part_index"],
        byte_start=row["byte_start"],
        byte_end=row["byte_end"],
        complete=bool(row["complete"]),
        etag=row["etag"],
        part_number=row["part_number"],
    )


class SQLitePartStore:
    """Part store backed by a local SQLite database.

    Attributes:
        db_path: Path to the SQLite database file.
        _db: The aiosqlite connection, set after init_db().
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the SQLite part store.

        Args:
            db_path: Filesystem path to the SQLite database file.
                     Use ':memory:' for an in-memory database (useful in tests).
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def init_db(self) -> None:
        """Open the database and create tables if they do not exist.

        Sets WAL journal mode, NORMAL synchronous, enables foreign keys,
        and sets a 5-second busy timeout. Idempotent.
        """
        if self._db is not None:
            return
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("PRAGMA synchronous = NORMAL")
        await self._db.execute("PRAGMA foreign_keys = ON")
        await self._db.execute("PRAGMA busy_timeout = 5000")

        await self._create_tables()

    async def _create_tables(self) -> None:
        """Create all tables and indexes if they do not already exist."""
        assert self._db is not None

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id  TEXT PRIMARY KEY,
                bucket      TEXT NOT NULL,
                key         TEXT NOT NULL,
                upload_id   TEXT NOT NULL,
                state       TEXT NOT NULL DEFAULT 'open',
                created_at  TEXT NOT NULL,
                closed_at   TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_state
                ON sessions(state);

            CREATE TABLE IF NOT EXISTS upload_parts (
                session_id   TEXT NOT NULL,
                part_index   INTEGER NOT NULL,
                byte_start   INTEGER NOT NULL,
                byte_end     INTEGER NOT NULL,
                complete     INTEGER NOT NULL DEFAULT 0,
                etag         TEXT,
                part_number  INTEGER,
                updated_at   TEXT NOT NULL,

                PRIMARY KEY (session_id, part_index),
                FOREIGN KEY (session_id) REFERENCES sessions(session_id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            );
        """)

        await self._db.execute(
            "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (1, ?)",
            (_now_iso(),),
        )
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    # -- Part records ------------------------------------------------------------

    async def upsert_part(self, session: SessionKey, index: int, byte_range: ByteRange) -> None:
        """Create or replace a pending part record (idempotent for equal ranges)."""
        assert self._db is not None
        now = _now_iso()
        await self._db.execute(
            "INSERT OR IGNORE INTO sessions "
            "(session_id, bucket, key, upload_id, state, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                session.id,
                session.bucket,
                session.key,
                session.upload_id,
                SessionState.OPEN.value,
                now,
            ),
        )
        await self._db.execute(
            "INSERT INTO upload_parts "
            "(session_id, part_index, byte_start, byte_end, complete, etag, part_number, updated_at) "
            "VALUES (?, ?, ?, ?, 0, NULL, NULL, ?) "
            "ON CONFLICT(session_id, part_index) DO UPDATE SET "
            "byte_start = excluded.byte_start, byte_end = excluded.byte_end, "
            "complete = 0, etag = NULL, part_number = NULL, updated_at = excluded.updated_at "
            "WHERE upload_parts.byte_start <> excluded.byte_start "
            "OR upload_parts.byte_end <> excluded.byte_end",
            (session.id, index, byte_range.start, byte_range.end, now),
        )
        await self._db.commit()

    async def complete_part(
        self, session: SessionKey, index: int, etag: str, part_number: int
    ) -> bool:
        """Mark a part complete. Returns True if this call performed the transition.

        Raises:
            UnknownPart: If the part does not exist.
        """
        assert self._db is not None
        now = _now_iso()
        cursor = await self._db.execute(
            "UPDATE upload_parts SET complete = 1, etag = ?, part_number = ?, updated_at = ? "
            "WHERE session_id = ? AND part_index = ? AND complete = 0",
            (etag, part_number, now, session.id, index),
        )
        transitioned = cursor.rowcount == 1
        if not transitioned:
            cursor = await self._db.execute(
                "UPDATE upload_parts SET etag = ?, part_number = ?, updated_at = ? "
                "WHERE session_id = ? AND part_index = ? "
                "AND (etag IS NOT ? OR part_number IS NOT ?)",
                (etag, part_number, now, session.id, index, etag, part_number),
            )
            if cursor.rowcount == 0 and not await self._part_exists(session, index):
                raise UnknownPart(session.id, index)
        await self._db.commit()
        return transitioned

    async def _part_exists(self, session: SessionKey, index: int) -> bool:
        assert self._db is not None
        async with self._db.execute(
            "SELECT 1 FROM upload_parts WHERE session_id = ? AND part_index = ?",
            (session.id, index),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def get_part(self, session: SessionKey, index: int) -> PartRecord | None:
        """Return a single part record, or None."""
        assert self._db is not None
        async with self._db.execute(
            "SELECT * FROM upload_parts WHERE session_id = ? AND part_index = ?",
            (session.id, index),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    async def counts(self, session: SessionKey) -> PartCounts:
        """Return total and completed part counts for the session."""
        assert self._db is not None
        async with self._db.execute(
            "SELECT COUNT(*), COALESCE(SUM(complete), 0) FROM upload_parts WHERE session_id = ?",
            (session.id,),
        ) as cursor:
            row = await cursor.fetchone()
        return PartCounts(total=row[0], completed=row[1])

    async def completed_parts_ordered(self, session: SessionKey) -> list[CompletedPart]:
        """Return complete parts as (etag, part_number) ascending by part number."""
        assert self._db is not None
        async with self._db.execute(
            "SELECT etag, part_number FROM upload_parts "
            "WHERE session_id = ? AND complete = 1 ORDER BY part_number ASC",
            (session.id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [CompletedPart(etag=r["etag"], part_number=r["part_number"]) for r in rows]

    async def list_all(self, session: SessionKey) -> list[PartRecord]:
        """Return every part record ordered by index."""
        assert self._db is not None
        async with self._db.execute(
            "SELECT * FROM upload_parts WHERE session_id = ? ORDER BY part_index ASC",
            (session.id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    # -- Session state -----------------------------------------------------------

    async def begin_closing(self, session: SessionKey) -> bool:
        """Move open -> closing if every part is complete. One caller wins."""
        assert self._db is not None
        cursor = await self._db.execute(
            "UPDATE sessions SET state = ? "
            "WHERE session_id = ? AND state = ? "
            "AND EXISTS (SELECT 1 FROM upload_parts WHERE session_id = ?) "
            "AND NOT EXISTS ("
            "  SELECT 1 FROM upload_parts WHERE session_id = ? AND complete = 0"
            ")",
            (
                SessionState.CLOSING.value,
                session.id,
                SessionState.OPEN.value,
                session.id,
                session.id,
            ),
        )
        won = cursor.rowcount == 1
        await self._db.commit()
        return won

    async def reopen(self, session: SessionKey) -> bool:
        """Move closing -> open."""
        assert self._db is not None
        cursor = await self._db.execute(
            "UPDATE sessions SET state = ? WHERE session_id = ? AND state = ?",
            (SessionState.OPEN.value, session.id, SessionState.CLOSING.value),
        )
        reopened = cursor.rowcount == 1
        await self._db.commit()
        return reopened

    async def mark_closed(self, session: SessionKey) -> bool:
        """Move closing -> closed."""
        assert self._db is not None
        cursor = await self._db.execute(
            "UPDATE sessions SET state = ?, closed_at = ? WHERE session_id = ? AND state = ?",
            (SessionState.CLOSED.value, _now_iso(), session.id, SessionState.CLOSING.value),
        )
        closed = cursor.rowcount == 1
        await self._db.commit()
        return closed

    async def session_state(self, session: SessionKey) -> SessionState | None:
        """Return the current session state, or None if unknown."""
        assert self._db is not None
        async with self._db.execute(
            "SELECT state FROM sessions WHERE session_id = ?", (session.id,)
        ) as cursor:
            row = await cursor.fetchone()
        return SessionState(row["state"]) if row is not None else None

    async def list_sessions(self, state: SessionState | None = None) -> list[SessionSummary]:
        """List sessions with part progress, oldest first."""
        assert self._db is not None
        sql = (
            "SELECT s.session_id, s.bucket, s.key, s.upload_id, s.state, s.created_at, "
            "COUNT(p.part_index) AS total, COALESCE(SUM(p.complete), 0) AS completed "
            "FROM sessions s LEFT JOIN upload_parts p ON p.session_id = s.session_id "
        )
        params: tuple = ()
        if state is not None:
            sql += "WHERE s.state = ? "
            params = (state.value,)
        sql += "GROUP BY s.session_id ORDER BY s.created_at ASC, s.session_id ASC"

        async with self._db.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [
            SessionSummary(
                session_id=r["session_id"],
                bucket=r["bucket"],
                key=r["key"],
                upload_id=r["upload_id"],
                state=SessionState(r["state"]),
                total=r["total"],
                completed=r["completed"],
                created_at=r["created_at"],
            )
            for r in rows
        ]
