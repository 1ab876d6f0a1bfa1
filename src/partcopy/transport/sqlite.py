"""SQLite-backed durable queue transport for partcopy.

Messages live in a single table. Receiving a message is one conditional
UPDATE that assigns a fresh lease token and pushes ``available_at`` forward
by the visibility timeout, so a worker that crashes mid-message simply lets
the lease lapse and the message is delivered again.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from partcopy.messages import Message, encode_message
from partcopy.transport.base import Delivery

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


class SQLiteMessageQueue:
    """Durable message queue backed by a SQLite database.

    Attributes:
        db_path: Path to the SQLite database file.
        visibility_timeout: Seconds a received message stays leased.
    """

    def __init__(self, db_path: str, visibility_timeout: float = 300.0) -> None:
        self.db_path = db_path
        self.visibility_timeout = visibility_timeout
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Open the database and create the messages table. Idempotent."""
        if self._db is not None:
            return
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute("PRAGMA synchronous = NORMAL")
        await self._db.execute("PRAGMA busy_timeout = 5000")
        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS messages (
                id            INTEGER PRIMARY KEY AUTOINCREMENT,
                body          TEXT NOT NULL,
                attempts      INTEGER NOT NULL DEFAULT 0,
                available_at  REAL NOT NULL,
                lease_token   TEXT,
                enqueued_at   TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_available
                ON messages(available_at, id);
        """)
        await self._db.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def send(self, message: Message) -> None:
        await self.send_raw(encode_message(message))

    async def send_raw(self, body: str) -> None:
        assert self._db is not None
        await self._db.execute(
            "INSERT INTO messages (body, attempts, available_at, enqueued_at) VALUES (?, 0, ?, ?)",
            (body, time.time(), _now_iso()),
        )
        await self._db.commit()

    async def receive(self) -> Delivery | None:
        """Lease the oldest visible message."""
        assert self._db is not None
        now = time.time()
        token = uuid.uuid4().hex
        async with self._db.execute(
            "UPDATE messages SET lease_token = ?, available_at = ?, attempts = attempts + 1 "
            "WHERE id = ("
            "  SELECT id FROM messages WHERE available_at <= ? "
            "  ORDER BY available_at ASC, id ASC LIMIT 1"
            ") RETURNING id, body, attempts",
            (token, now + self.visibility_timeout, now),
        ) as cursor:
            rows = await cursor.fetchall()
        await self._db.commit()
        if not rows:
            return None
        row = rows[0]
        return Delivery(
            id=str(row["id"]),
            body=row["body"],
            attempts=row["attempts"],
            lease_token=token,
        )

    async def ack(self, delivery: Delivery) -> None:
        """Delete the message if this delivery still holds its lease."""
        assert self._db is not None
        cursor = await self._db.execute(
            "DELETE FROM messages WHERE id = ? AND lease_token = ?",
            (int(delivery.id), delivery.lease_token),
        )
        if cursor.rowcount == 0:
            logger.warning("Ack for message %s after its lease expired", delivery.id)
        await self._db.commit()

    async def nack(self, delivery: Delivery, delay: float = 0.0) -> None:
        """Release the lease so the message is redelivered after ``delay``."""
        assert self._db is not None
        await self._db.execute(
            "UPDATE messages SET lease_token = NULL, available_at = ? "
            "WHERE id = ? AND lease_token = ?",
            (time.time() + delay, int(delivery.id), delivery.lease_token),
        )
        await self._db.commit()

    async def pending(self) -> int:
        assert self._db is not None
        async with self._db.execute("SELECT COUNT(*) FROM messages") as cursor:
            row = await cursor.fetchone()
        return row[0]
