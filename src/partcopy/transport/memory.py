"""In-memory queue transport for partcopy.

Single-process, non-durable. Implements lease expiry and delayed
redelivery so handlers see the same at-least-once behavior they would get
from the SQLite transport.
"""

import itertools
import time
import uuid
from collections import deque
from dataclasses import dataclass

from partcopy.messages import Message, encode_message
from partcopy.transport.base import Delivery


@dataclass
class _Entry:
    id: str
    body: str
    attempts: int = 0
    available_at: float = 0.0
    lease_token: str = ""


class MemoryMessageQueue:
    """Message queue held in Python collections."""

    def __init__(self, visibility_timeout: float = 300.0) -> None:
        self.visibility_timeout = visibility_timeout
        self._ids = itertools.count(1)
        self._ready: deque[_Entry] = deque()
        self._waiting: list[_Entry] = []
        self._leased: dict[str, _Entry] = {}

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        self._ready.clear()
        self._waiting.clear()
        self._leased.clear()

    async def send(self, message: Message) -> None:
        await self.send_raw(encode_message(message))

    async def send_raw(self, body: str) -> None:
        self._ready.append(_Entry(id=str(next(self._ids)), body=body))

    def _promote(self, now: float) -> None:
        for entry in [e for e in self._leased.values() if e.available_at <= now]:
            del self._leased[entry.id]
            entry.lease_token = ""
            self._ready.append(entry)
        due = [e for e in self._waiting if e.available_at <= now]
        if due:
            self._waiting = [e for e in self._waiting if e.available_at > now]
            self._ready.extend(sorted(due, key=lambda e: e.available_at))

    async def receive(self) -> Delivery | None:
        now = time.monotonic()
        self._promote(now)
        if not self._ready:
            return None
        entry = self._ready.popleft()
        entry.attempts += 1
        entry.lease_token = uuid.uuid4().hex
        entry.available_at = now + self.visibility_timeout
        self._leased[entry.id] = entry
        return Delivery(
            id=entry.id,
            body=entry.body,
            attempts=entry.attempts,
            lease_token=entry.lease_token,
        )

    def _owned(self, delivery: Delivery) -> _Entry | None:
        entry = self._leased.get(delivery.id)
        if entry is None or entry.lease_token != delivery.lease_token:
            return None
        return entry

    async def ack(self, delivery: Delivery) -> None:
        if self._owned(delivery) is not None:
            del self._leased[delivery.id]

    async def nack(self, delivery: Delivery, delay: float = 0.0) -> None:
        entry = self._owned(delivery)
        if entry is None:
            return
        del self._leased[delivery.id]
        entry.lease_token = ""
        if delay > 0:
            entry.available_at = time.monotonic() + delay
            self._waiting.append(entry)
        else:
            self._ready.append(entry)

    async def pending(self) -> int:
        return len(self._ready) + len(self._waiting) + len(self._leased)
