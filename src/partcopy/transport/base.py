"""Abstract queue transport protocol for partcopy.

The transport delivers each message at least once, in no particular order,
and without deduplication. A receiver owns a delivery until it acks it,
nacks it, or its lease (visibility timeout) expires, after which the message
becomes visible again.
"""

from dataclasses import dataclass
from typing import Protocol

from partcopy.messages import Message


@dataclass(frozen=True)
class Delivery:
    """One delivery attempt of a queued message.

    Attributes:
        id: Transport-assigned message id.
        body: Raw JSON body as enqueued.
        attempts: Number of times this message has been delivered, this one included.
        lease_token: Token identifying this particular delivery.
    """

    id: str
    body: str
    attempts: int
    lease_token: str = ""


class MessageQueue(Protocol):
    """Protocol defining the queue transport interface."""

    async def init(self) -> None:
        """Prepare the transport. Idempotent."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...

    async def send(self, message: Message) -> None:
        """Encode and enqueue a protocol message."""
        ...

    async def send_raw(self, body: str) -> None:
        """Enqueue an already-encoded body."""
        ...

    async def receive(self) -> Delivery | None:
        """Lease the next visible message, or return None if there is none."""
        ...

    async def ack(self, delivery: Delivery) -> None:
        """Remove a delivered message permanently."""
        ...

    async def nack(self, delivery: Delivery, delay: float = 0.0) -> None:
        """Make a delivered message visible again after ``delay`` seconds."""
        ...

    async def pending(self) -> int:
        """Number of messages not yet acked (visible, delayed or leased)."""
        ...
