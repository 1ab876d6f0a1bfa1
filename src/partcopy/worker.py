"""Queue worker pool.

Each worker leases one delivery at a time, decodes it, and hands it to the
coordinator. Outcomes:

* success: ack.
* ProtocolError (bad payload, unknown action, unknown part): log and ack.
  Redelivery cannot fix a structurally invalid message.
* anything else: nack with a linear backoff so the transport redelivers,
  until ``max_attempts`` is reached; then the message is dropped and the
  session is reported as stuck.
"""

import asyncio
import logging

from partcopy import metrics
from partcopy.coordinator import Coordinator
from partcopy.errors import ProtocolError
from partcopy.messages import decode_message
from partcopy.transport import Delivery, MessageQueue

logger = logging.getLogger(__name__)


class WorkerPool:
    """A fixed number of asyncio tasks draining the message queue."""

    def __init__(
        self,
        queue: MessageQueue,
        coordinator: Coordinator,
        workers: int = 4,
        max_attempts: int = 5,
        retry_delay: float = 2.0,
        poll_interval: float = 0.5,
    ) -> None:
        self.queue = queue
        self.coordinator = coordinator
        self.workers = workers
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.poll_interval = poll_interval
        self._tasks: list[asyncio.Task] = []
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Spawn the worker tasks."""
        self._stopping.clear()
        for n in range(self.workers):
            self._tasks.append(asyncio.create_task(self._run(n), name=f"partcopy-worker-{n}"))
        logger.info("Started %d queue workers", self.workers)

    async def stop(self) -> None:
        """Signal workers to stop and wait for in-flight messages to finish."""
        self._stopping.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Queue workers stopped")

    async def _run(self, worker_id: int) -> None:
        while not self._stopping.is_set():
            try:
                processed = await self.process_one()
            except Exception:
                logger.exception("Worker %d failed to talk to the queue", worker_id)
                processed = False
            if not processed:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

    async def run_until_idle(self) -> int:
        """Process messages sequentially until none is visible.

        Returns:
            The number of deliveries processed.
        """
        count = 0
        while await self.process_one():
            count += 1
        return count

    async def process_one(self) -> bool:
        """Receive and process a single delivery. Returns False if the queue was empty."""
        delivery = await self.queue.receive()
        if delivery is None:
            return False
        await self._process(delivery)
        return True

    async def _process(self, delivery: Delivery) -> None:
        try:
            message = decode_message(delivery.body)
        except ProtocolError as exc:
            logger.error("Dropping malformed message %s: %s", delivery.id, exc.message)
            metrics.record_message("unknown", "dropped")
            await self.queue.ack(delivery)
            return

        extra = {
            "action": message.action,
            "upload_id": message.upload_id,
            "part_index": message.part_index,
            "attempt": delivery.attempts,
        }
        try:
            await self.coordinator.handle(message)
        except ProtocolError as exc:
            logger.error(
                "Dropping %s message for %s/%s: %s",
                message.action,
                message.bucket,
                message.key,
                exc.message,
                extra=extra,
            )
            metrics.record_message(message.action, "dropped")
            await self.queue.ack(delivery)
        except Exception as exc:
            if delivery.attempts >= self.max_attempts:
                logger.error(
                    "Giving up on %s message after %d attempts; session %s/%s/%s is stuck: %s",
                    message.action,
                    delivery.attempts,
                    message.bucket,
                    message.key,
                    message.upload_id,
                    exc,
                    extra=extra,
                )
                metrics.record_message(message.action, "exhausted")
                await self.queue.ack(delivery)
            else:
                logger.warning(
                    "Retrying %s message (attempt %d/%d): %s",
                    message.action,
                    delivery.attempts,
                    self.max_attempts,
                    exc,
                    extra=extra,
                )
                metrics.record_message(message.action, "retried")
                await self.queue.nack(delivery, delay=self.retry_delay * delivery.attempts)
        else:
            metrics.record_message(message.action, "ok")
            await self.queue.ack(delivery)
