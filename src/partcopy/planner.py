"""Part planning: split an object into byte ranges and seed the work queue."""

import logging
import math

from partcopy.errors import InvalidSizeError
from partcopy.messages import FetchMessage
from partcopy.partstore import ByteRange, PartRecord, PartStore
from partcopy.session import SessionKey
from partcopy.transport import MessageQueue

logger = logging.getLogger(__name__)


def _positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def plan_parts(file_size: int, part_size: int) -> list[ByteRange]:
    """Compute the ordered byte ranges for an object.

    Every part is ``part_size`` bytes except the last, which ends at
    ``file_size - 1`` and may be shorter (or equal when ``file_size`` is an
    exact multiple).

    Args:
        file_size: Object size in bytes.
        part_size: Configured part size in bytes.

    Returns:
        Contiguous, non-overlapping ranges covering ``[0, file_size - 1]``.

    Raises:
        InvalidSizeError: If either size is not a positive integer.
    """
    if not _positive_int(file_size) or not _positive_int(part_size):
        raise InvalidSizeError(
            f"Invalid file size or part size: fileSize={file_size!r} partSize={part_size!r}"
        )
    parts_count = math.ceil(file_size / part_size)
    if parts_count <= 0:
        raise InvalidSizeError(f"Invalid parts count: {parts_count}")

    ranges = []
    for index in range(parts_count):
        start = index * part_size
        end = file_size - 1 if index == parts_count - 1 else start + part_size - 1
        ranges.append(ByteRange(start, end))
    return ranges


class Planner:
    """Seeds a session's part records and enqueues one fetch per part."""

    def __init__(self, store: PartStore, queue: MessageQueue, debug: bool = False) -> None:
        self.store = store
        self.queue = queue
        self.debug = debug

    async def seed(self, session: SessionKey, ranges: list[ByteRange]) -> list[PartRecord]:
        """Write every part record, then enqueue its fetch message.

        Each record is written before its message is sent, so a fetch can
        never reference a part the store does not know. Safe to re-run: the
        upsert is idempotent and duplicate fetches are tolerated downstream.

        Returns:
            The session's part records as stored.
        """
        level = logging.INFO if self.debug else logging.DEBUG
        for index, byte_range in enumerate(ranges):
            await self.store.upsert_part(session, index, byte_range)
            await self.queue.send(
                FetchMessage(
                    part_index=index,
                    upload_id=session.upload_id,
                    bucket=session.bucket,
                    key=session.key,
                    byte_start=byte_range.start,
                    byte_end=byte_range.end,
                )
            )
            logger.log(
                level,
                "Seeded part %d [%d-%d] for %s",
                index,
                byte_range.start,
                byte_range.end,
                session,
                extra={"session_id": session.id, "part_index": index},
            )
        return await self.store.list_all(session)
