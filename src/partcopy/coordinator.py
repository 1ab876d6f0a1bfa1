"""Copy coordinator: the per-session state machine driven by queue messages.

Three message kinds move a session forward:

``fetch``
    Read one byte range from the source, upload it as a part, emit ``done``.
``done``
    Mark the part complete, re-read the counts, and when every part is
    complete try to move the session from open to closing. Only the handler
    that wins that conditional transition emits ``all-done``, so duplicate or
    racing ``done`` deliveries produce at most one ``all-done``.
``all-done``
    Read the completed parts in part-number order, ask the destination to
    assemble them, then mark the session closed. A redelivered ``all-done``
    for a closed session is a no-op.

The coordinator keeps no per-session state between messages; every decision
re-reads the part store.
"""

import logging

from partcopy import metrics
from partcopy.clients.destination import UploadServiceClient
from partcopy.clients.source import S3Source
from partcopy.errors import ProtocolError, UnknownPart
from partcopy.messages import AllDoneMessage, DoneMessage, FetchMessage, Message
from partcopy.partstore import PartStore, SessionState
from partcopy.transport import MessageQueue

logger = logging.getLogger(__name__)


class Coordinator:
    """Processes protocol messages for any session.

    Attributes:
        store: Part store shared by all workers.
        queue: Transport used to emit follow-on messages.
        source: Source store range reader.
        destination: Destination upload service client.
        debug: Log every protocol step at INFO instead of DEBUG.
    """

    def __init__(
        self,
        store: PartStore,
        queue: MessageQueue,
        source: S3Source,
        destination: UploadServiceClient,
        debug: bool = False,
    ) -> None:
        self.store = store
        self.queue = queue
        self.source = source
        self.destination = destination
        self.debug = debug

    def _trace(self, msg: str, *args, **extra) -> None:
        logger.log(logging.INFO if self.debug else logging.DEBUG, msg, *args, extra=extra)

    async def handle(self, message: Message) -> Message | None:
        """Dispatch a decoded message to its handler.

        Returns:
            The follow-on message that was enqueued, if any.
        """
        if isinstance(message, FetchMessage):
            return await self.handle_fetch(message)
        if isinstance(message, DoneMessage):
            return await self.handle_done(message)
        if isinstance(message, AllDoneMessage):
            await self.handle_all_done(message)
            return None
        raise ProtocolError(f"Unsupported message type: {type(message).__name__}")

    async def handle_fetch(self, message: FetchMessage) -> DoneMessage | None:
        """Copy one byte range and emit its ``done`` message.

        A part that is already complete, or a session that is already past
        open, is skipped without touching the source or destination.

        Raises:
            UnknownPart: If the part was never planned.
            TransientIOError: If the source read or part upload fails.
        """
        session = message.session()
        record = await self.store.get_part(session, message.part_index)
        if record is None:
            raise UnknownPart(session.id, message.part_index)
        if record.complete:
            self._trace(
                "Part %d of %s already complete, skipping fetch",
                message.part_index,
                session,
                action="fetch",
                session_id=session.id,
                part_index=message.part_index,
            )
            return None
        state = await self.store.session_state(session)
        if state is not None and state is not SessionState.OPEN:
            self._trace("Session %s is %s, skipping fetch", session, state.value)
            return None

        byte_range = record.byte_range
        if byte_range != message.byte_range:
            raise ProtocolError(
                f"fetch for part {message.part_index} of {session} carries range "
                f"{message.byte_start}-{message.byte_end}, "
                f"planned {byte_range.start}-{byte_range.end}"
            )
        data = await self.source.read_range(session.bucket, session.key, byte_range)
        part = await self.destination.upload_part(
            session.key, session.upload_id, message.part_index + 1, data
        )
        metrics.record_part(len(data))

        done = DoneMessage(
            part_index=message.part_index,
            upload_id=session.upload_id,
            bucket=session.bucket,
            key=session.key,
            byte_start=byte_range.start,
            byte_end=byte_range.end,
            etag=part.etag,
            part_number=part.part_number,
        )
        await self.queue.send(done)
        self._trace(
            "Uploaded part %d (%d bytes, etag=%s) for %s",
            message.part_index,
            len(data),
            part.etag,
            session,
            action="fetch",
            session_id=session.id,
            part_index=message.part_index,
        )
        return done

    async def handle_done(self, message: DoneMessage) -> AllDoneMessage | None:
        """Record a completed part and emit ``all-done`` on the closing transition.

        Raises:
            UnknownPart: If the part was never planned. The store is not touched.
        """
        session = message.session()
        transitioned = await self.store.complete_part(
            session, message.part_index, message.etag, message.part_number
        )
        counts = await self.store.counts(session)
        self._trace(
            "%d/%d parts done for %s%s",
            counts.completed,
            counts.total,
            session,
            "" if transitioned else " (duplicate)",
            action="done",
            session_id=session.id,
            part_index=message.part_index,
        )
        if not counts.all_complete:
            return None
        if not await self.store.begin_closing(session):
            return None

        all_done = AllDoneMessage(
            part_index=message.part_index,
            upload_id=session.upload_id,
            bucket=session.bucket,
            key=session.key,
        )
        try:
            await self.queue.send(all_done)
        except Exception:
            # Release the claim so a redelivered done can win it again.
            await self.store.reopen(session)
            raise
        logger.info(
            "All %d parts uploaded for %s, assembling",
            counts.total,
            session,
            extra={"action": "done", "session_id": session.id},
        )
        return all_done

    async def handle_all_done(self, message: AllDoneMessage) -> None:
        """Assemble the object at the destination and close the session.

        Raises:
            ProtocolError: If the session is unknown or not every part is complete.
            FatalAssemblyError: If the destination rejects the completion.
        """
        session = message.session()
        state = await self.store.session_state(session)
        if state is None:
            raise ProtocolError(f"all-done for unknown session {session}")
        if state is SessionState.CLOSED:
            self._trace("Session %s already closed", session, action="all-done")
            return
        if state is SessionState.OPEN:
            counts = await self.store.counts(session)
            if not counts.all_complete:
                raise ProtocolError(
                    f"all-done for {session} with {counts.completed}/{counts.total} parts complete"
                )
            if not await self.store.begin_closing(session):
                # A racing done won the claim and enqueued its own all-done.
                self._trace("Lost closing claim for %s, skipping all-done", session)
                return

        parts = await self.store.completed_parts_ordered(session)
        self._trace(
            "Completing %s with %d parts",
            session,
            len(parts),
            action="all-done",
            session_id=session.id,
        )
        await self.destination.complete_multipart(session.key, session.upload_id, parts)
        await self.store.mark_closed(session)
        metrics.record_session_completed()
        logger.info(
            "Upload complete: %s",
            session,
            extra={"action": "all-done", "session_id": session.id, "upload_id": session.upload_id},
        )
