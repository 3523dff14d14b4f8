"""AetherShare v1 — beam receiver half.

A TransferSession is created before the metadata frame arrives and walks

    AWAITING_META ──meta──▶ RECEIVING ──size reached──▶ COMPLETE
          │                     │
          └──────close──────────┴──▶ ABORTED

Chunks are appended in arrival order; the channel is trusted to be ordered
and reliable, so a chunk whose offset is not the running byte count aborts
the session instead of being reordered.  Nothing is buffered before the
metadata frame: such chunks are logged and dropped.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from ..errors import TransferAborted
from .channel import Channel
from .frames import ChunkFrame, Frame, FrameError, MetaFrame
from .sender import ProgressCallback, percent_of

log = logging.getLogger(__name__)


class SessionState(str, Enum):
    AWAITING_META = "awaiting_meta"
    RECEIVING     = "receiving"
    COMPLETE      = "complete"
    ABORTED       = "aborted"


class TransferSession:
    """Receive-side reassembly state for one beam transfer."""

    def __init__(
        self,
        on_complete: Optional[Callable[[bytes], None]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.on_complete = on_complete
        self.on_progress = on_progress

        self.state:    SessionState        = SessionState.AWAITING_META
        self.meta:     Optional[MetaFrame] = None
        self.expected: Optional[int]       = None
        self.received: int                 = 0
        self.parts:    list[bytes]         = []
        self.payload:  Optional[bytes]     = None
        self.error:    Optional[TransferAborted] = None
        self.dropped:  int                 = 0

    # ── derived ───────────────────────────────────────────────────────────────

    @property
    def meta_received(self) -> bool:
        return self.meta is not None

    @property
    def complete(self) -> bool:
        return self.state is SessionState.COMPLETE

    @property
    def aborted(self) -> bool:
        return self.state is SessionState.ABORTED

    # ── events ────────────────────────────────────────────────────────────────

    def on_metadata(self, meta: MetaFrame) -> None:
        if self.state is not SessionState.AWAITING_META:
            log.warning("duplicate metadata frame for %s ignored", meta.filename)
            return

        self.meta     = meta
        self.expected = meta.size
        self.state    = SessionState.RECEIVING
        log.info("beam recv: %s  expecting %d bytes in %d chunks",
                 meta.filename, meta.size, meta.total_chunks)

        if self.expected == 0:
            self._finalize()

    def on_chunk(self, offset: int, data: bytes) -> bool:
        """Append one chunk.  Returns True if this chunk completed the transfer.

        Raises TransferAborted if the chunk is not contiguous with what has
        already arrived.
        """
        if self.state is SessionState.AWAITING_META:
            self.dropped += 1
            log.warning("chunk at offset %d arrived before metadata; dropped", offset)
            return False
        if self.state is not SessionState.RECEIVING:
            log.warning("chunk at offset %d after session %s; ignored", offset, self.state.value)
            return False

        if offset != self.received:
            self.abort(f"chunk offset {offset} != {self.received} bytes received")
            raise self.error

        self.parts.append(bytes(data))
        self.received += len(data)

        if self.on_progress is not None:
            self.on_progress(percent_of(self.received, self.expected), self.received, self.expected)

        if self.received >= self.expected:
            self._finalize()
            return True
        return False

    def on_close(self) -> None:
        """The channel closed.  Anything short of COMPLETE becomes ABORTED."""
        if self.state in (SessionState.AWAITING_META, SessionState.RECEIVING):
            self.abort("connection closed")

    def handle(self, frame: Frame) -> bool:
        if isinstance(frame, MetaFrame):
            self.on_metadata(frame)
            return self.complete
        if isinstance(frame, ChunkFrame):
            return self.on_chunk(frame.offset, frame.data)
        raise TypeError(f"not a frame: {frame!r}")

    def abort(self, reason: str) -> None:
        if self.state in (SessionState.COMPLETE, SessionState.ABORTED):
            return
        self.state = SessionState.ABORTED
        self.error = TransferAborted(self.received, self.expected, reason)
        self.parts.clear()
        log.warning("beam recv: %s", self.error)

    # ── result ────────────────────────────────────────────────────────────────

    def _finalize(self) -> None:
        self.payload = b"".join(self.parts)
        self.parts.clear()
        self.state = SessionState.COMPLETE
        log.info("beam recv: complete (%d bytes)", len(self.payload))
        if self.on_complete is not None:
            self.on_complete(self.payload)

    def result(self) -> bytes:
        """The reassembled payload.  Raises TransferAborted unless COMPLETE."""
        if self.complete:
            return self.payload
        if self.error is not None:
            raise self.error
        raise TransferAborted(self.received, self.expected, "transfer still in progress")


async def receive_stream(channel: Channel, session: TransferSession | None = None) -> TransferSession:
    """Feed frames from *channel* into *session* until it completes or the channel ends.

    Returns the completed session.  Raises TransferAborted if the channel
    closes first.
    """
    session = session or TransferSession()
    try:
        async for frame in channel:
            session.handle(frame)
            if session.complete:
                return session
    except FrameError as exc:
        session.abort(f"bad frame: {exc}")
    except TransferAborted as exc:
        session.abort(exc.reason)
    except OSError as exc:
        session.abort(f"channel error: {exc}")

    session.on_close()
    session.result()
    return session
