"""AetherShare v1 — beam sender half.

Metadata goes out first, then fixed-size chunks strictly in order.  Every
``yield_every`` chunks the loop drains the channel and sleeps briefly so
buffered-but-unsent data can leave before more is queued; peer channels
give no other backpressure signal.
"""

import asyncio
import logging
from typing import BinaryIO, Callable, Optional, Union

from ..profiles import CHUNK_SIZE, YIELD_DELAY_S, YIELD_EVERY
from .channel import Channel
from .frames import ChunkFrame, MetaFrame

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]   # (percent, bytes_sent, total)
ByteSource = Union[bytes, bytearray, memoryview, BinaryIO]


def _chunks(source: ByteSource, chunk_size: int):
    if isinstance(source, (bytes, bytearray, memoryview)):
        view = memoryview(source)
        for lo in range(0, len(view), chunk_size):
            yield bytes(view[lo:lo + chunk_size])
        return
    while True:
        block = source.read(chunk_size)
        if not block:
            return
        yield block


def percent_of(sent: int, total: int) -> int:
    if total <= 0:
        return 100
    return min(100, round(sent * 100 / total))


async def send_stream(
    source: ByteSource,
    channel: Channel,
    meta: MetaFrame,
    *,
    chunk_size: int = CHUNK_SIZE,
    on_progress: Optional[ProgressCallback] = None,
    yield_every: int = YIELD_EVERY,
    yield_delay_s: float = YIELD_DELAY_S,
) -> int:
    """Stream *source* over *channel* as one meta frame plus ordered chunks.

    Args:
        source:      Bytes-like object or binary file opened for reading.
        channel:     Established peer channel.
        meta:        Metadata frame; ``meta.size`` is the byte count promised.
        chunk_size:  Maximum chunk payload; the last chunk may be shorter.
        on_progress: Called after each chunk with (percent, bytes_sent, total).
        yield_every: Chunks between drain-and-sleep points.

    Returns:
        Number of payload bytes sent.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    total = meta.size
    log.info("beam send: %s  %d bytes in %d chunks", meta.filename, total, meta.total_chunks)

    await channel.send(meta)

    sent = 0
    for index, block in enumerate(_chunks(source, chunk_size), start=1):
        await channel.send(ChunkFrame(offset=sent, data=block))
        sent += len(block)

        if on_progress is not None:
            on_progress(percent_of(sent, total), sent, total)

        if index % yield_every == 0:
            await channel.drain()
            await asyncio.sleep(yield_delay_s)

    await channel.drain()
    if sent != total:
        log.warning("beam send: source gave %d bytes, meta promised %d", sent, total)
    else:
        log.info("beam send: complete (%d bytes)", sent)
    return sent
