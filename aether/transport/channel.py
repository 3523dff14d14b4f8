"""AetherShare v1 — peer channels.

A channel is an ordered, reliable pipe of frames between one sender and one
receiver.  Two implementations:

  LoopbackChannel  in-process pair backed by asyncio queues; frames still go
                   through the byte codec so both ends see exactly what a
                   network peer would.
  StreamChannel    asyncio TCP streams, length-prefixed frames.  Peer
                   addresses are ``host:port`` strings (``[v6]:port`` works).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .frames import Frame, decode_frame, encode_frame, read_frame, write_frame

log = logging.getLogger(__name__)


class Channel:
    """Abstract frame pipe.  Iterating yields frames until the peer closes."""

    async def send(self, frame: Frame) -> None:
        raise NotImplementedError

    async def drain(self) -> None:
        """Wait until buffered outgoing frames have been handed off."""
        await asyncio.sleep(0)

    async def recv(self) -> Frame | None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    def __aiter__(self):
        return self

    async def __anext__(self) -> Frame:
        frame = await self.recv()
        if frame is None:
            raise StopAsyncIteration
        return frame

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


# ── in-process ────────────────────────────────────────────────────────────────

class LoopbackChannel(Channel):
    def __init__(self):
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._peer: LoopbackChannel | None = None
        self._closed = False

    @classmethod
    def pair(cls) -> tuple["LoopbackChannel", "LoopbackChannel"]:
        a, b = cls(), cls()
        a._peer, b._peer = b, a
        return a, b

    @property
    def pending(self) -> int:
        """Frames sent by this end that the peer has not read yet."""
        return self._peer._inbox.qsize() if self._peer else 0

    async def send(self, frame: Frame) -> None:
        if self._closed or self._peer is None or self._peer._closed:
            raise ConnectionError("loopback channel is closed")
        self._peer._inbox.put_nowait(encode_frame(frame))

    async def recv(self) -> Frame | None:
        raw = await self._inbox.get()
        if raw is None:
            return None
        return decode_frame(raw)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put_nowait(None)
        if self._peer is not None and not self._peer._closed:
            self._peer._inbox.put_nowait(None)


# ── TCP ───────────────────────────────────────────────────────────────────────

def split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"peer address must be host:port, got {address!r}")
    return host.strip("[]"), int(port)


class StreamChannel(Channel):
    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._closed = False

    @property
    def peer_name(self) -> str:
        peer = self.writer.get_extra_info("peername")
        return f"{peer[0]}:{peer[1]}" if peer else "?"

    async def send(self, frame: Frame) -> None:
        if self._closed:
            raise ConnectionError("stream channel is closed")
        write_frame(self.writer, frame)

    async def drain(self) -> None:
        await self.writer.drain()

    async def recv(self) -> Frame | None:
        if self._closed:
            return None
        return await read_frame(self.reader)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            log.debug("close: %s", exc)


async def open_channel(address: str, timeout: float = 10.0) -> StreamChannel:
    """Connect to a beam host at ``host:port``."""
    host, port = split_address(address)
    reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    log.info("connected to beam host %s", address)
    return StreamChannel(reader, writer)


async def serve_channel(
    host: str,
    port: int,
    handler: Callable[[StreamChannel], Awaitable[None]],
) -> asyncio.AbstractServer:
    """Accept receivers on (host, port); *handler* runs once per connection.

    The handler owns the channel and should close it.
    """
    async def _on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        channel = StreamChannel(reader, writer)
        log.info("receiver connected from %s", channel.peer_name)
        try:
            await handler(channel)
        finally:
            await channel.close()

    return await asyncio.start_server(_on_connect, host, port)
