#!/usr/bin/env python3
"""
test_transport.py — chunked beam transfer.

Tests:
  1. 1 000 000 bytes in 16 384-byte chunks, completion fires exactly once
  2. Chunk before metadata is dropped
  3. Offset mismatch and early close abort with counts
  4. Periodic drain cadence
  5. Frame codec edge cases
  6. TCP loopback
"""
from __future__ import annotations
import asyncio, os, sys
sys.path.insert(0, os.path.dirname(__file__))

import pytest

from aether.errors import TransferAborted
from aether.transport import (
    ChunkFrame,
    FrameError,
    LoopbackChannel,
    MetaFrame,
    SessionState,
    TransferSession,
    decode_frame,
    encode_frame,
    open_channel,
    receive_stream,
    send_stream,
    serve_channel,
)

MB = 1_000_000


def _payload(n: int) -> bytes:
    return bytes((i * 31 + 7) % 251 for i in range(n))


# ─────────────────────────────────────────────────────────────────────────────
# 1. Full transfer
# ─────────────────────────────────────────────────────────────────────────────

def test_megabyte_transfer_completes_once():
    data = _payload(MB)
    completions: list[bytes] = []
    progress: list[int] = []

    async def run():
        tx, rx = LoopbackChannel.pair()
        meta = MetaFrame.describe("big.bin", len(data), 16_384)
        session = TransferSession(on_complete=completions.append,
                                  on_progress=lambda pct, done, total: progress.append(pct))
        sent, _ = await asyncio.gather(
            send_stream(data, tx, meta, chunk_size=16_384, yield_delay_s=0),
            receive_stream(rx, session),
        )
        return sent, session

    sent, session = asyncio.run(run())
    assert sent == MB
    assert session.meta.total_chunks == 62
    assert session.state is SessionState.COMPLETE
    assert len(completions) == 1
    assert completions[0] == data
    assert session.result() == data
    assert progress[-1] == 100
    assert progress == sorted(progress)


def test_zero_byte_transfer_completes_on_metadata():
    async def run():
        tx, rx = LoopbackChannel.pair()
        await send_stream(b"", tx, MetaFrame.describe("empty", 0, 16_384))
        return await receive_stream(rx)

    session = asyncio.run(run())
    assert session.complete
    assert session.result() == b""


def test_file_object_source(tmp_path):
    path = tmp_path / "src.bin"
    path.write_bytes(_payload(40_000))

    async def run():
        tx, rx = LoopbackChannel.pair()
        with open(path, "rb") as fh:
            await send_stream(fh, tx, MetaFrame.describe("src.bin", 40_000, 16_384))
        return await receive_stream(rx)

    assert asyncio.run(run()).result() == path.read_bytes()


# ─────────────────────────────────────────────────────────────────────────────
# 2–3. Session edge cases
# ─────────────────────────────────────────────────────────────────────────────

def test_chunk_before_metadata_dropped():
    session = TransferSession()
    assert session.on_chunk(0, b"early") is False
    assert session.dropped == 1
    assert session.state is SessionState.AWAITING_META

    session.on_metadata(MetaFrame.describe("a", 3, 16_384))
    assert session.on_chunk(0, b"abc") is True
    assert session.result() == b"abc"


def test_offset_mismatch_aborts():
    session = TransferSession()
    session.on_metadata(MetaFrame.describe("a", 10, 4))
    session.on_chunk(0, b"abcd")
    with pytest.raises(TransferAborted) as exc:
        session.on_chunk(8, b"ijkl")
    assert session.aborted
    assert exc.value.received == 4
    assert exc.value.expected == 10


def test_close_mid_transfer_reports_counts():
    async def run():
        tx, rx = LoopbackChannel.pair()
        await tx.send(MetaFrame.describe("a", 100, 40))
        await tx.send(ChunkFrame(0, b"x" * 40))
        await tx.close()
        session = TransferSession()
        with pytest.raises(TransferAborted) as exc:
            await receive_stream(rx, session)
        return session, exc.value

    session, err = asyncio.run(run())
    assert session.state is SessionState.ABORTED
    assert (err.received, err.expected) == (40, 100)
    assert session.error is err


def test_completion_not_refired_by_stray_chunk():
    fired = []
    session = TransferSession(on_complete=fired.append)
    session.on_metadata(MetaFrame.describe("a", 2, 16_384))
    session.on_chunk(0, b"ab")
    session.on_chunk(2, b"cd")
    assert fired == [b"ab"]


# ─────────────────────────────────────────────────────────────────────────────
# 4. Drain cadence
# ─────────────────────────────────────────────────────────────────────────────

class CountingChannel(LoopbackChannel):
    drains = 0

    async def drain(self) -> None:
        self.drains += 1
        await super().drain()


def test_drains_every_fifty_chunks():
    async def run():
        tx, rx = CountingChannel(), CountingChannel()
        tx._peer, rx._peer = rx, tx
        await send_stream(b"z" * 120, tx, MetaFrame.describe("z", 120, 1),
                          chunk_size=1, yield_delay_s=0)
        return tx.drains

    # after chunk 50, after chunk 100, and once at the end
    assert asyncio.run(run()) == 3


# ─────────────────────────────────────────────────────────────────────────────
# 5. Frame codec
# ─────────────────────────────────────────────────────────────────────────────

def test_meta_frame_wire_keys():
    meta = MetaFrame.describe("ü.bin", 20_000, 16_384, mime="application/octet-stream",
                              salt=bytes(16), iv=bytes(12), original_size=19_984)
    raw = encode_frame(meta)
    assert raw[0] == 0x01
    assert b'"mimeHint"' in raw and b'"totalChunks":2' in raw and b'"originalSize"' in raw
    assert decode_frame(raw) == meta


def test_chunk_frame_carries_offset():
    raw = encode_frame(ChunkFrame(offset=2**33, data=b"\x00\xff"))
    assert decode_frame(raw) == ChunkFrame(offset=2**33, data=b"\x00\xff")


IV_B64 = "A" * 16      # 12 zero bytes

@pytest.mark.parametrize("raw", [
    b"", b"\x07abc", b"\x02\x00", b"\x01{not json", b'\x01{"kind":"x"}',
    b'\x01{"kind":"meta","filename":"a","size":3,"encrypted":true,"salt":5,"iv":5}',
    b'\x01{"kind":"meta","filename":"a","size":3,"encrypted":true,"salt":"AAAA","iv":"%s"}'
        % IV_B64.encode(),
    b'\x01{"kind":"meta","filename":"a","size":3,"encrypted":true,"salt":"!!","iv":"!!"}',
    b'\x01{"kind":"meta","filename":"a","size":-1}',
    b'\x01{"kind":"meta","filename":"a","size":1e999}',
    b'\x01{"kind":"meta","filename":"a","size":1,"encrypted":"false"}',
])
def test_bad_frames(raw):
    with pytest.raises(FrameError):
        decode_frame(raw)


# ─────────────────────────────────────────────────────────────────────────────
# 6. TCP loopback
# ─────────────────────────────────────────────────────────────────────────────

def test_tcp_loopback():
    data = _payload(200_000)

    async def run():
        async def handler(channel):
            meta = MetaFrame.describe("net.bin", len(data), 16_384)
            await send_stream(data, channel, meta, yield_delay_s=0)

        server = await serve_channel("127.0.0.1", 0, handler)
        port = server.sockets[0].getsockname()[1]
        try:
            channel = await open_channel(f"127.0.0.1:{port}")
            async with channel:
                session = await receive_stream(channel)
        finally:
            server.close()
            await server.wait_closed()
        return session

    session = asyncio.run(run())
    assert session.meta.filename == "net.bin"
    assert session.result() == data
