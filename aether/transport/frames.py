"""AetherShare v1 — beam (peer channel) frame codec.

Two frame kinds, metadata always first:

  meta  : [0]     kind = 0x01
          [1:]    UTF-8 JSON {"kind": "meta", "filename", "size", "mimeHint",
                              "totalChunks", "encrypted"?, "salt"?, "iv"?,
                              "originalSize"?}
  chunk : [0]     kind = 0x02
          [1:9]   offset   uint64 BE, byte offset of this range in the stream
          [9:]    data     ≤ chunk size

On a byte stream every frame is preceded by a uint32 BE length.
"""

import asyncio
import binascii
import json
import math
import struct
from dataclasses import dataclass
from typing import Optional, Union

from ..errors import TransferAborted
from ..header import b64d, b64e
from ..profiles import MAX_FRAME_LEN, NONCE_LEN, SALT_LEN

KIND_META  = 0x01
KIND_CHUNK = 0x02

_CHUNK_HEAD = struct.Struct(">BQ")
_LEN        = struct.Struct(">I")


class FrameError(ValueError):
    """A frame could not be decoded."""


@dataclass(frozen=True)
class MetaFrame:
    filename:      str
    size:          int                 # bytes that will follow on the wire
    mime:          Optional[str] = None
    total_chunks:  int           = 0
    encrypted:     bool          = False
    salt:          Optional[bytes] = None
    iv:            Optional[bytes] = None
    original_size: Optional[int] = None

    kind = "meta"

    @classmethod
    def describe(
        cls,
        filename: str,
        size: int,
        chunk_size: int,
        *,
        mime: str | None = None,
        salt: bytes | None = None,
        iv: bytes | None = None,
        original_size: int | None = None,
    ) -> "MetaFrame":
        return cls(
            filename=filename,
            size=size,
            mime=mime,
            total_chunks=math.ceil(size / chunk_size) if size else 0,
            encrypted=salt is not None,
            salt=salt,
            iv=iv,
            original_size=original_size,
        )

    def to_dict(self) -> dict:
        d = {
            "kind":        "meta",
            "filename":    self.filename,
            "size":        self.size,
            "mimeHint":    self.mime,
            "totalChunks": self.total_chunks,
        }
        if self.encrypted:
            d["encrypted"] = True
            d["salt"]      = b64e(self.salt)
            d["iv"]        = b64e(self.iv)
        if self.original_size is not None:
            d["originalSize"] = self.original_size
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "MetaFrame":
        encrypted = d.get("encrypted", False)
        if not isinstance(encrypted, bool):
            raise FrameError("bad meta frame: encrypted must be true or false")
        try:
            frame = cls(
                filename=str(d["filename"]),
                size=int(d["size"]),
                mime=d.get("mimeHint"),
                total_chunks=int(d.get("totalChunks", 0)),
                encrypted=encrypted,
                salt=b64d(d["salt"]) if encrypted else None,
                iv=b64d(d["iv"]) if encrypted else None,
                original_size=int(d["originalSize"]) if d.get("originalSize") is not None else None,
            )
        except (KeyError, TypeError, ValueError, OverflowError, AttributeError, binascii.Error) as exc:
            raise FrameError(f"bad meta frame: {exc}") from None

        if frame.size < 0:
            raise FrameError(f"bad meta frame: negative size {frame.size}")
        if encrypted and (len(frame.salt) != SALT_LEN or len(frame.iv) != NONCE_LEN):
            raise FrameError(f"bad meta frame: salt/iv must be {SALT_LEN}/{NONCE_LEN} bytes")
        return frame


@dataclass(frozen=True)
class ChunkFrame:
    offset: int
    data:   bytes

    kind = "chunk"


Frame = Union[MetaFrame, ChunkFrame]


# ── bytes ↔ frame ─────────────────────────────────────────────────────────────

def encode_frame(frame: Frame) -> bytes:
    if isinstance(frame, ChunkFrame):
        return _CHUNK_HEAD.pack(KIND_CHUNK, frame.offset) + bytes(frame.data)
    if isinstance(frame, MetaFrame):
        body = json.dumps(frame.to_dict(), ensure_ascii=False, separators=(",", ":"))
        return bytes([KIND_META]) + body.encode("utf-8")
    raise TypeError(f"not a frame: {frame!r}")


def decode_frame(raw: bytes) -> Frame:
    if not raw:
        raise FrameError("empty frame")

    kind = raw[0]
    if kind == KIND_CHUNK:
        if len(raw) < _CHUNK_HEAD.size:
            raise FrameError(f"chunk frame too short: {len(raw)} bytes")
        _, offset = _CHUNK_HEAD.unpack_from(raw)
        return ChunkFrame(offset=offset, data=bytes(raw[_CHUNK_HEAD.size:]))

    if kind == KIND_META:
        try:
            d = json.loads(raw[1:].decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FrameError(f"meta frame is not JSON: {exc}") from None
        if not isinstance(d, dict) or d.get("kind") != "meta":
            raise FrameError("meta frame has the wrong shape")
        return MetaFrame.from_dict(d)

    raise FrameError(f"unknown frame kind 0x{kind:02x}")


# ── length-prefixed stream I/O ────────────────────────────────────────────────

def write_frame(writer: asyncio.StreamWriter, frame: Frame) -> None:
    """Queue *frame* on *writer*.  Call ``await writer.drain()`` to flush."""
    body = encode_frame(frame)
    writer.write(_LEN.pack(len(body)) + body)


async def read_frame(reader: asyncio.StreamReader) -> Frame | None:
    """Read one frame; None on a clean EOF between frames."""
    try:
        head = await reader.readexactly(_LEN.size)
    except asyncio.IncompleteReadError as exc:
        if exc.partial:
            raise TransferAborted(0, None, "stream ended inside a length prefix") from None
        return None

    (length,) = _LEN.unpack(head)
    if length == 0 or length > MAX_FRAME_LEN:
        raise FrameError(f"refusing frame of {length} bytes")

    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError:
        raise TransferAborted(0, None, "stream ended inside a frame") from None
    return decode_frame(body)
