"""AetherShare v1 — high-level link assembly and opening.

build_inline_link(file, options)   -> "AETHER|<header>|<payload>"
build_beam_link(peer, file)        -> "BEAM|<peer>|<name>|<size>"
parse_link(text, password)         -> ParsedLink
receive(text, password)            -> ReceiveResult

Full pipeline
=============

Inline (sender)
---------------
  file bytes
    → [lossy, image/*] WebP transcode                 (compress.transcode_image)
    → zstd compress                                  (compress.compress)
    → [password] PBKDF2 + AES-256-GCM                (crypto.encrypt)
    → FileHeader (salt / iv when encrypted)
    → AETHER|b64(JSON header)|b64(payload)

Inline (receiver)
-----------------
  locator text
    → dispatch on prefix                              (locator.parse_locator)
    → [encrypted] derive key + AEAD open              (crypto.decrypt)
    → zstd / legacy gzip inflate                      (compress.decompress)

Beam
----
  Raw file bytes, optionally encrypted, never compressed, streamed in 16 KiB
  chunks after a metadata frame carrying salt / iv / original size.

Every CPU stage is followed by a yield to the event loop.
"""

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .compress import compress, decompress, is_image_mime, transcode_image
from .crypto import decrypt, encrypt
from .diagnostics import FailureCode, ReceiveResult, classify_failure
from .errors import AetherError, PasswordRequired, UnsupportedLocator
from .header import FileHeader, GeoFence
from .locator import (
    BeamLocator,
    InlineLocator,
    LegacyPlainLocator,
    LegacySecureLocator,
    LocatorKind,
    format_locator,
    parse_locator,
)
from .modem.fsk import Transmission, transmit
from .profiles import (
    DEFAULT_IMAGE_QUALITY,
    DEFAULT_VIBE,
    IMAGE_MIME,
    VIBES,
    ModemConfig,
    TransportConfig,
)
from .transport import (
    Channel,
    MetaFrame,
    TransferSession,
    open_channel,
    receive_stream,
    send_stream,
    serve_channel,
)
from .transport.channel import split_address
from .transport.sender import ProgressCallback

log = logging.getLogger(__name__)


# ── inputs / outputs ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SourceFile:
    name: str
    data: bytes
    mime: Optional[str] = None

    @classmethod
    def from_path(cls, path: str | Path) -> "SourceFile":
        path = Path(path)
        mime, _ = mimetypes.guess_type(path.name)
        return cls(name=path.name, data=path.read_bytes(), mime=mime)

    @property
    def size(self) -> int:
        return len(self.data)


def expiry_timestamp(minutes: int, now_ms: int | None = None) -> int:
    """Absolute expiry in epoch milliseconds, *minutes* from now."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return now_ms + minutes * 60_000


@dataclass(frozen=True)
class LinkOptions:
    password:       Optional[str]      = None
    lossy_images:   bool               = False
    quality:        float              = DEFAULT_IMAGE_QUALITY
    vibe:           Optional[str]      = None
    expiry_minutes: Optional[int]      = None
    geo:            Optional[GeoFence] = None

    def __post_init__(self):
        if self.vibe is not None and self.vibe not in VIBES:
            raise ValueError(f"unknown vibe {self.vibe!r}: choose from {list(VIBES)}")
        if self.expiry_minutes is not None and self.expiry_minutes <= 0:
            raise ValueError(f"expiry_minutes must be positive, got {self.expiry_minutes}")
        if not (0.0 < self.quality <= 1.0):
            raise ValueError(f"quality must be in (0, 1], got {self.quality}")


@dataclass(frozen=True)
class ParsedLink:
    """An opened locator.  ``payload`` is the file; None for a beam locator."""

    kind:    LocatorKind
    header:  FileHeader
    payload: Optional[bytes]       = None
    beam:    Optional[BeamLocator] = None


@dataclass
class BeamHost:
    """A listening beam sender.  ``done`` resolves with the bytes sent."""

    server: asyncio.AbstractServer
    done:   asyncio.Future

    @property
    def port(self) -> int:
        return self.server.sockets[0].getsockname()[1]

    async def wait(self) -> int:
        return await self.done

    async def close(self) -> None:
        self.server.close()
        await self.server.wait_closed()


# ── orchestration ─────────────────────────────────────────────────────────────

class LinkAssembler:
    def __init__(self, transport: TransportConfig | None = None, modem: ModemConfig | None = None):
        self.transport = transport or TransportConfig()
        self.modem     = modem or ModemConfig()

    # ── inline ────────────────────────────────────────────────────────────────

    async def build_inline_link(self, file: SourceFile, options: LinkOptions | None = None) -> str:
        """Encode *file* into a self-contained ``AETHER|…`` locator."""
        options = options or LinkOptions()
        data, mime = file.data, file.mime

        if options.lossy_images and is_image_mime(mime):
            smaller = transcode_image(data, options.quality, mime)
            if smaller is not data:
                log.info("image %s: %d → %d bytes as WebP", file.name, len(data), len(smaller))
                data, mime = smaller, IMAGE_MIME
            await asyncio.sleep(0)

        body = compress(data)
        await asyncio.sleep(0)

        salt = iv = None
        if options.password:
            sealed = encrypt(body, options.password)
            body, salt, iv = sealed.ciphertext, sealed.salt, sealed.iv
            await asyncio.sleep(0)

        header = FileHeader(
            filename=file.name,
            mime=mime,
            encrypted=salt is not None,
            vibe=options.vibe if options.vibe != DEFAULT_VIBE else None,
            expiry=expiry_timestamp(options.expiry_minutes) if options.expiry_minutes else None,
            geo=options.geo,
            salt=salt,
            iv=iv,
        )
        text = format_locator(InlineLocator(header=header, payload=body))
        log.info("inline link for %s: %d → %d chars", file.name, file.size, len(text))
        return text

    async def parse_link(self, text: str, password: str | None = None) -> ParsedLink:
        """Open any locator.  Inline variants come back with the file bytes.

        Raises:
            NotALocator / UnsupportedLocator / MalformedHeader / CorruptStream
            PasswordRequired:   encrypted payload and no password
            AuthenticationError: wrong password or tampered payload
        """
        loc = parse_locator(text)
        await asyncio.sleep(0)

        if isinstance(loc, InlineLocator):
            return await self._open_inline(loc, password)
        if isinstance(loc, LegacySecureLocator):
            return await self._open_legacy_secure(loc, password)
        if isinstance(loc, LegacyPlainLocator):
            return await self._open_legacy_plain(loc)
        return ParsedLink(kind=loc.kind, header=FileHeader(filename=loc.filename), beam=loc)

    async def _inflate(self, header: FileHeader, body: bytes, password: str | None) -> bytes:
        if header.encrypted:
            if not password:
                raise PasswordRequired(f"{header.filename} is encrypted")
            body = decrypt(body, password, header.salt, header.iv)
            await asyncio.sleep(0)
        data = decompress(body)
        await asyncio.sleep(0)
        return data

    async def _open_inline(self, loc: InlineLocator, password: str | None) -> ParsedLink:
        data = await self._inflate(loc.header, loc.payload, password)
        return ParsedLink(kind=loc.kind, header=loc.header, payload=data)

    async def _open_legacy_secure(self, loc: LegacySecureLocator, password: str | None) -> ParsedLink:
        header = FileHeader(filename=loc.filename, encrypted=True, salt=loc.salt, iv=loc.iv)
        data   = await self._inflate(header, loc.payload, password)
        return ParsedLink(kind=loc.kind, header=header, payload=data)

    async def _open_legacy_plain(self, loc: LegacyPlainLocator) -> ParsedLink:
        header = FileHeader(filename=loc.filename)
        data   = await self._inflate(header, loc.payload, None)
        return ParsedLink(kind=loc.kind, header=header, payload=data)

    async def receive(self, text: str, password: str | None = None) -> ReceiveResult:
        """Like :meth:`parse_link` but never raises for pipeline failures."""
        try:
            link = await self.parse_link(text, password)
        except (AetherError, OSError) as exc:
            failure = classify_failure(exc)
            log.info("receive failed: %s (%s)", failure.value, exc)
            return ReceiveResult(success=False, failure=failure, detail=str(exc))

        return ReceiveResult(
            success=True,
            data=link.payload,
            header=link.header,
            beam=link.beam,
            failure=FailureCode.OK,
            kind=link.kind.value,
        )

    # ── beam ──────────────────────────────────────────────────────────────────

    def build_beam_link(self, peer_address: str, file: SourceFile) -> str:
        split_address(peer_address)
        return format_locator(BeamLocator(peer_address=peer_address, filename=file.name,
                                          size_hint=file.size))

    async def beam_send(
        self,
        file: SourceFile,
        channel: Channel,
        password: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Stream *file* over *channel*; returns bytes sent (ciphertext if encrypted)."""
        payload = file.data
        salt = iv = original_size = None
        if password:
            sealed  = encrypt(payload, password)
            payload = sealed.ciphertext
            salt, iv, original_size = sealed.salt, sealed.iv, file.size
            await asyncio.sleep(0)

        cfg  = self.transport
        meta = MetaFrame.describe(file.name, len(payload), cfg.chunk_size, mime=file.mime,
                                  salt=salt, iv=iv, original_size=original_size)
        return await send_stream(payload, channel, meta,
                                 chunk_size=cfg.chunk_size,
                                 on_progress=on_progress,
                                 yield_every=cfg.yield_every,
                                 yield_delay_s=cfg.yield_delay_s)

    async def beam_receive(
        self,
        locator: BeamLocator | None,
        channel: Channel,
        password: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> tuple[FileHeader, bytes]:
        """Reassemble one transfer from *channel* and decrypt it if needed."""
        session = await receive_stream(channel, TransferSession(on_progress=on_progress))
        meta, data = session.meta, session.result()

        if locator is not None and locator.filename != meta.filename:
            log.info("beam: link named %s, peer sent %s", locator.filename, meta.filename)

        header = FileHeader(filename=meta.filename, mime=meta.mime, encrypted=meta.encrypted,
                            salt=meta.salt, iv=meta.iv)
        if meta.encrypted:
            if not password:
                raise PasswordRequired(f"{meta.filename} is encrypted")
            data = decrypt(data, password, meta.salt, meta.iv)
            await asyncio.sleep(0)
        return header, data

    async def receive_beam(
        self,
        text: str,
        password: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
        timeout: float = 10.0,
    ) -> ReceiveResult:
        """Connect to the peer named by a BEAM locator and fetch the file."""
        try:
            loc = parse_locator(text)
            if not isinstance(loc, BeamLocator):
                raise UnsupportedLocator(f"not a beam locator: {loc.kind.value}")
            try:
                split_address(loc.peer_address)
            except ValueError as exc:
                raise UnsupportedLocator(str(exc)) from None

            channel = await open_channel(loc.peer_address, timeout=timeout)
            async with channel:
                header, data = await self.beam_receive(loc, channel, password, on_progress)
        except (AetherError, OSError, asyncio.TimeoutError) as exc:
            failure = classify_failure(exc)
            log.info("beam receive failed: %s (%s)", failure.value, exc)
            return ReceiveResult(success=False, failure=failure, kind=LocatorKind.BEAM.value,
                                 detail=str(exc))

        return ReceiveResult(success=True, data=data, header=header, beam=loc,
                             failure=FailureCode.OK, kind=LocatorKind.BEAM.value)

    async def serve_beam(
        self,
        file: SourceFile,
        host: str = "0.0.0.0",
        port: int = 0,
        password: str | None = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BeamHost:
        """Wait for one receiver and send it *file*.  Later receivers are refused."""
        done: asyncio.Future = asyncio.get_running_loop().create_future()

        async def _handler(channel: Channel) -> None:
            if done.done():
                log.info("beam: transfer already served; closing extra receiver")
                return
            try:
                sent = await self.beam_send(file, channel, password, on_progress)
            except (AetherError, OSError) as exc:
                if not done.done():
                    done.set_exception(exc)
                return
            if not done.done():
                done.set_result(sent)

        server = await serve_channel(host, port, _handler)
        return BeamHost(server=server, done=done)

    # ── acoustic ──────────────────────────────────────────────────────────────

    async def announce(self, text: str, sink=None) -> Transmission:
        """Chirp *text* (usually a filename) through *sink*."""
        return await transmit(text, sink, self.modem)
