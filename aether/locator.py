"""AetherShare v1 — locator parsing and formatting.

Wire formats (``|`` never occurs inside an encoded field):

  AETHER|<b64 JSON header>|<b64 payload>                     current inline
  SECURE|<urlenc filename>|<b64 salt>|<b64 iv>|<b64 payload> legacy encrypted
  <urlenc filename>|<b64 payload>                            legacy plaintext
  BEAM|<peer address>|<urlenc filename>|<size>               peer session

Dispatch is purely syntactic and happens in :func:`classify` before any
field is touched; :func:`parse_locator` then checks the segment count of the
chosen variant and builds a typed value.
"""

import binascii
from dataclasses import dataclass
from enum import Enum
from typing import Union
from urllib.parse import quote, unquote

from .errors import CorruptStream, NotALocator, UnsupportedLocator
from .header import FileHeader, b64d, b64e, decode_header, encode_header
from .profiles import (
    DELIMITER,
    NONCE_LEN,
    SALT_LEN,
    SCHEME_BEAM,
    SCHEME_INLINE,
    SCHEME_SECURE,
    URI_SAFE,
)


class LocatorKind(str, Enum):
    INLINE        = "inline"
    LEGACY_SECURE = "legacy_secure"
    LEGACY_PLAIN  = "legacy_plain"
    BEAM          = "beam"
    NONE          = "none"


@dataclass(frozen=True)
class InlineLocator:
    header:  FileHeader
    payload: bytes

    kind = LocatorKind.INLINE


@dataclass(frozen=True)
class LegacySecureLocator:
    filename: str
    salt:     bytes
    iv:       bytes
    payload:  bytes

    kind = LocatorKind.LEGACY_SECURE


@dataclass(frozen=True)
class LegacyPlainLocator:
    filename: str
    payload:  bytes

    kind = LocatorKind.LEGACY_PLAIN


@dataclass(frozen=True)
class BeamLocator:
    peer_address: str
    filename:     str
    size_hint:    int

    kind = LocatorKind.BEAM


Locator = Union[InlineLocator, LegacySecureLocator, LegacyPlainLocator, BeamLocator]


# ── helpers ───────────────────────────────────────────────────────────────────

def encode_filename(name: str) -> str:
    """Percent-encode like JavaScript's encodeURIComponent."""
    return quote(name, safe=URI_SAFE)


def decode_filename(field: str) -> str:
    name = unquote(field)
    if not name:
        raise UnsupportedLocator("empty filename field")
    return name


def strip_url(text: str) -> str:
    """Accept a full share URL as well as a bare locator (keep the fragment)."""
    text = text.strip()
    _, sep, fragment = text.partition("#")
    return fragment if sep else text


def _payload(field: str) -> bytes:
    try:
        return b64d(field)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        raise CorruptStream("payload is not valid base64") from None


def _fixed(field: str, length: int, what: str) -> bytes:
    try:
        raw = b64d(field)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        raise UnsupportedLocator(f"{what} is not valid base64") from None
    if len(raw) != length:
        raise UnsupportedLocator(f"{what} must be {length} bytes, got {len(raw)}")
    return raw


def _expect(parts: list[str], n: int, scheme: str) -> None:
    if len(parts) != n:
        raise UnsupportedLocator(f"{scheme} locator needs {n} fields, got {len(parts)}")


# ── dispatch ──────────────────────────────────────────────────────────────────

def classify(text: str) -> LocatorKind:
    """Pick the locator variant from prefix / first field only."""
    text = strip_url(text)
    if text.startswith(SCHEME_BEAM + DELIMITER):
        return LocatorKind.BEAM
    if text.startswith(SCHEME_INLINE + DELIMITER):
        return LocatorKind.INLINE
    if DELIMITER not in text:
        return LocatorKind.NONE
    if text.split(DELIMITER, 1)[0] == SCHEME_SECURE:
        return LocatorKind.LEGACY_SECURE
    return LocatorKind.LEGACY_PLAIN


def parse_locator(text: str) -> Locator:
    """Parse *text* into exactly one locator variant.

    Raises:
        UnsupportedLocator: no delimiter, or wrong segment count / field shape.
                            NotALocator (a subclass) for the no-delimiter case.
        MalformedHeader:    the AETHER header segment does not decode.
        CorruptStream:      a payload segment is not valid base64.
    """
    kind  = classify(text)
    body  = strip_url(text)
    parts = body.split(DELIMITER)

    if kind is LocatorKind.NONE:
        raise NotALocator("text contains no locator delimiter")

    if kind is LocatorKind.BEAM:
        _expect(parts, 4, SCHEME_BEAM)
        peer = parts[1]
        if not peer:
            raise UnsupportedLocator("BEAM locator has an empty peer address")
        try:
            size = int(parts[3])
        except ValueError:
            raise UnsupportedLocator(f"BEAM size is not an integer: {parts[3]!r}") from None
        if size < 0:
            raise UnsupportedLocator("BEAM size is negative")
        return BeamLocator(peer_address=peer, filename=decode_filename(parts[2]), size_hint=size)

    if kind is LocatorKind.INLINE:
        _expect(parts, 3, SCHEME_INLINE)
        return InlineLocator(header=decode_header(parts[1]), payload=_payload(parts[2]))

    if kind is LocatorKind.LEGACY_SECURE:
        _expect(parts, 5, SCHEME_SECURE)
        return LegacySecureLocator(
            filename=decode_filename(parts[1]),
            salt=_fixed(parts[2], SALT_LEN, "salt"),
            iv=_fixed(parts[3], NONCE_LEN, "iv"),
            payload=_payload(parts[4]),
        )

    _expect(parts, 2, "legacy")
    return LegacyPlainLocator(filename=decode_filename(parts[0]), payload=_payload(parts[1]))


# ── formatting ────────────────────────────────────────────────────────────────

def format_locator(loc: Locator) -> str:
    """Serialise a locator value back to its wire text."""
    if isinstance(loc, InlineLocator):
        fields = [SCHEME_INLINE, encode_header(loc.header), b64e(loc.payload)]
    elif isinstance(loc, BeamLocator):
        fields = [SCHEME_BEAM, loc.peer_address, encode_filename(loc.filename), str(loc.size_hint)]
    elif isinstance(loc, LegacySecureLocator):
        fields = [SCHEME_SECURE, encode_filename(loc.filename),
                  b64e(loc.salt), b64e(loc.iv), b64e(loc.payload)]
    elif isinstance(loc, LegacyPlainLocator):
        fields = [encode_filename(loc.filename), b64e(loc.payload)]
    else:
        raise TypeError(f"not a locator: {loc!r}")
    return DELIMITER.join(fields)


def share_url(base_url: str, loc: Locator | str) -> str:
    """``base_url#locator``; the fragment never reaches a server."""
    text = loc if isinstance(loc, str) else format_locator(loc)
    return f"{base_url.split('#', 1)[0]}#{text}"
