"""AetherShare v1 — file header codec.

The header rides in the second segment of an ``AETHER|…`` locator as
base64 of compact UTF-8 JSON:

  {"filename": "…",            required, non-empty
   "mime":     "image/png",    optional
   "encrypted": true,          always present
   "vibe":     "zen",          optional, opaque theme key
   "expiry":   1735689600000,  optional, epoch milliseconds
   "geo":      {"lat": …, "lng": …, "radius": …},   optional
   "salt":     "<b64 16 B>",   present iff encrypted
   "iv":       "<b64 12 B>"}   present iff encrypted

Text goes through UTF-8 before base64, so multi-byte filenames survive the
round trip.  Headers minted by the browser client were ``btoa`` of the JSON
string, i.e. Latin-1; decode falls back to that when UTF-8 fails.
"""

import base64
import binascii
import json
import math
from dataclasses import dataclass
from typing import Optional

from .errors import MalformedHeader
from .profiles import DEFAULT_GEO_RADIUS_M, NONCE_LEN, SALT_LEN


# ── base64 helpers ────────────────────────────────────────────────────────────

def b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64d(text: str) -> bytes:
    """Strict standard-alphabet decode.  Raises binascii.Error on bad input."""
    return base64.b64decode(text.encode("ascii"), validate=True)


# ── types ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GeoFence:
    lat:    float
    lng:    float
    radius: float = DEFAULT_GEO_RADIUS_M

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lng": self.lng, "radius": self.radius}

    @classmethod
    def from_dict(cls, d) -> "GeoFence":
        if not isinstance(d, dict):
            raise MalformedHeader("geo must be an object")
        try:
            lat = float(d["lat"])
            lng = float(d["lng"])
            radius = float(d.get("radius", DEFAULT_GEO_RADIUS_M))
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedHeader(f"bad geo field: {exc}") from None
        if not all(math.isfinite(v) for v in (lat, lng, radius)):
            raise MalformedHeader("geo fields must be finite numbers")
        return cls(lat=lat, lng=lng, radius=radius)


@dataclass(frozen=True)
class FileHeader:
    """File metadata carried alongside a payload."""

    filename:  str
    mime:      Optional[str]      = None
    encrypted: bool               = False
    vibe:      Optional[str]      = None
    expiry:    Optional[int]      = None
    geo:       Optional[GeoFence] = None
    salt:      Optional[bytes]    = None
    iv:        Optional[bytes]    = None

    def __post_init__(self):
        if not isinstance(self.filename, str) or not self.filename:
            raise MalformedHeader("filename must be a non-empty string")
        crypto_ok = (
            isinstance(self.salt, bytes) and len(self.salt) == SALT_LEN
            and isinstance(self.iv, bytes) and len(self.iv) == NONCE_LEN
        )
        if self.encrypted and not crypto_ok:
            raise MalformedHeader(
                f"encrypted header needs a {SALT_LEN}-byte salt and {NONCE_LEN}-byte iv"
            )
        if not self.encrypted and (self.salt is not None or self.iv is not None):
            raise MalformedHeader("salt/iv present on an unencrypted header")

    # ── dict form ─────────────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        d: dict = {"filename": self.filename}
        if self.mime is not None:
            d["mime"] = self.mime
        d["encrypted"] = self.encrypted
        if self.vibe is not None:
            d["vibe"] = self.vibe
        if self.expiry is not None:
            d["expiry"] = self.expiry
        if self.geo is not None:
            d["geo"] = self.geo.to_dict()
        if self.encrypted:
            d["salt"] = b64e(self.salt)
            d["iv"]   = b64e(self.iv)
        return d

    @classmethod
    def from_dict(cls, d) -> "FileHeader":
        if not isinstance(d, dict):
            raise MalformedHeader("header is not a JSON object")
        filename = d.get("filename")
        if not isinstance(filename, str) or not filename:
            raise MalformedHeader("header lacks a filename")

        mime = d.get("mime")
        vibe = d.get("vibe")
        if mime is not None and not isinstance(mime, str):
            raise MalformedHeader("mime must be a string")
        if vibe is not None and not isinstance(vibe, str):
            raise MalformedHeader("vibe must be a string")

        expiry = d.get("expiry")
        if expiry is not None:
            if isinstance(expiry, bool) or not isinstance(expiry, (int, float)):
                raise MalformedHeader("expiry must be a number")
            if not math.isfinite(expiry):
                raise MalformedHeader("expiry must be finite")
            expiry = int(expiry)

        geo = GeoFence.from_dict(d["geo"]) if d.get("geo") is not None else None

        encrypted = d.get("encrypted", False)
        if not isinstance(encrypted, bool):
            raise MalformedHeader("encrypted must be true or false")
        salt = iv = None
        if encrypted:
            try:
                salt = b64d(d["salt"])
                iv   = b64d(d["iv"])
            except (KeyError, TypeError, AttributeError, binascii.Error, UnicodeEncodeError):
                raise MalformedHeader("encrypted header has missing or invalid salt/iv") from None

        return cls(
            filename=filename,
            mime=mime,
            encrypted=encrypted,
            vibe=vibe,
            expiry=expiry,
            geo=geo,
            salt=salt,
            iv=iv,
        )


# ── text codec ────────────────────────────────────────────────────────────────

def encode_header(header: FileHeader) -> str:
    """Serialise *header* to base64(UTF-8 compact JSON).  Deterministic."""
    raw = json.dumps(header.to_dict(), ensure_ascii=False, separators=(",", ":"))
    return b64e(raw.encode("utf-8"))


def decode_header(text: str) -> FileHeader:
    """Inverse of :func:`encode_header`.

    Raises MalformedHeader on bad base64, undecodable text, bad JSON or a
    missing filename.
    """
    try:
        raw = b64d(text)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        raise MalformedHeader("header is not valid base64") from None

    try:
        doc = raw.decode("utf-8")
    except UnicodeDecodeError:
        doc = raw.decode("latin-1")

    try:
        parsed = json.loads(doc)
    except json.JSONDecodeError as exc:
        raise MalformedHeader(f"header is not valid JSON: {exc.msg}") from None

    return FileHeader.from_dict(parsed)
