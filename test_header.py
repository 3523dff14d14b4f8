#!/usr/bin/env python3
"""
test_header.py — header codec and locator dispatch.

Tests:
  1. Header round-trip (non-ASCII filename, every optional field)
  2. Header invariants (encrypted ⇔ salt + iv)
  3. Malformed header text
  4. Locator dispatch on the four variants + the no-delimiter case
  5. Segment-count and field-shape errors
"""
from __future__ import annotations
import base64, json, os, sys
sys.path.insert(0, os.path.dirname(__file__))

import pytest

from aether.errors import CorruptStream, MalformedHeader, NotALocator, UnsupportedLocator
from aether.header import FileHeader, GeoFence, decode_header, encode_header
from aether.locator import (
    BeamLocator,
    InlineLocator,
    LegacyPlainLocator,
    LegacySecureLocator,
    LocatorKind,
    classify,
    encode_filename,
    format_locator,
    parse_locator,
    share_url,
)

SALT = bytes(range(16))
IV   = bytes(range(100, 112))


# ─────────────────────────────────────────────────────────────────────────────
# 1. Round-trip
# ─────────────────────────────────────────────────────────────────────────────

def test_header_roundtrip_non_ascii():
    header = FileHeader(
        filename="résumé 履歴書.pdf",
        mime="application/pdf",
        encrypted=True,
        vibe="zen",
        expiry=1_735_689_600_000,
        geo=GeoFence(lat=48.8566, lng=2.3522),
        salt=SALT,
        iv=IV,
    )
    assert decode_header(encode_header(header)) == header


def test_header_omits_absent_optionals():
    raw = json.loads(base64.b64decode(encode_header(FileHeader(filename="a.txt"))))
    assert raw == {"filename": "a.txt", "encrypted": False}


def test_header_accepts_browser_latin1():
    # btoa(JSON.stringify(...)) of a Latin-1 filename is not valid UTF-8
    text = base64.b64encode('{"filename":"café.txt","encrypted":false}'.encode("latin-1")).decode()
    assert decode_header(text).filename == "café.txt"


def test_geo_default_radius():
    assert GeoFence.from_dict({"lat": 1, "lng": 2}).radius == 5000.0


def test_empty_optional_strings_survive():
    header = FileHeader(filename="a.txt", mime="", vibe="")
    assert decode_header(encode_header(header)) == header


# ─────────────────────────────────────────────────────────────────────────────
# 2. Invariants
# ─────────────────────────────────────────────────────────────────────────────

def test_encrypted_requires_salt_and_iv():
    with pytest.raises(MalformedHeader):
        FileHeader(filename="a", encrypted=True)
    with pytest.raises(MalformedHeader):
        FileHeader(filename="a", encrypted=True, salt=SALT, iv=IV[:8])
    with pytest.raises(MalformedHeader):
        FileHeader(filename="a", salt=SALT, iv=IV)


def test_empty_filename_rejected():
    with pytest.raises(MalformedHeader):
        FileHeader(filename="")


# ─────────────────────────────────────────────────────────────────────────────
# 3. Malformed text
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("text", [
    "not base64!!",
    base64.b64encode(b"{not json").decode(),
    base64.b64encode(b"[1, 2]").decode(),
    base64.b64encode(b'{"mime": "text/plain"}').decode(),
    base64.b64encode(b'{"filename": "a", "encrypted": true}').decode(),
    base64.b64encode(b'{"filename": "a", "encrypted": "false"}').decode(),
    base64.b64encode(b'{"filename": "a", "encrypted": 1}').decode(),
    base64.b64encode(b'{"filename": "a", "expiry": 1e999}').decode(),
    base64.b64encode(b'{"filename": "a", "expiry": NaN}').decode(),
    base64.b64encode(b'{"filename": "a", "geo": {"lat": Infinity, "lng": 0}}').decode(),
    base64.b64encode(b'{"filename": "a", "encrypted": true, "salt": 5, "iv": 5}').decode(),
])
def test_decode_header_rejects(text):
    with pytest.raises(MalformedHeader):
        decode_header(text)


# ─────────────────────────────────────────────────────────────────────────────
# 4. Dispatch
# ─────────────────────────────────────────────────────────────────────────────

def test_dispatch_examples():
    inline = format_locator(InlineLocator(FileHeader(filename="a.txt"), b"xyz"))
    assert classify(inline) is LocatorKind.INLINE
    assert classify("BEAM|peer-1:9000|a.txt|10") is LocatorKind.BEAM
    assert classify("SECURE|a.txt|c2FsdA==|aXY=|cGF5") is LocatorKind.LEGACY_SECURE
    assert classify("a.txt|cGF5bG9hZA==") is LocatorKind.LEGACY_PLAIN
    assert classify("hello world") is LocatorKind.NONE


def test_parse_each_variant():
    loc = parse_locator(format_locator(InlineLocator(FileHeader(filename="a.txt"), b"xyz")))
    assert isinstance(loc, InlineLocator) and loc.payload == b"xyz"

    loc = parse_locator("BEAM|10.0.0.5:7070|my%20file.bin|1000000")
    assert loc == BeamLocator("10.0.0.5:7070", "my file.bin", 1_000_000)

    secure = LegacySecureLocator("ü.txt", SALT, IV, b"\x00\x01")
    assert parse_locator(format_locator(secure)) == secure

    plain = parse_locator("a%7Cb.txt|cGF5bG9hZA==")
    assert plain == LegacyPlainLocator("a|b.txt", b"payload")


def test_share_url_fragment_roundtrip():
    loc = BeamLocator("host:1", "x y.txt", 3)
    url = share_url("https://example.org/app/#old", loc)
    assert url.startswith("https://example.org/app/#BEAM|")
    assert parse_locator(url) == loc


def test_filename_encoding_matches_encode_uri_component():
    assert encode_filename("a b(1)!.txt") == "a%20b(1)!.txt"
    assert encode_filename("a|b") == "a%7Cb"


# ─────────────────────────────────────────────────────────────────────────────
# 5. Errors
# ─────────────────────────────────────────────────────────────────────────────

def test_no_delimiter_is_not_a_locator():
    with pytest.raises(NotALocator):
        parse_locator("just some text")


@pytest.mark.parametrize("text", [
    "AETHER|only-two",
    "BEAM|peer|a.txt",
    "BEAM|peer|a.txt|ten",
    "SECURE|a.txt|c2FsdA==|cGF5",
    "a.txt|cGF5|extra",
])
def test_wrong_segment_count(text):
    with pytest.raises(UnsupportedLocator):
        parse_locator(text)


def test_secure_salt_length_checked():
    short = base64.b64encode(b"short").decode()
    iv    = base64.b64encode(IV).decode()
    with pytest.raises(UnsupportedLocator):
        parse_locator(f"SECURE|a.txt|{short}|{iv}|cGF5")


def test_bad_payload_base64_is_corrupt_stream():
    with pytest.raises(CorruptStream):
        parse_locator("a.txt|@@@@")
