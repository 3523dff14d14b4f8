#!/usr/bin/env python3
"""
test_stages.py — compression and crypto stages.

Tests:
  1. zstd round-trip (empty, text, random)
  2. Legacy gzip payloads still inflate
  3. Corrupt streams raise CorruptStream
  4. Lossy image transcode (WebP, pass-through rules)
  5. Encrypt / decrypt round-trip, wrong password
  6. Any single bit flip is rejected
"""
from __future__ import annotations
import gzip, io, os, sys
sys.path.insert(0, os.path.dirname(__file__))

import numpy as np
import pytest
from PIL import Image

from aether.compress import compress, decompress, transcode_image
from aether.crypto import decrypt, derive_key, encrypt, seal, unseal
from aether.errors import AuthenticationError, CorruptStream
from aether.profiles import NONCE_LEN, SALT_LEN, TAG_LEN


# ─────────────────────────────────────────────────────────────────────────────
# 1–3. Compression
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("data", [
    b"",
    b"hello world " * 200,
    bytes(np.random.default_rng(7).integers(0, 256, 5000, dtype=np.uint8)),
])
def test_compress_roundtrip(data):
    assert decompress(compress(data)) == data


def test_compress_shrinks_repetitive_input():
    data = b"aether " * 1000
    assert len(compress(data)) < len(data) // 10


def test_legacy_gzip_payload():
    data = "browser era ✓".encode("utf-8") * 50
    assert decompress(gzip.compress(data)) == data


@pytest.mark.parametrize("blob", [
    b"definitely not compressed",
    b"\x1f\x8b" + b"\x00" * 20,
    compress(b"x" * 1000)[:-4],
])
def test_corrupt_stream(blob):
    with pytest.raises(CorruptStream):
        decompress(blob)


# ─────────────────────────────────────────────────────────────────────────────
# 4. Image transcode
# ─────────────────────────────────────────────────────────────────────────────

def _png(size=(128, 128)) -> bytes:
    rng = np.random.default_rng(3)
    pixels = rng.integers(0, 256, (size[1], size[0], 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels, "RGB").save(buf, format="PNG")
    return buf.getvalue()


def test_transcode_png_to_webp():
    png = _png()
    out = transcode_image(png, 0.7, "image/png")
    assert len(out) < len(png)
    with Image.open(io.BytesIO(out)) as img:
        assert img.format == "WEBP"
        assert img.size == (128, 128)


def test_transcode_passes_through_non_images():
    data = b"%PDF-1.7 not an image"
    assert transcode_image(data, 0.7, "application/pdf") is data
    assert transcode_image(data, 0.7, "image/png") is data


def test_transcode_quality_range():
    with pytest.raises(ValueError):
        transcode_image(_png(), 0.0)


# ─────────────────────────────────────────────────────────────────────────────
# 5. Encryption
# ─────────────────────────────────────────────────────────────────────────────

def test_encrypt_roundtrip():
    sealed = encrypt(b"top secret", "hunter2")
    assert len(sealed.salt) == SALT_LEN
    assert len(sealed.iv) == NONCE_LEN
    assert len(sealed.ciphertext) == len(b"top secret") + TAG_LEN
    assert decrypt(sealed.ciphertext, "hunter2", sealed.salt, sealed.iv) == b"top secret"


def test_seal_is_aes_256_gcm():
    # GCM reference vectors: zero key, zero IV, empty and one zero block
    key, iv = bytes(32), bytes(12)
    assert seal(b"", key, iv).hex() == "530f8afbc74536b9a963b4f1c4cb738b"
    assert seal(bytes(16), key, iv).hex() == (
        "cea7403d4d606b6e074ec5d3baf39d18" "d0d1c8a799996bf0265b98b5d48ab919"
    )


def test_encrypt_empty_payload():
    sealed = encrypt(b"", "pw")
    assert decrypt(sealed.ciphertext, "pw", sealed.salt, sealed.iv) == b""


def test_fresh_salt_and_nonce_each_call():
    a, b = encrypt(b"same", "pw"), encrypt(b"same", "pw")
    assert a.salt != b.salt and a.iv != b.iv and a.ciphertext != b.ciphertext


def test_wrong_password():
    sealed = encrypt(b"top secret", "hunter2")
    with pytest.raises(AuthenticationError) as exc:
        decrypt(sealed.ciphertext, "hunter3", sealed.salt, sealed.iv)
    assert str(exc.value) == "decryption failed"


def test_empty_password_rejected():
    with pytest.raises(ValueError):
        encrypt(b"x", "")


# ─────────────────────────────────────────────────────────────────────────────
# 6. Tamper detection
# ─────────────────────────────────────────────────────────────────────────────

def test_every_bit_flip_rejected():
    salt, nonce = os.urandom(SALT_LEN), os.urandom(NONCE_LEN)
    key = derive_key("pw", salt)
    ct  = seal(b"payload!", key, nonce)

    for i in range(len(ct) * 8):
        tampered = bytearray(ct)
        tampered[i // 8] ^= 1 << (i % 8)
        with pytest.raises(AuthenticationError):
            unseal(bytes(tampered), key, nonce)


def test_tamper_through_password_api():
    sealed = encrypt(b"payload", "pw")
    tampered = bytearray(sealed.ciphertext)
    tampered[0] ^= 0x80
    with pytest.raises(AuthenticationError):
        decrypt(bytes(tampered), "pw", sealed.salt, sealed.iv)


def test_truncated_ciphertext():
    sealed = encrypt(b"payload", "pw")
    with pytest.raises(AuthenticationError):
        decrypt(sealed.ciphertext[:TAG_LEN - 1], "pw", sealed.salt, sealed.iv)
