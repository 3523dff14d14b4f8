"""AetherShare v1 — cryptographic primitives.

  KDF:  PBKDF2-HMAC-SHA256, 100 000 iterations  (hashlib)       → 32-byte key
  AEAD: AES-256-GCM, 12-byte IV                   (cryptography)

Both are what the browser client used (WebCrypto), so links it minted open
here and the other way round.  Parameters are defined in profiles.py and
locked for v1.

Conventions:
  - password : str   (UTF-8 text; NOT bytes)
  - salt     : bytes, exactly 16 bytes  (header ``salt``)
  - nonce    : bytes, exactly 12 bytes  (header ``iv``)
  - ciphertext layout: encrypted bytes || 16-byte GCM tag

Every decryption failure (wrong password, flipped bit, truncated data, bad
salt/iv length) surfaces as the same AuthenticationError with the same
message.
"""

import hashlib
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import AuthenticationError
from .profiles import (
    KEY_LEN,
    NONCE_LEN,
    PBKDF2_HASH,
    PBKDF2_ITERATIONS,
    SALT_LEN,
    TAG_LEN,
)


@dataclass(frozen=True)
class Sealed:
    """Output of :func:`encrypt`: everything a receiver needs besides the password."""

    salt:       bytes
    iv:         bytes
    ciphertext: bytes


# ── random material generation ────────────────────────────────────────────────

def new_salt() -> bytes:
    """Return 16 cryptographically-random bytes for the PBKDF2 salt."""
    return os.urandom(SALT_LEN)


def new_nonce() -> bytes:
    """Return 12 cryptographically-random bytes for the AEAD nonce."""
    return os.urandom(NONCE_LEN)


# ── key derivation ────────────────────────────────────────────────────────────

def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 32-byte key from *password* and *salt* with PBKDF2-HMAC-SHA256.

    Deterministic for a fixed (password, salt) pair; the iteration count is
    locked in profiles.py so links stay openable.
    """
    if len(salt) != SALT_LEN:
        raise ValueError(f"salt must be {SALT_LEN} bytes, got {len(salt)}")

    return hashlib.pbkdf2_hmac(
        PBKDF2_HASH,
        password.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
        dklen=KEY_LEN,
    )


# ── key-level AEAD ────────────────────────────────────────────────────────────

def seal(plaintext: bytes, key: bytes, nonce: bytes) -> bytes:
    """AES-256-GCM encrypt.  Returns ciphertext || 16-byte tag."""
    if len(key)   != KEY_LEN:   raise ValueError("key must be 32 bytes")
    if len(nonce) != NONCE_LEN: raise ValueError("nonce must be 12 bytes")

    return AESGCM(key).encrypt(nonce, bytes(plaintext), None)


def unseal(ciphertext: bytes, key: bytes, nonce: bytes) -> bytes:
    """AES-256-GCM decrypt.  Raises AuthenticationError if the tag fails."""
    if len(key) != KEY_LEN or len(nonce) != NONCE_LEN or len(ciphertext) < TAG_LEN:
        raise AuthenticationError()
    try:
        return AESGCM(key).decrypt(nonce, bytes(ciphertext), None)
    except InvalidTag:
        raise AuthenticationError() from None


# ── password-level API ────────────────────────────────────────────────────────

def encrypt(data: bytes, password: str) -> Sealed:
    """Encrypt *data* under *password* with a fresh salt and nonce."""
    if not password:
        raise ValueError("password must be a non-empty string")

    salt  = new_salt()
    nonce = new_nonce()
    key   = derive_key(password, salt)
    return Sealed(salt=salt, iv=nonce, ciphertext=seal(data, key, nonce))


def decrypt(ciphertext: bytes, password: str, salt: bytes, iv: bytes) -> bytes:
    """Inverse of :func:`encrypt`.

    Raises AuthenticationError on a wrong password or any tampering; the
    caller cannot tell which.
    """
    if len(salt) != SALT_LEN or len(iv) != NONCE_LEN:
        raise AuthenticationError()
    key = derive_key(password, salt)
    return unseal(ciphertext, key, iv)
