"""AetherShare — receive result type and failure codes."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import (
    AuthenticationError,
    DecodeError,
    NotALocator,
    PasswordRequired,
    TransferAborted,
)


class FailureCode(str, Enum):
    """Reason a receive attempt did not produce the file."""

    OK                = "ok"
    NOT_A_LOCATOR     = "not_a_locator"      # no delimiter at all: show the sender view
    DECODE_FAILED     = "decode_failed"      # header / payload / scheme could not be decoded
    PASSWORD_REQUIRED = "password_required"  # encrypted payload, no password given
    WRONG_PASSWORD    = "wrong_password"     # AEAD rejected: wrong password OR tampered data
    CONNECTION_LOST   = "connection_lost"    # beam peer unreachable or closed mid-transfer


def classify_failure(exc: BaseException) -> FailureCode:
    """Map a pipeline exception onto the single user-facing classification."""
    if isinstance(exc, PasswordRequired):
        return FailureCode.PASSWORD_REQUIRED
    if isinstance(exc, AuthenticationError):
        return FailureCode.WRONG_PASSWORD
    if isinstance(exc, (TransferAborted, ConnectionError, TimeoutError, OSError)):
        return FailureCode.CONNECTION_LOST
    if isinstance(exc, NotALocator):
        return FailureCode.NOT_A_LOCATOR
    if isinstance(exc, DecodeError):
        return FailureCode.DECODE_FAILED
    raise TypeError(f"not a pipeline failure: {exc!r}")


@dataclass
class ReceiveResult:
    """Full outcome returned by :meth:`aether.api.LinkAssembler.receive`.

    On success  : ``success=True``,  ``data`` holds the file bytes (or ``beam``
                  holds the peer session descriptor for a BEAM locator).
    On failure  : ``success=False``, ``failure`` explains why, ``data`` is None.
    """

    success:  bool
    data:     Optional[bytes]       = None
    header:   Optional[object]      = None    # FileHeader; untyped to avoid an import cycle
    beam:     Optional[object]      = None    # BeamLocator
    failure:  Optional[FailureCode] = None
    kind:     Optional[str]         = None    # LocatorKind value
    detail:   Optional[str]         = None

    def summary(self) -> str:
        name = getattr(self.header, "filename", None) or "?"
        if self.success:
            if self.data is None:
                return f"[OK] {name} via beam {getattr(self.beam, 'peer_address', '?')}"
            return f"[OK] {name}  {len(self.data)} bytes  ({self.kind})"
        return f"[FAIL:{self.failure.value}]  {name}"

    def __repr__(self) -> str:
        return f"ReceiveResult({self.summary()})"
