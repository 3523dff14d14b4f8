"""AetherShare — exception taxonomy.

Every stage raises one of these; nothing in the pipeline terminates the
process.  :mod:`aether.api` folds them into a :class:`~aether.diagnostics.FailureCode`
for the user-facing layer.
"""


class AetherError(Exception):
    """Base class for every failure raised by the pipeline."""


class DecodeError(AetherError):
    """The input could not be turned back into a file."""


class MalformedHeader(DecodeError):
    """Header text is not valid base64 / JSON or lacks a filename."""


class CorruptStream(DecodeError):
    """Compressed (or base64 payload) bytes are invalid."""


class UnsupportedLocator(DecodeError):
    """Text matches no known locator scheme or has the wrong segment count."""


class AuthenticationError(AetherError):
    """Decryption failed.

    Raised for a wrong password and for tampered ciphertext alike; the two
    causes are deliberately indistinguishable.
    """

    def __init__(self, message: str = "decryption failed"):
        super().__init__(message)


class PasswordRequired(AetherError):
    """The payload is encrypted and no password was supplied."""


class TransferAborted(AetherError):
    """The peer channel closed (or misbehaved) before the transfer completed."""

    def __init__(self, received: int, expected: int | None, reason: str = "connection closed"):
        self.received = received
        self.expected = expected
        self.reason   = reason
        exp = "?" if expected is None else str(expected)
        super().__init__(f"transfer aborted ({reason}): received {received} of {exp} bytes")


class NotALocator(UnsupportedLocator):
    """The text has no delimiter at all; the caller should show the sender view."""
