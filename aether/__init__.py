"""AetherShare — serverless file sharing pipeline.

Public API:
    LinkAssembler().build_inline_link(file, options)  -> "AETHER|…" locator
    LinkAssembler().parse_link(text, password=None)   -> ParsedLink
    LinkAssembler().receive(text, password=None)      -> ReceiveResult
    LinkAssembler().beam_send / beam_receive / receive_beam / serve_beam
    LinkAssembler().announce(text, sink)              -> acoustic FSK chirp
"""

from .api import BeamHost, LinkAssembler, LinkOptions, ParsedLink, SourceFile
from .diagnostics import FailureCode, ReceiveResult
from .errors import (
    AetherError,
    AuthenticationError,
    CorruptStream,
    MalformedHeader,
    NotALocator,
    PasswordRequired,
    TransferAborted,
    UnsupportedLocator,
)
from .header import FileHeader, GeoFence

__version__ = "1.0.0"
__all__ = [
    "BeamHost", "LinkAssembler", "LinkOptions", "ParsedLink", "SourceFile",
    "FailureCode", "ReceiveResult",
    "AetherError", "AuthenticationError", "CorruptStream", "MalformedHeader",
    "NotALocator", "PasswordRequired", "TransferAborted", "UnsupportedLocator",
    "FileHeader", "GeoFence",
]
