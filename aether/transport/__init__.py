"""Beam path: chunked transfer of a payload over an ordered peer channel."""

from .channel import Channel, LoopbackChannel, StreamChannel, open_channel, serve_channel
from .frames import ChunkFrame, FrameError, MetaFrame, decode_frame, encode_frame
from .sender import send_stream
from .session import SessionState, TransferSession, receive_stream

__all__ = [
    "Channel", "LoopbackChannel", "StreamChannel", "open_channel", "serve_channel",
    "ChunkFrame", "FrameError", "MetaFrame", "decode_frame", "encode_frame",
    "send_stream",
    "SessionState", "TransferSession", "receive_stream",
]
