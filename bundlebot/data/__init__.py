"""Trade stream connectivity and message decoding."""

from __future__ import annotations

from bundlebot.data.stream_client import ConnectionPhase, StreamClient, StreamParams, SubscriptionState
from bundlebot.data.stream_messages import DecodeResult, MessageKind, decode_stream_message

__all__ = [
    "ConnectionPhase",
    "DecodeResult",
    "MessageKind",
    "StreamClient",
    "StreamParams",
    "SubscriptionState",
    "decode_stream_message",
]
