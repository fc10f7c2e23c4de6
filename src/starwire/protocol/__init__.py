"""
Starwire wire protocol: message models and JSON codec.
"""

from .messages import (
    WireMessage,
    SubscribeMessage,
    UnsubscribeMessage,
    EventMessage,
    UpdateMessage,
    EventResponseMessage,
    decode_client_message,
    decode_server_message,
    encode,
)

__all__ = [
    "WireMessage",
    "SubscribeMessage",
    "UnsubscribeMessage",
    "EventMessage",
    "UpdateMessage",
    "EventResponseMessage",
    "decode_client_message",
    "decode_server_message",
    "encode",
]
