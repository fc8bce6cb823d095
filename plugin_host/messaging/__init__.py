"""In-process publish/subscribe and request/reply message bus."""

from .bus import MessageBus, MessageBusAPI, ScopedMessageBus
from .matching import match_type
from .message import Message, MessageHandler, SubscribeOptions

__all__ = [
    "MessageBus",
    "MessageBusAPI",
    "ScopedMessageBus",
    "match_type",
    "Message",
    "MessageHandler",
    "SubscribeOptions",
]
