"""Message envelope and handler/subscription types."""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

T = TypeVar("T")


def generate_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Message(Generic[T]):
    """A single envelope on the bus. Never mutated after creation."""

    type: str
    source: str
    payload: T
    id: str = field(default_factory=generate_id)
    timestamp: int = field(default_factory=now_ms)
    target: Optional[str] = None
    correlation_id: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        """Serialize message for API responses."""
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "target": self.target,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "correlationId": self.correlation_id,
            "meta": self.meta,
        }


@dataclass
class MessageHandler:
    """Handler registered on the bus.

    ``handle`` may be a plain function or a coroutine function; its return
    value becomes the dispatch result. ``filter`` returning False skips the
    handler for that message.
    """

    handle: Callable[[Message], Any]
    filter: Optional[Callable[[Message], bool]] = None
    # Descriptive only; dispatch order comes from the subscribe options
    priority: int = 0

    @classmethod
    def wrap(cls, handler: Union["MessageHandler", Callable[[Message], Any]]) -> "MessageHandler":
        if isinstance(handler, MessageHandler):
            return handler
        if not callable(handler):
            raise TypeError(f"Message handler must be callable, got {type(handler).__name__}")
        return cls(handle=handler)


@dataclass
class SubscribeOptions:
    # Accepted publishers: a single id, a list of ids, or '*' for anyone
    source: Optional[Union[str, List[str]]] = None
    priority: Optional[int] = None

    def sources(self) -> Optional[List[str]]:
        if not self.source:
            return None
        if isinstance(self.source, str):
            return [self.source]
        return list(self.source)


@dataclass(eq=False)
class Subscription:
    """One registration of a handler under a type pattern.

    Compared by identity so the same handler can be subscribed twice.
    """

    type: str
    handler: MessageHandler
    options: SubscribeOptions = field(default_factory=SubscribeOptions)
    plugin_id: Optional[str] = None

    @property
    def priority(self) -> int:
        return self.options.priority or 0
