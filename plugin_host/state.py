"""Shared key/value state and a simple event emitter for core lifecycle events."""

import logging
from typing import Any, Callable, Dict, List, Optional

from plugin_host.observable import Observable, ReadableObservable

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


class StateManager:
    """Observable key/value state shared between plugins."""

    def __init__(self):
        self._stores: Dict[str, Observable] = {}

    def _get_or_create(self, key: str, initial: Any = None) -> Observable:
        if key not in self._stores:
            self._stores[key] = Observable(initial)
        return self._stores[key]

    def get(self, key: str, default: Any = None) -> Any:
        store = self._stores.get(key)
        if store is None:
            return default
        return store.get()

    def set(self, key: str, value: Any) -> None:
        self._get_or_create(key, value).set(value)

    def subscribe(self, key: str, handler: Callable[[Any], None]) -> Callable[[], None]:
        """Watch ``key``; the handler is called immediately with the current value."""
        return self._get_or_create(key).subscribe(handler)

    def get_store(self, key: str) -> ReadableObservable:
        return self._get_or_create(key).readonly()

    def keys(self) -> List[str]:
        return list(self._stores)

    def has(self, key: str) -> bool:
        return key in self._stores

    def delete(self, key: str) -> None:
        self._stores.pop(key, None)

    def clear(self) -> None:
        self._stores.clear()


class EventEmitter:
    """Named events with fire-and-forget listeners."""

    def __init__(self):
        self._listeners: Dict[str, List[EventHandler]] = {}

    def on(self, event: str, handler: EventHandler) -> Callable[[], None]:
        self._listeners.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            self.off(event, handler)

        return unsubscribe

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._listeners.get(event)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._listeners[event]

    def emit(self, event: str, data: Any = None) -> None:
        for handler in list(self._listeners.get(event, [])):
            try:
                handler(data)
            except Exception:
                logger.exception(f"Error in listener for event {event}")

    def remove_all_listeners(self, event: Optional[str] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def event_names(self) -> List[str]:
        return list(self._listeners)
