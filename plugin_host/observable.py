"""Minimal observable value holder (subscribe/set/get)."""

import logging
from typing import Callable, Dict, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], None]
Unsubscribe = Callable[[], None]


class Observable(Generic[T]):
    """Holds a value and notifies listeners whenever a new value is set.

    A listener is called once with the current value as soon as it subscribes,
    then again after every ``set``/``update``.
    """

    def __init__(self, value: T):
        self._value = value
        self._listeners: Dict[int, Listener] = {}
        self._next_key = 0

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        for listener in list(self._listeners.values()):
            try:
                listener(value)
            except Exception:
                logger.exception("Observable listener failed")

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def subscribe(self, listener: Listener) -> Unsubscribe:
        key = self._next_key
        self._next_key += 1
        self._listeners[key] = listener
        try:
            listener(self._value)
        except Exception:
            logger.exception("Observable listener failed")

        def unsubscribe() -> None:
            self._listeners.pop(key, None)

        return unsubscribe

    def readonly(self) -> "ReadableObservable[T]":
        return ReadableObservable(self)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class ReadableObservable(Generic[T]):
    """Read-only view over an Observable: ``get`` and ``subscribe`` only."""

    def __init__(self, source: Observable[T]):
        self._source = source

    def get(self) -> T:
        return self._source.get()

    def subscribe(self, listener: Listener) -> Unsubscribe:
        return self._source.subscribe(listener)
