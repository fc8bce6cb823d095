"""Message bus - pattern-based pub/sub with correlation-based request/reply.

All bookkeeping (subscriptions, pending requests, history) is plain mutable
state owned by one event loop. Interleaving only happens at ``await`` points,
so no locking is needed as long as the bus is used from a single loop.
"""

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Set, Tuple, Union

from plugin_host.constants import (
    CORE_SOURCE,
    HISTORY_PAGE_SIZE,
    MESSAGE_HISTORY_LIMIT,
    REQUEST_TIMEOUT,
)
from plugin_host.errors import RequestTimeoutError
from plugin_host.messaging.matching import WILDCARD, match_type
from plugin_host.messaging.message import (
    Message,
    MessageHandler,
    SubscribeOptions,
    Subscription,
    generate_id,
)

logger = logging.getLogger(__name__)

HandlerLike = Union[MessageHandler, Callable[[Message], Any]]
Unsubscribe = Callable[[], None]


class MessageBusAPI(Protocol):
    """The surface plugins code against."""

    def send(self, type: str, payload: Any = None, *, target: Optional[str] = None,
             meta: Optional[Dict[str, Any]] = None) -> None: ...

    async def request(self, type: str, payload: Any = None, *, target: Optional[str] = None,
                      meta: Optional[Dict[str, Any]] = None,
                      timeout: Optional[float] = None) -> Any: ...

    def subscribe(self, type: str, handler: HandlerLike, *,
                  source: Optional[Union[str, List[str]]] = None,
                  priority: Optional[int] = None) -> Unsubscribe: ...

    async def once(self, type: str, *, source: Optional[Union[str, List[str]]] = None,
                   priority: Optional[int] = None) -> Message: ...


@dataclass
class PendingRequest:
    future: asyncio.Future
    timeout_handle: asyncio.TimerHandle


class MessageBus:
    """Shared bus. Publishes as ``core``; use ``create_scoped`` for plugin identities."""

    def __init__(
        self,
        history_limit: int = MESSAGE_HISTORY_LIMIT,
        default_timeout: float = REQUEST_TIMEOUT,
    ):
        self.default_timeout = default_timeout
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._pending: Dict[str, PendingRequest] = {}
        self._history: Deque[Message] = deque(maxlen=history_limit)
        self._tasks: Set[asyncio.Task] = set()
        self._monitors: List[Callable[[Message], None]] = []

    # ------------------------------------------------------------------
    # Public API (source = core)
    # ------------------------------------------------------------------

    def send(self, type: str, payload: Any = None, *, target: Optional[str] = None,
             meta: Optional[Dict[str, Any]] = None) -> None:
        """Publish a message and dispatch it in the background.

        Must be called from a running event loop. The dispatch result is discarded.
        """
        self._send(CORE_SOURCE, type, payload, target, meta)

    async def request(self, type: str, payload: Any = None, *, target: Optional[str] = None,
                      meta: Optional[Dict[str, Any]] = None,
                      timeout: Optional[float] = None) -> Any:
        """Publish a message and wait for the dispatch result.

        Resolves with the return value of the last handler that ran successfully.
        If no handler answers (none matched, or all of them raised) the request
        stays open until it times out. Raises RequestTimeoutError after
        ``timeout`` seconds; handlers still running at that point are not
        interrupted and their result is dropped.
        """
        return await self._request(CORE_SOURCE, type, payload, target, meta, timeout)

    def subscribe(self, type: str, handler: HandlerLike, *,
                  source: Optional[Union[str, List[str]]] = None,
                  priority: Optional[int] = None) -> Unsubscribe:
        """Register ``handler`` under the pattern ``type``; returns an unsubscribe closure."""
        return self._subscribe(type, handler, SubscribeOptions(source=source, priority=priority))

    async def once(self, type: str, *, source: Optional[Union[str, List[str]]] = None,
                   priority: Optional[int] = None) -> Message:
        """Wait for the next message matching ``type``."""
        return await self._once(type, SubscribeOptions(source=source, priority=priority))

    def create_scoped(self, plugin_id: str) -> "ScopedMessageBus":
        return ScopedMessageBus(self, plugin_id)

    def get_history(self, type: Optional[str] = None, limit: int = HISTORY_PAGE_SIZE) -> List[Message]:
        """Most recent ``limit`` messages, optionally filtered by a type pattern."""
        history = list(self._history)
        if type:
            history = [m for m in history if match_type(type, m.type)]
        return history[-limit:]

    def clear_history(self) -> None:
        self._history.clear()

    def monitor(self, listener: Callable[[Message], None]) -> Unsubscribe:
        """Observe every published message without taking part in dispatch.

        Monitors never answer requests. Called synchronously on publish.
        """
        self._monitors.append(listener)

        def unsubscribe() -> None:
            if listener in self._monitors:
                self._monitors.remove(listener)

        return unsubscribe

    async def drain(self) -> None:
        """Wait until every in-flight dispatch has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def patterns(self) -> List[str]:
        return list(self._subscriptions)

    def subscription_count(self, pattern: Optional[str] = None) -> int:
        if pattern is not None:
            return len(self._subscriptions.get(pattern, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    # ------------------------------------------------------------------
    # Shared implementation (also used by ScopedMessageBus)
    # ------------------------------------------------------------------

    def _record(self, source: str, type: str, payload: Any, target: Optional[str],
                meta: Optional[Dict[str, Any]], correlation_id: Optional[str] = None) -> Message:
        message = Message(
            type=type,
            source=source,
            payload=payload,
            target=target,
            meta=meta,
            correlation_id=correlation_id,
        )
        self._history.append(message)
        for listener in list(self._monitors):
            try:
                listener(message)
            except Exception:
                logger.exception(f"Message monitor failed for {type}")
        return message

    def _schedule(self, message: Message) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._dispatch(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _send(self, source: str, type: str, payload: Any, target: Optional[str],
              meta: Optional[Dict[str, Any]]) -> None:
        message = self._record(source, type, payload, target, meta)
        self._schedule(message)

    async def _request(self, source: str, type: str, payload: Any, target: Optional[str],
                       meta: Optional[Dict[str, Any]], timeout: Optional[float]) -> Any:
        if timeout is None:
            timeout = self.default_timeout
        loop = asyncio.get_running_loop()
        correlation_id = generate_id()

        future = loop.create_future()
        timeout_handle = loop.call_later(timeout, self._expire_request, correlation_id, type, timeout)
        self._pending[correlation_id] = PendingRequest(future=future, timeout_handle=timeout_handle)

        message = self._record(source, type, payload, target, meta, correlation_id=correlation_id)
        task = self._schedule(message)
        task.add_done_callback(partial(self._complete_request, correlation_id))

        try:
            return await future
        finally:
            # Only still present if the caller stopped waiting (cancellation)
            pending = self._pending.pop(correlation_id, None)
            if pending is not None:
                pending.timeout_handle.cancel()

    def _complete_request(self, correlation_id: str, task: asyncio.Task) -> None:
        if correlation_id not in self._pending:
            logger.debug(f"Dropping late result for request {correlation_id}")
            return

        if not task.cancelled() and task.exception() is None:
            answered, result = task.result()
            if not answered:
                # Left to the timeout
                logger.debug(f"No handler answered request {correlation_id}")
                return

        pending = self._pending.pop(correlation_id)
        pending.timeout_handle.cancel()
        if pending.future.done():
            return
        if task.cancelled():
            pending.future.cancel()
        elif task.exception() is not None:
            pending.future.set_exception(task.exception())
        else:
            pending.future.set_result(result)

    def _expire_request(self, correlation_id: str, type: str, timeout: float) -> None:
        pending = self._pending.pop(correlation_id, None)
        if pending is None:
            return
        logger.warning(f"Request {correlation_id} for {type} timed out after {timeout}s")
        if not pending.future.done():
            pending.future.set_exception(RequestTimeoutError(type, timeout))

    def _subscribe(self, type: str, handler: HandlerLike, options: SubscribeOptions,
                   plugin_id: Optional[str] = None) -> Unsubscribe:
        subscription = Subscription(
            type=type,
            handler=MessageHandler.wrap(handler),
            options=options,
            plugin_id=plugin_id,
        )
        self._subscriptions.setdefault(type, []).append(subscription)
        logger.debug(f"Subscribed to '{type}'" + (f" for plugin {plugin_id}" if plugin_id else ""))

        def unsubscribe() -> None:
            bucket = self._subscriptions.get(type)
            if bucket is None or subscription not in bucket:
                return
            bucket.remove(subscription)
            if not bucket:
                del self._subscriptions[type]
            logger.debug(f"Unsubscribed from '{type}'")

        return unsubscribe

    async def _once(self, type: str, options: SubscribeOptions,
                    plugin_id: Optional[str] = None) -> Message:
        future = asyncio.get_running_loop().create_future()

        def handle(message: Message) -> None:
            unsubscribe()
            if not future.done():
                future.set_result(message)

        unsubscribe = self._subscribe(type, MessageHandler(handle=handle), options, plugin_id)
        try:
            return await future
        finally:
            unsubscribe()

    def _get_subscriptions(self, type: str) -> List[Subscription]:
        matched: List[Subscription] = []
        for pattern, subscriptions in self._subscriptions.items():
            if match_type(pattern, type):
                matched.extend(subscriptions)
        # sorted() is stable: equal priorities keep subscription order
        return sorted(matched, key=lambda s: s.priority, reverse=True)

    async def _dispatch(self, message: Message) -> Tuple[bool, Any]:
        """Run matching handlers in priority order.

        Returns ``(answered, result)`` where ``answered`` is True once at least
        one handler returned without raising.
        """
        answered = False
        result = None

        for subscription in self._get_subscriptions(message.type):
            sources = subscription.options.sources()
            if sources and message.source not in sources and WILDCARD not in sources:
                continue

            if message.target and subscription.plugin_id and message.target != subscription.plugin_id:
                continue

            try:
                handler = subscription.handler
                if handler.filter is not None and not handler.filter(message):
                    continue
                value = handler.handle(message)
                if inspect.isawaitable(value):
                    value = await value
                result = value
                answered = True
            except Exception:
                logger.exception(f"Error in message handler for {message.type}")

        return answered, result


class ScopedMessageBus:
    """Facade over a shared MessageBus bound to one plugin identity.

    Outgoing messages carry ``source = plugin_id``; subscriptions made here
    only receive targeted messages addressed to this plugin.
    """

    def __init__(self, bus: MessageBus, plugin_id: str):
        self._bus = bus
        self.plugin_id = plugin_id

    def send(self, type: str, payload: Any = None, *, target: Optional[str] = None,
             meta: Optional[Dict[str, Any]] = None) -> None:
        self._bus._send(self.plugin_id, type, payload, target, meta)

    async def request(self, type: str, payload: Any = None, *, target: Optional[str] = None,
                      meta: Optional[Dict[str, Any]] = None,
                      timeout: Optional[float] = None) -> Any:
        return await self._bus._request(self.plugin_id, type, payload, target, meta, timeout)

    def subscribe(self, type: str, handler: HandlerLike, *,
                  source: Optional[Union[str, List[str]]] = None,
                  priority: Optional[int] = None) -> Unsubscribe:
        options = SubscribeOptions(source=source, priority=priority)
        return self._bus._subscribe(type, handler, options, plugin_id=self.plugin_id)

    async def once(self, type: str, *, source: Optional[Union[str, List[str]]] = None,
                   priority: Optional[int] = None) -> Message:
        options = SubscribeOptions(source=source, priority=priority)
        return await self._bus._once(type, options, plugin_id=self.plugin_id)

    def __repr__(self) -> str:
        return f"<ScopedMessageBus {self.plugin_id}>"
