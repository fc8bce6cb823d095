"""SSE (Server-Sent Events) helpers for streaming bus traffic."""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict

from plugin_host.messaging.bus import MessageBus
from plugin_host.messaging.matching import match_type
from plugin_host.messaging.message import Message

logger = logging.getLogger(__name__)


def format_sse_message(event_type: str, data: Any) -> Dict[str, str]:
    """
    Format a message as Server-Sent Events (SSE) format.

    Args:
        event_type: Event type (e.g., 'message')
        data: Event data (will be JSON-serialized if not a string)

    Returns:
        Dict with 'event' and 'data' keys for EventSourceResponse
    """
    if isinstance(data, str):
        data_dict = {"content": data}
    else:
        data_dict = data

    ret = {"event": event_type, "data": json.dumps(data_dict, ensure_ascii=False, default=str)}
    logger.debug(f"SSE: {event_type}")
    return ret


async def message_stream(bus: MessageBus, pattern: str = "*") -> AsyncIterator[Dict[str, str]]:
    """Yield every bus message matching ``pattern`` as an SSE event.

    Uses a bus monitor, so streaming never answers requests. Closing the
    generator (client disconnect) removes the monitor.
    """
    queue: "asyncio.Queue[Message]" = asyncio.Queue()

    def enqueue(message: Message) -> None:
        if match_type(pattern, message.type):
            queue.put_nowait(message)

    unsubscribe = bus.monitor(enqueue)
    logger.info(f"SSE stream opened for '{pattern}'")
    try:
        while True:
            message = await queue.get()
            yield format_sse_message("message", message.to_dict())
    finally:
        unsubscribe()
        logger.info(f"SSE stream closed for '{pattern}'")
