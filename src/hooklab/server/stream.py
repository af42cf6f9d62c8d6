"""
Hooklab Event Stream

Server-Sent Events framing and the per-connection streaming loop.

Each delivered unit is either a heartbeat comment (": ping") or a
"data: <json event>" frame, each terminated by a blank line.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from ..core.errors import SubscriberClosed
from ..core.hub import Subscriber, SubscriberHub

logger = logging.getLogger(__name__)

HEARTBEAT = ": ping\n\n"


def format_sse_data(data: Any) -> str:
    """Format a JSON-serializable value as an SSE data frame."""
    return f"data: {json.dumps(data)}\n\n"


async def event_stream(
    hub: SubscriberHub,
    subscriber: Subscriber,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_interval: float = 25.0,
    disconnect_poll_interval: float = 1.0
) -> AsyncIterator[str]:
    """
    Stream events from a subscriber until the client leaves or the hub closes it.

    Each iteration waits on the subscriber's mailbox, bounded by the next
    heartbeat and the disconnect poll interval.
    The subscriber is unregistered when the loop ends.

    Args:
        hub: Hub the subscriber is registered with
        subscriber: Subscriber to read from
        is_disconnected: Coroutine function reporting client disconnect
        heartbeat_interval: Seconds between heartbeat comments
        disconnect_poll_interval: Max seconds between disconnect checks

    Yields:
        SSE-formatted strings
    """
    loop = asyncio.get_running_loop()
    next_heartbeat = loop.time() + heartbeat_interval

    try:
        while True:
            if await is_disconnected():
                logger.debug("Stream client disconnected")
                return

            timeout = max(0.0, min(disconnect_poll_interval, next_heartbeat - loop.time()))
            try:
                event = await asyncio.wait_for(subscriber.receive(), timeout=timeout)
            except asyncio.TimeoutError:
                if loop.time() >= next_heartbeat:
                    next_heartbeat = loop.time() + heartbeat_interval
                    yield HEARTBEAT
                continue
            except SubscriberClosed:
                logger.debug("Stream subscriber closed")
                return

            yield format_sse_data(event.to_dict())
    finally:
        hub.unsubscribe(subscriber)
