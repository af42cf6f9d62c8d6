"""
Hooklab Subscriber Hub

Fan-out of captured events to live observers (SSE connections).

Each subscriber owns a mailbox holding at most one event. Broadcasting
never blocks: when a subscriber still holds an undelivered event, the new
event is dropped for that subscriber only. Closing a subscriber wakes any
pending receive; an event already in the mailbox is still delivered first.
"""

import asyncio
import logging
import threading
from typing import List, Optional, Set, Tuple

from .errors import SubscriberClosed
from .events import Event

logger = logging.getLogger(__name__)


class Subscriber:
    """
    A live observer with a capacity-1 mailbox.

    Producers call ``offer``; consumers call ``get`` (threads) or
    ``await receive()`` (asyncio). Wake-ups for async consumers are
    scheduled on the consumer's loop with ``call_soon_threadsafe``, so
    producers may run on any thread.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._item: Optional[Event] = None
        self._closed = False
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> bool:
        """True if an event is waiting to be received."""
        with self._cond:
            return self._item is not None

    def offer(self, event: Event) -> bool:
        """
        Try to deliver an event without blocking.

        Returns:
            True if accepted, False if the mailbox is full or closed
        """
        with self._cond:
            if self._closed or self._item is not None:
                return False
            self._item = event
            self._wake()
            return True

    def close(self):
        """Close the mailbox. Idempotent."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._wake()

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Blocking receive for thread consumers.

        Args:
            timeout: Seconds to wait (None = wait until an event or close)

        Returns:
            The next event, or None on timeout

        Raises:
            SubscriberClosed: If closed and nothing is left to deliver
        """
        with self._cond:
            self._cond.wait_for(lambda: self._item is not None or self._closed, timeout)
            return self._take()

    async def receive(self) -> Event:
        """
        Cooperative receive for the asyncio streaming loop.

        Raises:
            SubscriberClosed: If closed and nothing is left to deliver
        """
        loop = asyncio.get_running_loop()
        while True:
            with self._cond:
                if self._item is not None or self._closed:
                    return self._take()
                waiter = loop.create_future()
                self._waiters.append((loop, waiter))
            try:
                await waiter
            finally:
                with self._cond:
                    if (loop, waiter) in self._waiters:
                        self._waiters.remove((loop, waiter))

    def _take(self) -> Optional[Event]:
        # Caller holds self._cond
        if self._item is not None:
            event, self._item = self._item, None
            return event
        if self._closed:
            raise SubscriberClosed("Subscriber is closed")
        return None

    def _wake(self):
        # Caller holds self._cond
        self._cond.notify_all()
        for loop, waiter in self._waiters:
            try:
                loop.call_soon_threadsafe(_resolve, waiter)
            except RuntimeError:
                # Loop already closed; nobody is left to wake
                pass


def _resolve(waiter: asyncio.Future):
    if not waiter.done():
        waiter.set_result(None)


class SubscriberHub:
    """
    Registry of live subscribers.

    Example:
        hub = SubscriberHub()
        subscriber = hub.subscribe()
        hub.broadcast(event)
        event = subscriber.get(timeout=1.0)
        hub.unsubscribe(subscriber)
    """

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._lock = lock or threading.RLock()
        self._subscribers: Set[Subscriber] = set()
        self.dropped_deliveries = 0

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        """Register a new subscriber."""
        subscriber = Subscriber()
        with self._lock:
            self._subscribers.add(subscriber)
        logger.debug("Subscriber attached")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        """Unregister and close a subscriber. Unknown subscribers are ignored."""
        with self._lock:
            if subscriber not in self._subscribers:
                return
            self._subscribers.discard(subscriber)
            subscriber.close()
        logger.debug("Subscriber detached")

    def broadcast(self, event: Event) -> int:
        """
        Offer an event to every subscriber without blocking.

        Returns:
            Number of subscribers that accepted the event
        """
        delivered = 0
        with self._lock:
            for subscriber in self._subscribers:
                if subscriber.offer(event):
                    delivered += 1
                else:
                    self.dropped_deliveries += 1
            total = len(self._subscribers)

        if delivered < total:
            logger.debug(f"Event {event.id} dropped for {total - delivered} busy subscriber(s)")
        return delivered

    def close_all(self):
        """Close every subscriber and clear the registry (shutdown)."""
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
            for subscriber in subscribers:
                subscriber.close()
        if subscribers:
            logger.info(f"Closed {len(subscribers)} subscriber(s)")
