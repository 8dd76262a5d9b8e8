"""
Per-subscription message channel.

The collaborator pushes ChangeEvents into a channel from its transport
callbacks; the sync engine consumes the channel as an async iterator on the
single event-loop thread, so per-channel delivery order is preserved.
"""

import asyncio
import itertools
from typing import Union

from client_portal.kernel.errors import SubscriptionError
from client_portal.kernel.events.event_types import ALL_EVENTS, ChangeEvent

_CLOSED = object()
_channel_ids = itertools.count(1)


class EventChannel:
    """
    Subscription handle and event queue for one collection.
    
    Iterating yields events until close(); a transport failure reported
    through fail() is raised from the iterator as SubscriptionError.
    """
    
    def __init__(self, collection: str, event_filter: str = ALL_EVENTS):
        self.id = next(_channel_ids)
        self.collection = collection
        self.event_filter = event_filter
        self._queue: "asyncio.Queue[Union[ChangeEvent, SubscriptionError, object]]" = asyncio.Queue()
        self._closed = False
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    def put(self, event: ChangeEvent) -> None:
        """Enqueue an event; ignored once the channel is closed."""
        if not self._closed:
            self._queue.put_nowait(event)
    
    def fail(self, error: Union[str, SubscriptionError]) -> None:
        """Report a delivery failure; the consumer sees it after queued events."""
        if self._closed:
            return
        if not isinstance(error, SubscriptionError):
            error = SubscriptionError(error)
        self._queue.put_nowait(error)
        self._closed = True
    
    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)
    
    def __aiter__(self) -> "EventChannel":
        return self
    
    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, SubscriptionError):
            raise item
        return item  # type: ignore[return-value]
    
    def pending(self) -> int:
        return self._queue.qsize()
    
    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<EventChannel #{self.id} {self.collection} {self.event_filter} {state}>"


