"""
In-process status event stream for dashboards and notifiers
"""
import asyncio
import inspect
from collections import deque
from typing import Any, Awaitable, Callable, Deque, List, Union

from civic_triage.models import StatusEvent
from civic_triage.logging_config import logger

EventHandler = Callable[[StatusEvent], Union[None, Awaitable[None]]]


class StatusEventStream:
    """Fan-out of status events to subscribed handlers"""

    def __init__(self, history_size: int = 500):
        self._handlers: List[EventHandler] = []
        self._history: Deque[StatusEvent] = deque(maxlen=history_size)
        self.published_count = 0

    def subscribe(self, handler: EventHandler) -> EventHandler:
        """Register a sync or async handler; returns it for use as a decorator"""
        self._handlers.append(handler)
        logger.debug(f"Event handler subscribed: {getattr(handler, '__name__', handler)}")
        return handler

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, event: StatusEvent) -> None:
        """
        Deliver an event to every handler

        Handler failures are logged and never propagate to the publisher:
        the complaint state behind the event is already committed.
        """
        self._history.append(event)
        self.published_count += 1

        for handler in list(self._handlers):
            try:
                result: Any = handler(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Event handler failed for {event.event_type.value} on {event.complaint_id}: {str(e)}",
                    extra={'complaint_id': event.complaint_id}
                )

    def recent(self, limit: int = 50) -> List[StatusEvent]:
        """Most recent events, newest last"""
        if limit <= 0:
            return []
        return list(self._history)[-limit:]

    def queue(self, maxsize: int = 0) -> "asyncio.Queue[StatusEvent]":
        """Subscribe an asyncio.Queue that receives every future event"""
        events: "asyncio.Queue[StatusEvent]" = asyncio.Queue(maxsize=maxsize)

        def _enqueue(event: StatusEvent) -> None:
            try:
                events.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event queue full, dropping {event.event_type.value} for {event.complaint_id}")

        self.subscribe(_enqueue)
        return events
