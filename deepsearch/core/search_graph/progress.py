"""
Progress channel - ordered stream of typed node lifecycle events between
the orchestrator (producer) and an API layer (consumer).
"""

import asyncio
from typing import AsyncIterator, List, Optional

from deepsearch.core.search_graph.models import ProgressEvent


_CLOSED = object()


class ProgressChannel:
    """
    Unbounded, single-consumer event channel.

    publish() never blocks the scheduler. Iteration yields events in
    publish order and stops once the channel is closed and drained.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self.history: List[ProgressEvent] = []
        self.closed = False

    def publish(self, event: ProgressEvent):
        if self.closed:
            return
        self.history.append(event)
        self._queue.put_nowait(event)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[ProgressEvent]:
        """Next event, or None once the channel is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any later reader
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event
