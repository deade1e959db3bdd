import asyncio, logging
from typing import AsyncIterator

log = logging.getLogger("realtime")

class Broadcaster:
    """Fan-out of characteristic/telemetry events to stream subscribers.

    Publishing never waits on a subscriber: a full queue drops its oldest event.
    """

    def __init__(self, maxsize: int = 256):
        self._queues = set()
        self._maxsize = maxsize

    async def register(self) -> AsyncIterator[dict]:
        q: asyncio.Queue = asyncio.Queue(self._maxsize)
        self._queues.add(q)
        try:
            while True:
                yield await q.get()
        finally:
            self._queues.discard(q)

    def publish(self, event: dict):
        for q in list(self._queues):
            if q.full():
                q.get_nowait()
                log.debug("subscriber queue full, dropped oldest event")
            q.put_nowait(event)
