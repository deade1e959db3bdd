from sse_starlette.sse import EventSourceResponse
from typing import AsyncIterator
import asyncio, orjson

def event_stream(generator: AsyncIterator[dict], ping: int = 15) -> EventSourceResponse:
    async def event_publisher():
        async for ev in generator:
            yield {
                "event": ev.get("event", "message"),
                "data": orjson.dumps(ev["data"] if "data" in ev else ev).decode(),
            }
            await asyncio.sleep(0)
    return EventSourceResponse(event_publisher(), ping=ping)
