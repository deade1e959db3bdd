import asyncio, logging
from typing import Awaitable, Callable, Optional, Set

log = logging.getLogger("scheduler")


class RefreshScheduler:
    """Periodic refresh driver with an overlap guard.

    A tick that fires while the previous refresh is still running is dropped,
    not queued, so there is at most one refresh in flight per device.
    """

    def __init__(self, interval: float, refresh: Callable[[], Awaitable[None]], name: str = ""):
        self.interval = interval
        self.name = name
        self.in_progress = False
        self._refresh = refresh
        self._task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    async def tick(self) -> bool:
        if self.in_progress:
            log.debug("%s refresh still in progress, tick dropped", self.name)
            return False
        self.in_progress = True
        try:
            await self._refresh()
        except Exception:
            log.exception("%s refresh failed", self.name)
        finally:
            self.in_progress = False
        return True

    def start(self, immediately: bool = True):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(immediately))

    async def _run(self, immediately: bool):
        if immediately:
            self._spawn()
        while True:
            await asyncio.sleep(self.interval)
            self._spawn()

    def _spawn(self, delay: float = 0) -> asyncio.Task:
        async def _fire():
            if delay:
                await asyncio.sleep(delay)
            await self.tick()
        t = asyncio.create_task(_fire())
        self._pending.add(t)
        t.add_done_callback(self._pending.discard)
        return t

    def verify_after(self, delay: float) -> asyncio.Task:
        """One-shot refresh after ``delay``, independent of the periodic cadence."""
        return self._spawn(delay)

    async def stop(self):
        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
