import asyncio, logging
from typing import Awaitable, Callable, Optional

log = logging.getLogger("dispatcher")


class CommandDispatcher:
    """Debounced write coalescer.

    ``signal()`` is synchronous. Signals within ``push_rate`` seconds of each
    other collapse into one dispatch cycle; a signal that arrives while a
    cycle is running opens a new window only once that cycle has settled.
    """

    def __init__(self, push_rate: float, dispatch: Callable[[], Awaitable[None]], name: str = ""):
        self.push_rate = push_rate
        self.name = name
        self.in_progress = False
        self._dispatch = dispatch
        self._pending = False
        self._task: Optional[asyncio.Task] = None

    @property
    def idle(self) -> bool:
        return not self.in_progress and not self._pending

    def signal(self):
        self._pending = True
        if self.in_progress:
            return
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self._window())

    async def _window(self):
        await asyncio.sleep(self.push_rate)
        self._pending = False
        self.in_progress = True
        try:
            await self._dispatch()
        except Exception:
            log.exception("%s dispatch cycle failed", self.name)
        finally:
            self.in_progress = False
        if self._pending:
            self._task = asyncio.get_running_loop().create_task(self._window())

    async def drain(self):
        """Wait until no window is open and no cycle is running."""
        while self._task is not None and not self._task.done():
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if task is self._task:
                    raise

    async def stop(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        self._pending = False
