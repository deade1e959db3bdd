import asyncio, logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TypeVar

log = logging.getLogger("retry")

T = TypeVar("T")


@dataclass
class RetryAttempt:
    index: int
    channel: str
    error: Optional[BaseException] = None


class RetryPolicy:
    """Sequential bounded retry, configured per device.

    Only the last error survives exhaustion; ``attempts`` describes the most
    recent ``run`` and is replaced by the next one.
    """

    def __init__(self, max_attempts: int, delay: float, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.max_attempts = max(1, max_attempts)
        self.delay = delay
        self._sleep = sleep
        self.attempts: List[RetryAttempt] = []

    def clone(self) -> "RetryPolicy":
        return RetryPolicy(self.max_attempts, self.delay, sleep=self._sleep)

    async def run(self, operation: Callable[[], Awaitable[T]], channel: str = "") -> T:
        self.attempts = []
        for index in range(1, self.max_attempts + 1):
            attempt = RetryAttempt(index=index, channel=channel)
            self.attempts.append(attempt)
            try:
                return await operation()
            except Exception as e:
                attempt.error = e
                if index == self.max_attempts:
                    raise
                log.debug("%s attempt %d/%d failed: %s; retrying in %ss",
                          channel or "operation", index, self.max_attempts, e, self.delay)
                await self._sleep(self.delay)
        raise AssertionError("unreachable")
