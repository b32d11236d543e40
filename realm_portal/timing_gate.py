"""
Timing-Safe Gate
================
Enforces a minimum response time on account-mutation operations so that
"username taken", "upstream rejected" and "created" are indistinguishable by
latency.

Usage:
    gate = TimingSafeGate(min_delay_ms=1000)

    @gate
    async def create_game_account(...):
        ...

Every exit path is padded: normal returns, raised exceptions, timeouts and
cancellation. The wait is an ``asyncio.sleep``; it holds no lock and no
worker thread.
"""

import asyncio
import time
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from .config import MIN_RESPONSE_MS

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TimingSafeGate:
    """Pads every exit of a coroutine to at least ``min_delay_ms``."""

    def __init__(
        self,
        min_delay_ms: int = MIN_RESPONSE_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if min_delay_ms < 0:
            raise ValueError("min_delay_ms must be non-negative")
        self.min_delay_ms = min_delay_ms
        self._clock = clock
        self._sleep = sleep

    async def run(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Await ``func(*args, **kwargs)`` and deliver its outcome no earlier than the floor."""
        start = self._clock()
        try:
            result = await func(*args, **kwargs)
        except (Exception, asyncio.CancelledError):
            await self._pad(start)
            raise
        await self._pad(start)
        return result

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await self.run(func, *args, **kwargs)
        return wrapper

    async def _pad(self, start: float) -> None:
        elapsed_ms = (self._clock() - start) * 1000
        remaining_ms = self.min_delay_ms - elapsed_ms
        if remaining_ms > 0:
            logger.debug("timing_gate_padding", remaining_ms=round(remaining_ms, 2))
            await self._sleep(remaining_ms / 1000)


def timing_safe(min_delay_ms: int = MIN_RESPONSE_MS) -> Callable:
    """Decorator factory: ``@timing_safe(1000)``."""
    return TimingSafeGate(min_delay_ms)
