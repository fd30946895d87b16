"""
Request-scoped deadline threaded through every suspending operation.

A deadline is created once per chat request. Context lookups, provider calls,
fan-out branches and the synthesis call all derive their timeouts from it, so
a hung provider cannot hold a request open past ``request_timeout_seconds``.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import RequestTimeoutError

T = TypeVar("T")


@dataclass(frozen=True)
class RequestDeadline:
    """Absolute deadline expressed in event-loop time."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "RequestDeadline":
        """Create a deadline ``seconds`` from now on the running loop."""
        return cls(expires_at=asyncio.get_running_loop().time() + seconds)

    def remaining(self) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, self.expires_at - asyncio.get_running_loop().time())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def cap(self, seconds: float) -> float:
        """Timeout for a sub-operation: its own cap bounded by the request deadline."""
        return min(seconds, self.remaining())

    async def run(self, awaitable: Awaitable[T], operation: str) -> T:
        """
        Await ``awaitable`` within the deadline.

        Raises:
            RequestTimeoutError: If the deadline expires first
        """
        try:
            async with asyncio.timeout_at(self.expires_at):
                return await awaitable
        except TimeoutError as e:
            raise RequestTimeoutError(
                f"Request timed out during {operation}", operation=operation
            ) from e

    async def iterate(
        self, chunks: AsyncIterator[T], operation: str
    ) -> AsyncIterator[T]:
        """
        Re-yield an async iterator, aborting when the deadline expires.

        Each pull is awaited separately so the timeout never fires while the
        consumer is suspended between chunks. The wrapped iterator is closed
        on every exit path.
        """
        iterator = aiter(chunks)
        try:
            while True:
                try:
                    chunk = await asyncio.wait_for(anext(iterator), timeout=self.remaining())
                except StopAsyncIteration:
                    return
                except TimeoutError as e:
                    raise RequestTimeoutError(
                        f"Request timed out during {operation}", operation=operation
                    ) from e
                yield chunk
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()
