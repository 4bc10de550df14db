"""
Cooperative cancellation shared by the commander, the turn loop and tools.
"""

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


class TurnCancelled(Exception):
    """Raised when the cancellation token fires while an operation is pending."""

    pass


class CancelToken:
    """One-shot cancellation signal threaded through every awaited call.

    ``run`` races an awaitable against the signal and an optional timeout;
    whichever fires first wins and the losing work is cancelled.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def run(self, awaitable: Awaitable[T], timeout: float | None = None) -> T:
        """Await ``awaitable`` unless cancelled or timed out first.

        Raises:
            TurnCancelled: the token fired before the work finished
            TimeoutError: ``timeout`` elapsed before the work finished
        """
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise TurnCancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        # Reap the aborted work; its outcome no longer matters
        await asyncio.gather(task, return_exceptions=True)

        if self.cancelled:
            raise TurnCancelled()
        raise TimeoutError(f"Operation timed out after {timeout}s")

    async def sleep(self, seconds: float) -> None:
        """Sleep that ends early with ``TurnCancelled`` when the token fires."""
        await self.run(asyncio.sleep(seconds))
