"""Write-once delivery slot bridging background tasks and waiters."""

import asyncio
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class SingleSlot(Generic[T]):
    """Holds at most one value, written at most once.

    offer() never blocks: it returns False when the slot is already full,
    and the value is dropped. wait() is bounded by a timeout and a timed
    out waiter does not disturb the slot, so a producer racing a timeout
    is safe in either order. A filled slot stays filled; later waiters
    see the same value.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def filled(self) -> bool:
        return self._future.done()

    def offer(self, value: T) -> bool:
        """Place a value if the slot is empty.

        Returns:
            True if the value was stored, False if it was dropped.
        """
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def peek(self) -> Optional[T]:
        """Get the value without waiting, or None if empty."""
        if not self._future.done():
            return None
        return self._future.result()

    async def wait(self, timeout: float) -> T:
        """Wait for the value.

        Raises:
            asyncio.TimeoutError: If nothing arrives within timeout.
        """
        # shield: a timed out waiter must not cancel the shared future
        return await asyncio.wait_for(asyncio.shield(self._future), timeout)
