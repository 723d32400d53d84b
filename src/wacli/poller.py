"""Wait-for-pairing flow: sample session state until it is authenticated."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from wacli.session import SessionHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaitResult:
    """Outcome of waiting for authentication."""

    authenticated: bool
    message: str


class AuthStatusPoller:
    """Blocks a caller until pairing completes, bounded by a deadline."""

    def __init__(self, session: SessionHandle, interval: float, timeout: float):
        """Initialize poller.

        Args:
            session: The process session handle.
            interval: Seconds between samples.
            timeout: Default overall deadline in seconds.
        """
        self.session = session
        self.interval = interval
        self.timeout = timeout

    async def wait(self, timeout: Optional[float] = None) -> WaitResult:
        """Wait until the session is authenticated.

        Args:
            timeout: Overall deadline in seconds; defaults to the
                configured one.

        Returns:
            WaitResult with authenticated=False if the deadline elapsed.

        Raises:
            InitializationError: The session could not be opened.
        """
        await self.session.ensure_opened()
        if self.session.is_authenticated():
            return WaitResult(True, "already authenticated")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.timeout if timeout is None else timeout)

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info("Timed out waiting for pairing")
                return WaitResult(False, "timeout waiting for pairing")
            await asyncio.sleep(min(self.interval, remaining))
            if self.session.is_authenticated():
                logger.info("Pairing detected")
                return WaitResult(True, "pairing successful")
