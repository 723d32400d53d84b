"""Process-wide handle on the single platform session."""

import asyncio
import logging
from typing import Callable, Optional

from wacli.errors import InitializationError, WacliError
from wacli.platform.base import PlatformClient

logger = logging.getLogger(__name__)


class SessionHandle:
    """Single source of truth for "are we logged in" and "are we connected".

    Owns the one platform client of this process. The client object is
    created lazily by ensure_opened(); creating it does not touch the
    network. Predicates read live client state and never block.
    """

    def __init__(self, client_factory: Callable[[], PlatformClient]):
        """Initialize session handle.

        Args:
            client_factory: Builds the platform client on first open.
        """
        self._client_factory = client_factory
        self._client: Optional[PlatformClient] = None
        self._open_lock = asyncio.Lock()
        self._closed = False

    @property
    def client(self) -> PlatformClient:
        """The opened platform client.

        Raises:
            InitializationError: If the session has not been opened.
        """
        if self._client is None:
            raise InitializationError("session is not opened")
        return self._client

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def is_authenticated(self) -> bool:
        return self._client is not None and self._client.is_authenticated()

    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected()

    def snapshot(self) -> dict[str, bool]:
        """Current state for status reporting."""
        return {
            "authenticated": self.is_authenticated(),
            "connected": self.is_connected(),
        }

    async def ensure_opened(self) -> PlatformClient:
        """Create and open the platform client exactly once.

        A failed open leaves the handle unopened so it can be retried.

        Raises:
            InitializationError: If the client or its credential store
                cannot be initialized, or the handle was closed.
        """
        if self._client is not None:
            return self._client

        async with self._open_lock:
            if self._closed:
                raise InitializationError("session is closed")
            if self._client is not None:
                return self._client

            client = self._client_factory()
            try:
                await client.open()
            except InitializationError:
                await client.close()
                raise
            except WacliError as e:
                await client.close()
                raise InitializationError(str(e)) from e

            self._client = client
            logger.info(
                f"Session opened (authenticated={client.is_authenticated()})"
            )
            return client

    async def close(self) -> None:
        """Release the platform client. Idempotent."""
        async with self._open_lock:
            self._closed = True
            client, self._client = self._client, None

        if client is not None:
            await client.close()
            logger.info("Session closed")
