"""Main daemon orchestrator."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Callable, Optional

from wacli.config import Config
from wacli.credentials import CredentialStore
from wacli.errors import InitializationError, StartupError
from wacli.pairing import PairingCoordinator
from wacli.platform import BridgeClient, PlatformClient
from wacli.poller import AuthStatusPoller
from wacli.server import ApiServer
from wacli.session import SessionHandle
from wacli.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)


class Daemon:
    """Wires the session, pairing flows and HTTP server together.

    Lifecycle:
    - Validate configuration
    - Start HTTP server
    - Open the session from stored credentials
    - Run until SIGTERM/SIGINT
    - Close the session and pairing attempts, then the server
    """

    def __init__(
        self,
        config: Config,
        client_factory: Optional[Callable[[], PlatformClient]] = None,
    ):
        """Initialize daemon.

        Args:
            config: Server configuration.
            client_factory: Optional platform client factory (for testing).
                Defaults to a BridgeClient over the configured store.
        """
        self._config = config
        self._client_factory = client_factory or self._default_client_factory
        self._running = False

        self.session = SessionHandle(self._client_factory)
        self.supervisor = ConnectionSupervisor(self.session)
        self.coordinator = PairingCoordinator(
            self.session, self.supervisor, config.auth
        )
        self.poller = AuthStatusPoller(
            self.session,
            interval=config.auth.poll_interval,
            timeout=config.auth.wait_timeout,
        )
        self.server = ApiServer(
            self.session,
            self.supervisor,
            self.coordinator,
            self.poller,
            api_keys=config.api_keys,
            auth_config=config.auth,
        )

    def _default_client_factory(self) -> PlatformClient:
        store = CredentialStore(Path(self._config.store_dir).expanduser())
        return BridgeClient(self._config.bridge, store)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the daemon.

        Raises:
            StartupError: If no API key is configured or the port is taken.
        """
        if not self._config.api_keys:
            raise StartupError(
                "no API keys configured - set WACLI_API_KEYS or api_keys"
            )

        try:
            await self.server.start(self._config.host, self._config.port)
        except OSError as e:
            await self.server.close()
            raise StartupError(
                f"cannot listen on {self._config.host}:{self._config.port}: {e}"
            ) from e

        # Load stored credentials so status reflects them from the first request
        try:
            await self.session.ensure_opened()
        except InitializationError as e:
            logger.warning(f"Session not opened at startup: {e}")

        self._running = True
        self._setup_signals()
        logger.info(f"wacli API listening on port {self.server.get_port()}")

    async def run_forever(self) -> None:
        """Run daemon until shutdown signal."""
        if not self._running:
            await self.start()

        try:
            while self._running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Stop the daemon gracefully."""
        self._running = False

    def _setup_signals(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda: asyncio.create_task(self.stop()),
            )

    async def _shutdown(self) -> None:
        """Perform graceful shutdown."""
        logger.info("Shutting down daemon...")

        # Closing the session wakes any in-flight attempt with a closed event
        await self.session.close()
        await self.coordinator.close()
        await self.server.close()

        self._running = False
        logger.info("Daemon stopped")
