"""Connection supervisor: performs the actual platform connect.

Two modes:
- pairing: connect an unpaired client, hand out the first QR code, and keep
  following the handshake until it reaches a terminal state.
- prior authentication: make sure an already paired session is connected.

Code delivery and handshake completion are separate events. The QR code
usually arrives within a second or two while the handshake only ends when
the user scans it, so callers hand the code back to their own client as
soon as it is delivered and let connect() keep running.
"""

import asyncio
import logging
from typing import Callable, Optional

from wacli.errors import (
    DeadlineExceeded,
    NotAuthenticated,
    PlatformConnectionError,
)
from wacli.platform.base import PairingEvent, PairingEventType
from wacli.session import SessionHandle

logger = logging.getLogger(__name__)

CodeCallback = Callable[[str], None]


def _remaining(deadline: float) -> float:
    return deadline - asyncio.get_running_loop().time()


class ConnectionSupervisor:
    """Funnel for every mutation of the shared session.

    connect() and logout() are safe to call while other tasks read the
    session predicates, but are not meant to run concurrently with each
    other; PairingCoordinator keeps at most one pairing connect alive.
    """

    def __init__(self, session: SessionHandle):
        """Initialize supervisor.

        Args:
            session: The process session handle.
        """
        self.session = session

    async def connect(
        self,
        deadline: float,
        wait_for_pairing: bool,
        on_code: Optional[CodeCallback] = None,
    ) -> None:
        """Connect to the platform.

        Args:
            deadline: Event loop time by which a terminal state must be reached.
            wait_for_pairing: Follow the pairing handshake (unpaired client)
                instead of assuming prior authentication.
            on_code: Called at most once with the first QR code, on the
                task running connect().

        Raises:
            NotAuthenticated: wait_for_pairing is False on an unpaired session.
            PlatformConnectionError: Transport failure, rejected pairing or
                the client was closed.
            DeadlineExceeded: No terminal state before the deadline.
        """
        client = await self.session.ensure_opened()

        if not wait_for_pairing:
            if not client.is_authenticated():
                raise NotAuthenticated()
            await self._bounded(client.ensure_transport_connected(), deadline)
            return

        if client.is_authenticated():
            logger.debug("Already authenticated, skipping pairing connect")
            return

        events = client.subscribe()
        try:
            await self._bounded(client.connect(), deadline)
            await self._follow_handshake(events, deadline, on_code)
        finally:
            client.unsubscribe(events)

    async def ensure_transport(self, deadline: float) -> None:
        """Open the transport without waiting for authentication."""
        client = await self.session.ensure_opened()
        if client.is_transport_connected():
            return
        await self._bounded(client.ensure_transport_connected(), deadline)
        logger.debug("Transport connected")

    async def logout(self, deadline: float) -> None:
        """Unlink this device from the account.

        Raises:
            NotAuthenticated: Session is not paired. No network call is made.
            InitializationError: The session could not be opened.
            PlatformConnectionError: Connect or logout failed.
            DeadlineExceeded: The deadline fired.
        """
        await self.session.ensure_opened()
        if not self.session.is_authenticated():
            raise NotAuthenticated()

        await self.connect(deadline, wait_for_pairing=False)
        await self._bounded(self.session.client.logout(), deadline)
        logger.info("Logged out")

    async def _follow_handshake(
        self,
        events: "asyncio.Queue[PairingEvent]",
        deadline: float,
        on_code: Optional[CodeCallback],
    ) -> None:
        """Consume events until the pairing handshake is terminal."""
        code_delivered = False

        while True:
            remaining = _remaining(deadline)
            if remaining <= 0:
                raise DeadlineExceeded("pairing handshake deadline exceeded")
            try:
                event = await asyncio.wait_for(events.get(), timeout=remaining)
            except asyncio.TimeoutError:
                raise DeadlineExceeded("pairing handshake deadline exceeded")

            if event.type == PairingEventType.QR_CODE:
                if not code_delivered and on_code is not None:
                    code_delivered = True
                    on_code(event.code)
                else:
                    logger.debug("QR code rotated")
            elif event.type == PairingEventType.PAIR_SUCCESS:
                logger.info(f"Pairing completed as {event.jid or 'unknown jid'}")
                return
            elif event.type == PairingEventType.PAIR_ERROR:
                raise PlatformConnectionError(
                    f"pairing rejected: {event.reason or 'unknown reason'}"
                )
            elif event.type == PairingEventType.CLOSED:
                raise PlatformConnectionError("session closed")
            elif event.type == PairingEventType.LOGGED_OUT:
                raise PlatformConnectionError("session logged out during pairing")

    @staticmethod
    async def _bounded(awaitable, deadline: float):
        """Run an awaitable, mapping a deadline overrun to DeadlineExceeded."""
        remaining = _remaining(deadline)
        if remaining <= 0:
            awaitable.close()
            raise DeadlineExceeded("deadline exceeded while connecting")
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError:
            raise DeadlineExceeded("deadline exceeded while connecting")
