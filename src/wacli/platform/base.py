"""Interfaces of the messaging platform collaborator.

The platform client owns the wire protocol and the local credential
store. The orchestrator only needs the narrow surface below.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class PairingEventType(Enum):
    """Events emitted by the platform client during a session."""

    QR_CODE = "qr"
    PAIR_SUCCESS = "pair_success"
    PAIR_ERROR = "pair_error"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    LOGGED_OUT = "logged_out"
    CLOSED = "closed"  # client was closed locally


@dataclass(frozen=True)
class PairingEvent:
    """A single platform event."""

    type: PairingEventType
    code: str = ""  # QR_CODE
    jid: str = ""  # PAIR_SUCCESS
    reason: str = ""  # PAIR_ERROR, DISCONNECTED


class TransportCapability(Protocol):
    """Low-level transport access, independent of authentication."""

    async def ensure_transport_connected(self) -> None:
        """Open the transport if it is not already open."""
        ...

    def is_transport_connected(self) -> bool:
        """Whether the transport is currently open."""
        ...


class PlatformClient(TransportCapability, Protocol):
    """Protocol for the platform client."""

    async def open(self) -> None:
        """Load local credentials. Raises InitializationError."""
        ...

    def is_authenticated(self) -> bool:
        """Whether a paired identity is stored locally."""
        ...

    def is_connected(self) -> bool:
        """Whether the session is connected to the platform."""
        ...

    async def connect(self) -> None:
        """Connect. Unpaired clients start emitting QR_CODE events."""
        ...

    async def disconnect(self) -> None:
        """Drop the connection, keeping credentials."""
        ...

    def subscribe(self) -> "asyncio.Queue[PairingEvent]":
        """Get a queue receiving every event from now on."""
        ...

    def unsubscribe(self, queue: "asyncio.Queue[PairingEvent]") -> None:
        """Stop delivering events to a queue."""
        ...

    async def pair_phone(self, phone_number: str) -> str:
        """Request a numeric pairing code for a phone number."""
        ...

    async def logout(self) -> None:
        """Unlink this device and invalidate local credentials."""
        ...

    async def close(self) -> None:
        """Release all resources. Idempotent."""
        ...


class EventFanout:
    """Deliver events to every subscribed queue.

    Queues are unbounded so publishing never blocks the producer. After
    close() every current subscriber receives a CLOSED event and later
    subscribers receive it immediately.
    """

    def __init__(self) -> None:
        self._queues: set[asyncio.Queue] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> "asyncio.Queue[PairingEvent]":
        queue: asyncio.Queue = asyncio.Queue()
        if self._closed:
            queue.put_nowait(PairingEvent(PairingEventType.CLOSED))
        else:
            self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: "asyncio.Queue[PairingEvent]") -> None:
        self._queues.discard(queue)

    def publish(self, event: PairingEvent) -> None:
        if self._closed:
            return
        for queue in list(self._queues):
            queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for queue in list(self._queues):
            queue.put_nowait(PairingEvent(PairingEventType.CLOSED))
        self._queues.clear()
        logger.debug("Event fanout closed")

    def __len__(self) -> int:
        return len(self._queues)
