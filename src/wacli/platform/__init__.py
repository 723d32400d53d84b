"""Messaging platform collaborator.

Provides:
- PlatformClient / TransportCapability protocols
- Pairing event types and fan-out
- BridgeClient, the adapter for a messaging bridge sidecar
"""

from .base import (
    EventFanout,
    PairingEvent,
    PairingEventType,
    PlatformClient,
    TransportCapability,
)
from .bridge import BridgeClient

__all__ = [
    "BridgeClient",
    "EventFanout",
    "PairingEvent",
    "PairingEventType",
    "PlatformClient",
    "TransportCapability",
]
