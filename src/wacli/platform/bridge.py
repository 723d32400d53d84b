"""Platform client backed by a messaging bridge sidecar.

The bridge owns the wire protocol and exposes a small JSON API:

    POST /session/connect         -> {"connected": bool}
    POST /session/disconnect
    POST /session/pair-phone      {"phone": "..."} -> {"code": "..."}
    POST /session/logout
    GET  /session/events          WebSocket, one JSON object per frame

Event frames carry a "type" of qr, pair_success, pair_error, connected,
disconnected or logged_out. This client keeps one long-lived event
listener, mirrors pairing results into the local credential store, and
fans events out to subscribers.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import aiohttp

from wacli.config import BridgeConfig
from wacli.credentials import CredentialStore
from wacli.errors import PairingRequestError, PlatformConnectionError
from wacli.platform.base import EventFanout, PairingEvent, PairingEventType

logger = logging.getLogger(__name__)


class BridgeClient:
    """PlatformClient implementation talking to a bridge over HTTP."""

    def __init__(
        self,
        config: BridgeConfig,
        store: CredentialStore,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize bridge client.

        Args:
            config: Bridge URL, token and timeouts.
            store: Local credential store.
            http_session: Optional aiohttp session (for testing).
        """
        self._config = config
        self._base_url = config.url.rstrip("/")
        self._store = store
        self._session = http_session
        self._owns_session = http_session is None
        self._events = EventFanout()
        self._connected = False
        self._closed = False
        self._listener_task: Optional[asyncio.Task] = None
        self._listener_ready = asyncio.Event()

    # ==================== PlatformClient ====================

    async def open(self) -> None:
        """Load local credentials."""
        self._store.load()
        if self._session is None:
            self._session = aiohttp.ClientSession()

    def is_authenticated(self) -> bool:
        return self._store.has_credentials()

    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Start the event listener, then ask the bridge to connect."""
        self._check_open()
        await self._start_listener()
        data = await self._request("POST", "/session/connect")
        self._connected = bool(data.get("connected", True))
        logger.info(f"Bridge connect requested (connected={self._connected})")

    async def disconnect(self) -> None:
        self._check_open()
        await self._request("POST", "/session/disconnect")
        self._connected = False

    def subscribe(self) -> "asyncio.Queue[PairingEvent]":
        return self._events.subscribe()

    def unsubscribe(self, queue: "asyncio.Queue[PairingEvent]") -> None:
        self._events.unsubscribe(queue)

    async def pair_phone(self, phone_number: str) -> str:
        self._check_open()
        try:
            data = await self._request(
                "POST", "/session/pair-phone", {"phone": phone_number}
            )
        except PlatformConnectionError as e:
            raise PairingRequestError(str(e)) from e

        code = data.get("code")
        if not code:
            raise PairingRequestError("bridge returned no pairing code")
        return code

    async def logout(self) -> None:
        self._check_open()
        await self._request("POST", "/session/logout")
        self._connected = False
        self._store.clear()

    async def close(self) -> None:
        """Stop the listener, wake all subscribers and close HTTP session."""
        if self._closed:
            return
        self._closed = True
        self._connected = False

        # Wake any waiters before tearing down the listener
        self._events.close()

        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self._owns_session and self._session:
            await self._session.close()
            # Allow event loop to clean up connector
            await asyncio.sleep(0)
            self._session = None

        logger.info("Bridge client closed")

    # ==================== TransportCapability ====================

    async def ensure_transport_connected(self) -> None:
        if not self._connected:
            await self.connect()

    def is_transport_connected(self) -> bool:
        return self._connected

    # ==================== Event listener ====================

    async def _start_listener(self) -> None:
        """Start the event listener if needed and wait until it is attached."""
        if self._listener_task is None or self._listener_task.done():
            self._listener_ready.clear()
            self._listener_task = asyncio.create_task(self._run_listener())

        try:
            await asyncio.wait_for(
                self._listener_ready.wait(), timeout=self._config.request_timeout
            )
        except asyncio.TimeoutError:
            raise PlatformConnectionError("bridge event stream not reachable")

    async def _run_listener(self) -> None:
        """Keep the event WebSocket open, reconnecting on errors."""
        url = f"{self._base_url}/session/events"

        while not self._closed:
            try:
                await self._listen(url)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Bridge event stream error: {e}")

            self._listener_ready.clear()
            if self._connected:
                self._connected = False
                self._events.publish(
                    PairingEvent(
                        PairingEventType.DISCONNECTED, reason="event stream lost"
                    )
                )
            if not self._closed:
                await asyncio.sleep(self._config.reconnect_delay)

    async def _listen(self, url: str) -> None:
        if not self._session:
            return

        async with self._session.ws_connect(url, headers=self._headers()) as ws:
            logger.debug(f"Attached to bridge events at {url}")
            self._listener_ready.set()

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_frame(msg.data)
                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break

    def _handle_frame(self, raw: str) -> None:
        """Translate one bridge frame into state changes and an event."""
        try:
            frame = json.loads(raw)
            event_type = PairingEventType(frame.get("type"))
        except (ValueError, TypeError, AttributeError):
            logger.debug(f"Ignoring unknown bridge frame: {raw[:80]}")
            return
        if event_type == PairingEventType.CLOSED:
            # Only emitted locally when the client closes
            logger.debug("Ignoring closed frame from bridge")
            return

        if event_type == PairingEventType.PAIR_SUCCESS:
            self._store.set(
                jid=frame.get("jid", ""),
                push_name=frame.get("push_name", ""),
                platform=frame.get("platform", ""),
            )
            self._connected = True
        elif event_type == PairingEventType.CONNECTED:
            self._connected = True
            self._store.touch()
        elif event_type == PairingEventType.DISCONNECTED:
            self._connected = False
        elif event_type == PairingEventType.LOGGED_OUT:
            self._connected = False
            self._store.clear()

        self._events.publish(
            PairingEvent(
                event_type,
                code=frame.get("code", ""),
                jid=frame.get("jid", ""),
                reason=frame.get("reason", ""),
            )
        )

    # ==================== HTTP helpers ====================

    def _check_open(self) -> None:
        if self._closed:
            raise PlatformConnectionError("client is closed")
        if self._session is None:
            raise PlatformConnectionError("client is not opened")

    def _headers(self) -> dict[str, str]:
        if self._config.token:
            return {"Authorization": f"Bearer {self._config.token}"}
        return {}

    async def _request(
        self, method: str, path: str, body: Optional[dict] = None
    ) -> dict[str, Any]:
        """Call the bridge and decode its JSON reply.

        Raises:
            PlatformConnectionError: On transport failure or non-2xx status.
        """
        if self._session is None:
            raise PlatformConnectionError("client is not opened")
        try:
            async with self._session.request(
                method,
                f"{self._base_url}{path}",
                json=body,
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout),
            ) as resp:
                try:
                    data = await resp.json(content_type=None)
                except (json.JSONDecodeError, aiohttp.ContentTypeError):
                    data = None
                if resp.status >= 400:
                    detail = data.get("error") if isinstance(data, dict) else None
                    raise PlatformConnectionError(
                        f"bridge returned HTTP {resp.status}"
                        + (f": {detail}" if detail else "")
                    )
                return data if isinstance(data, dict) else {}
        except aiohttp.ClientError as e:
            raise PlatformConnectionError(f"bridge unreachable: {e}") from e
        except asyncio.TimeoutError as e:
            raise PlatformConnectionError("bridge request timed out") from e
