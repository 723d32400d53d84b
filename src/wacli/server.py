"""HTTP server for the wacli API.

Routes:
- /health - Liveness check (no API key)
- /api/v1/auth/status - Authentication and connection state
- /api/v1/auth/qr - Start or join QR pairing
- /api/v1/auth/pair - Request a phone pairing code
- /api/v1/auth/wait - Block until pairing completes
- /api/v1/auth/logout - Unlink this device
"""

import asyncio
import hmac
import json
import logging
from typing import Awaitable, Callable, Optional

from aiohttp import web

from wacli.config import AuthConfig
from wacli.errors import (
    AlreadyAuthenticated,
    DeadlineExceeded,
    InitializationError,
    InvalidInput,
    NotAuthenticated,
    PairingRequestError,
    PlatformConnectionError,
    RenderError,
    WacliError,
)
from wacli.pairing import PairingCoordinator
from wacli.poller import AuthStatusPoller
from wacli.session import SessionHandle
from wacli.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)

SERVICE_NAME = "wacli-api"

API_KEY_REQUIRED = (
    "API key is required (use X-API-Key header, api_key query param, or Bearer token)"
)

# Most specific first
_STATUS_BY_ERROR: list[tuple[type, int]] = [
    (AlreadyAuthenticated, 409),
    (NotAuthenticated, 401),
    (InvalidInput, 400),
    (DeadlineExceeded, 408),
    (PairingRequestError, 500),
    (PlatformConnectionError, 500),
    (InitializationError, 500),
    (RenderError, 500),
]

_STATUS_FRAGMENT = """<div class="status-card">
\t<span class="status-indicator {css}"></span>
\t<span class="status-text">{text}</span>
</div>
<script>
\tupdateUI({{authenticated: {authenticated}, connected: {connected}}});
</script>"""


def _status_for(error: WacliError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def error_response(
    error: WacliError, prefixes: Optional[dict[type, str]] = None
) -> web.Response:
    """Map an exception to a JSON error response.

    Args:
        error: The raised exception.
        prefixes: Explanation prefix per exception type, checked in order.
    """
    status = _status_for(error)
    message = str(error)
    for error_type, prefix in (prefixes or {}).items():
        if isinstance(error, error_type):
            message = f"{prefix}: {error}"
            break

    body: dict = {"error": message}
    if isinstance(error, AlreadyAuthenticated):
        body["authenticated"] = True
    return web.json_response(body, status=status)


def api_key_middleware(valid_keys: list[str]) -> Callable:
    """Build middleware accepting any of valid_keys."""
    keys = [k.encode() for k in valid_keys]

    def extract_key(request: web.Request) -> str:
        api_key = request.headers.get("X-API-Key", "")
        if not api_key:
            api_key = request.query.get("api_key", "")
        if not api_key:
            auth = request.headers.get("Authorization", "")
            if auth.startswith("Bearer "):
                api_key = auth[len("Bearer "):]
        return api_key

    def is_valid(api_key: str) -> bool:
        candidate = api_key.encode()
        # compare against every key so timing does not reveal which matched
        matched = False
        for key in keys:
            if hmac.compare_digest(candidate, key):
                matched = True
        return matched

    @web.middleware
    async def middleware(
        request: web.Request,
        handler: Callable[[web.Request], Awaitable[web.StreamResponse]],
    ) -> web.StreamResponse:
        api_key = extract_key(request)
        if not api_key:
            return web.json_response({"error": API_KEY_REQUIRED}, status=401)
        if not is_valid(api_key):
            logger.warning(f"Rejected request to {request.path}: invalid API key")
            return web.json_response({"error": "Invalid API key"}, status=401)
        return await handler(request)

    return middleware


class ApiServer:
    """HTTP server exposing the authentication endpoints."""

    def __init__(
        self,
        session: SessionHandle,
        supervisor: ConnectionSupervisor,
        coordinator: PairingCoordinator,
        poller: AuthStatusPoller,
        api_keys: list[str],
        auth_config: Optional[AuthConfig] = None,
    ):
        """Initialize API server.

        Args:
            session: The process session handle.
            supervisor: Used for logout.
            coordinator: QR and phone pairing.
            poller: Wait-for-pairing flow.
            api_keys: Keys accepted on /api/v1.
            auth_config: Timeouts; defaults apply when omitted.
        """
        self.session = session
        self.supervisor = supervisor
        self.coordinator = coordinator
        self.poller = poller
        self.auth_config = auth_config or AuthConfig()

        self.app = web.Application()
        self.api = web.Application(middlewares=[api_key_middleware(api_keys)])
        self._setup_routes()
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._port: int = 0

    def _setup_routes(self) -> None:
        """Set up all HTTP routes."""
        self.app.router.add_get("/health", self._handle_health)

        self.api.router.add_get("/auth/status", self._handle_status)
        self.api.router.add_get("/auth/qr", self._handle_qr)
        self.api.router.add_post("/auth/pair", self._handle_pair)
        self.api.router.add_get("/auth/wait", self._handle_wait)
        self.api.router.add_post("/auth/logout", self._handle_logout)
        self.app.add_subapp("/api/v1", self.api)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({"status": "ok", "service": SERVICE_NAME})

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Report authentication state, as JSON or an htmx fragment."""
        state = self.session.snapshot()

        if request.headers.get("HX-Request") == "true":
            authenticated = state["authenticated"]
            html = _STATUS_FRAGMENT.format(
                css="connected" if authenticated else "disconnected",
                text="Connected" if authenticated else "Disconnected",
                authenticated=json.dumps(authenticated),
                connected=json.dumps(state["connected"]),
            )
            return web.Response(text=html, content_type="text/html")

        return web.json_response(state)

    async def _handle_qr(self, request: web.Request) -> web.Response:
        """Start or join QR pairing and return the code."""
        try:
            result = await self.coordinator.request_qr()
        except WacliError as e:
            return error_response(
                e,
                {
                    InitializationError: "failed to initialize WhatsApp client",
                    PlatformConnectionError: "connection failed",
                },
            )
        return web.json_response(result.to_dict())

    async def _handle_pair(self, request: web.Request) -> web.Response:
        """Request a phone pairing code."""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response(
                {"error": "invalid request: body must be JSON"}, status=400
            )
        phone_number = body.get("phone_number") if isinstance(body, dict) else None

        try:
            result = await self.coordinator.request_phone_code(phone_number)
        except WacliError as e:
            return error_response(
                e,
                {
                    InvalidInput: "invalid request",
                    InitializationError: "failed to initialize WhatsApp client",
                    PairingRequestError: "failed to request pairing code",
                    PlatformConnectionError: "failed to connect to WhatsApp",
                },
            )
        return web.json_response(result.to_dict())

    async def _handle_wait(self, request: web.Request) -> web.Response:
        """Block until the session is paired or the deadline fires."""
        try:
            result = await self.poller.wait()
        except WacliError as e:
            return error_response(e, {WacliError: "failed to check auth status"})

        if not result.authenticated:
            return web.json_response(
                {"authenticated": False, "error": result.message}, status=408
            )
        return web.json_response(
            {"authenticated": True, "message": result.message}
        )

    async def _handle_logout(self, request: web.Request) -> web.Response:
        """Unlink this device and drop local credentials."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.auth_config.logout_timeout
        try:
            await self.supervisor.logout(deadline)
        except NotAuthenticated as e:
            return error_response(e)
        except WacliError as e:
            return error_response(e, {WacliError: "logout failed"})
        return web.json_response(
            {"logged_out": True, "message": "successfully logged out"}
        )

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the server.

        Args:
            host: Host to bind to.
            port: Port to bind to (0 for random).

        Returns:
            App runner for cleanup.
        """
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        # Get actual port
        if self._site._server and self._site._server.sockets:
            self._port = self._site._server.sockets[0].getsockname()[1]
        else:
            self._port = port

        logger.info(f"API server started on {host}:{self._port}")
        return self._runner

    def get_port(self) -> int:
        """Get the actual bound port."""
        return self._port

    async def close(self) -> None:
        """Stop the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
        logger.info("API server stopped")
