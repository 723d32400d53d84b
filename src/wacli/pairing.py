"""Pairing coordinator: QR and phone-code pairing flows.

A QR pairing request returns as soon as the platform hands out the first
QR code, well before the user scans it. The connect that produced the
code keeps running in a detached task, bounded by its own deadline, so
the handshake can finish after the HTTP response has been written.
Clients then poll /auth/wait to learn the outcome.

Concurrent QR requests are coalesced: while an attempt is still running
and its code is fresh, new requests join it and receive the same code.
"""

import asyncio
import logging
import secrets
from dataclasses import asdict, dataclass, field
from enum import Enum, auto
from typing import Optional

from qrcode.exceptions import DataOverflowError

from wacli.config import AuthConfig
from wacli.errors import (
    AlreadyAuthenticated,
    DeadlineExceeded,
    PlatformConnectionError,
    RenderError,
    WacliError,
)
from wacli.phone import normalize_phone_number
from wacli.qr import QrRenderer
from wacli.session import SessionHandle
from wacli.slot import SingleSlot
from wacli.supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)

QR_INSTRUCTIONS = (
    "Scan this QR code with WhatsApp: Settings → Linked Devices → Link a Device"
)
PHONE_INSTRUCTIONS = (
    "Enter this code in WhatsApp: Settings → Linked Devices → "
    "Link a Device → Link with Phone Number"
)


class PairingMode(Enum):
    """How the user links this device."""

    QR_CODE = auto()
    PHONE_CODE = auto()


class AttemptState(Enum):
    """Foreground view of a pairing attempt."""

    IDLE = auto()
    AWAITING_CODE = auto()
    CODE_DELIVERED = auto()
    FAILED = auto()
    TIMED_OUT = auto()  # foreground gave up; background may still deliver


@dataclass(frozen=True)
class _Outcome:
    """What the background task placed in the slot."""

    code: Optional[str] = None
    error: Optional[WacliError] = None


@dataclass
class PairingAttempt:
    """One pairing attempt and its background task.

    Attributes:
        mode: QR or phone code.
        deadline: Event loop time bounding the whole handshake.
        attempt_id: Short id for log correlation.
        state: Current attempt state.
        task: Background connect task (QR mode only).
        result: Write-once slot for the first code or the first error.
        code_received_at: Event loop time the code arrived.
    """

    mode: PairingMode
    deadline: float
    attempt_id: str = field(default_factory=lambda: secrets.token_hex(4))
    state: AttemptState = AttemptState.IDLE
    task: Optional[asyncio.Task] = None
    result: SingleSlot = field(default_factory=SingleSlot)
    code_received_at: Optional[float] = None

    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    def code_age(self, now: float) -> Optional[float]:
        if self.code_received_at is None:
            return None
        return now - self.code_received_at

    def transition_to(self, new_state: AttemptState) -> None:
        """Transition to a new state with validation.

        Raises:
            ValueError: If transition is not valid from current state.
        """
        valid_transitions = {
            AttemptState.IDLE: {AttemptState.AWAITING_CODE},
            AttemptState.AWAITING_CODE: {
                AttemptState.CODE_DELIVERED,
                AttemptState.FAILED,
                AttemptState.TIMED_OUT,
            },
            # a late code is kept for requests that join the attempt
            AttemptState.TIMED_OUT: {
                AttemptState.CODE_DELIVERED,
                AttemptState.FAILED,
            },
            AttemptState.CODE_DELIVERED: set(),
            AttemptState.FAILED: set(),
        }

        if new_state not in valid_transitions.get(self.state, set()):
            raise ValueError(f"Invalid transition: {self.state} -> {new_state}")

        self.state = new_state


@dataclass(frozen=True)
class QrPairingResult:
    """Successful QR pairing response."""

    qr_code: str
    qr_code_png: str
    expires_in: int
    instructions: str = QR_INSTRUCTIONS

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PhonePairingResult:
    """Successful phone pairing response."""

    pairing_code: str
    phone_number: str
    expires_in: int
    instructions: str = PHONE_INSTRUCTIONS

    def to_dict(self) -> dict:
        return asdict(self)


class PairingCoordinator:
    """Starts pairing attempts and hands their codes to HTTP callers."""

    def __init__(
        self,
        session: SessionHandle,
        supervisor: ConnectionSupervisor,
        config: AuthConfig,
    ):
        """Initialize pairing coordinator.

        Args:
            session: The process session handle.
            supervisor: Performs the platform connect.
            config: Pairing timeouts and code lifetimes.
        """
        self.session = session
        self.supervisor = supervisor
        self.config = config
        self._attempt: Optional[PairingAttempt] = None
        self._lock = asyncio.Lock()

    @property
    def current_attempt(self) -> Optional[PairingAttempt]:
        return self._attempt

    async def request_qr(self) -> QrPairingResult:
        """Obtain a QR code for linking this device.

        Returns:
            The code, its PNG rendering and remaining lifetime.

        Raises:
            AlreadyAuthenticated: The session is already paired.
            InitializationError: The session could not be opened.
            PlatformConnectionError: The attempt failed before a code arrived.
            DeadlineExceeded: No code within qr_wait_timeout. The attempt
                keeps running and a later request may join it.
            RenderError: The code could not be rendered.
        """
        await self._ensure_unpaired()

        async with self._lock:
            attempt = await self._join_or_start_attempt()

        try:
            outcome = await attempt.result.wait(self.config.qr_wait_timeout)
        except asyncio.TimeoutError:
            if attempt.state == AttemptState.AWAITING_CODE:
                attempt.transition_to(AttemptState.TIMED_OUT)
            logger.info(
                f"Attempt {attempt.attempt_id}: no QR code after "
                f"{self.config.qr_wait_timeout}s, pairing continues in background"
            )
            raise DeadlineExceeded("timeout waiting for QR code")

        if outcome.error is not None:
            raise outcome.error

        loop = asyncio.get_running_loop()
        age = attempt.code_age(loop.time()) or 0.0
        expires_in = max(0, self.config.qr_expires_in - int(age))
        return QrPairingResult(
            qr_code=outcome.code,
            qr_code_png=self._render(outcome.code),
            expires_in=expires_in,
        )

    async def request_phone_code(self, phone_number: str) -> PhonePairingResult:
        """Obtain an 8-character code to type on the phone.

        Args:
            phone_number: Number of the account to link, any common format.

        Raises:
            InvalidPhoneNumber: Malformed number. No network call is made.
            AlreadyAuthenticated: The session is already paired.
            InitializationError: The session could not be opened.
            PlatformConnectionError: Transport connect failed.
            PairingRequestError: The platform refused to issue a code.
            DeadlineExceeded: phone_pair_timeout fired.
        """
        number = normalize_phone_number(phone_number)
        await self._ensure_unpaired()

        loop = asyncio.get_running_loop()
        attempt = PairingAttempt(
            mode=PairingMode.PHONE_CODE,
            deadline=loop.time() + self.config.phone_pair_timeout,
        )
        attempt.transition_to(AttemptState.AWAITING_CODE)
        logger.info(f"Attempt {attempt.attempt_id}: requesting phone pairing code")

        try:
            await self.supervisor.ensure_transport(attempt.deadline)
            remaining = attempt.deadline - loop.time()
            if remaining <= 0:
                raise DeadlineExceeded("timeout requesting pairing code")
            try:
                code = await asyncio.wait_for(
                    self.session.client.pair_phone(number), timeout=remaining
                )
            except asyncio.TimeoutError:
                raise DeadlineExceeded("timeout requesting pairing code")
        except DeadlineExceeded:
            attempt.transition_to(AttemptState.TIMED_OUT)
            raise
        except WacliError:
            attempt.transition_to(AttemptState.FAILED)
            raise

        attempt.transition_to(AttemptState.CODE_DELIVERED)
        logger.info(f"Attempt {attempt.attempt_id}: phone pairing code issued")
        return PhonePairingResult(
            pairing_code=code,
            phone_number=phone_number,
            expires_in=self.config.phone_code_expires_in,
        )

    async def close(self) -> None:
        """Cancel the running attempt, if any, and wait for it to finish."""
        async with self._lock:
            attempt, self._attempt = self._attempt, None
        if attempt is not None:
            await self._cancel(attempt)

    async def _ensure_unpaired(self) -> None:
        await self.session.ensure_opened()
        if self.session.is_authenticated():
            raise AlreadyAuthenticated()

    async def _join_or_start_attempt(self) -> PairingAttempt:
        """Return the attempt a QR request should wait on. Holds _lock."""
        loop = asyncio.get_running_loop()
        now = loop.time()
        current = self._attempt

        if current is not None and current.is_running():
            age = current.code_age(now)
            if age is None or age < self.config.qr_expires_in:
                logger.info(f"Joining pairing attempt {current.attempt_id}")
                return current
            logger.info(
                f"Attempt {current.attempt_id}: QR code expired, starting a new one"
            )
            await self._cancel(current)

        attempt = PairingAttempt(
            mode=PairingMode.QR_CODE,
            deadline=now + self.config.pairing_timeout,
        )
        attempt.transition_to(AttemptState.AWAITING_CODE)
        attempt.task = asyncio.create_task(self._run_attempt(attempt))
        self._attempt = attempt
        logger.info(f"Started pairing attempt {attempt.attempt_id}")
        return attempt

    async def _run_attempt(self, attempt: PairingAttempt) -> None:
        """Background connect for one QR attempt."""
        loop = asyncio.get_running_loop()

        def on_code(code: str) -> None:
            if attempt.result.offer(_Outcome(code=code)):
                attempt.code_received_at = loop.time()
                attempt.transition_to(AttemptState.CODE_DELIVERED)
                logger.info(f"Attempt {attempt.attempt_id}: QR code received")

        try:
            await self.supervisor.connect(
                attempt.deadline, wait_for_pairing=True, on_code=on_code
            )
        except asyncio.CancelledError:
            self._fail(attempt, PlatformConnectionError("pairing attempt cancelled"))
            raise
        except WacliError as e:
            logger.warning(f"Attempt {attempt.attempt_id} ended: {e}")
            self._fail(attempt, e)
            return
        except Exception as e:
            logger.exception(f"Attempt {attempt.attempt_id} crashed")
            self._fail(attempt, PlatformConnectionError(str(e)))
            return

        if attempt.result.filled:
            logger.info(f"Attempt {attempt.attempt_id}: pairing completed")
        else:
            # paired by someone else between the guard and the connect
            self._fail(attempt, AlreadyAuthenticated())

    @staticmethod
    def _fail(attempt: PairingAttempt, error: WacliError) -> None:
        if attempt.result.offer(_Outcome(error=error)):
            attempt.transition_to(AttemptState.FAILED)

    @staticmethod
    async def _cancel(attempt: PairingAttempt) -> None:
        if attempt.task is None or attempt.task.done():
            return
        attempt.task.cancel()
        try:
            await attempt.task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Attempt {attempt.attempt_id} cancelled")

    @staticmethod
    def _render(code: str) -> str:
        try:
            return QrRenderer(code).to_data_uri()
        except (DataOverflowError, ValueError) as e:
            raise RenderError(f"failed to generate QR code image: {e}") from e
