"""Exceptions for the wacli API server."""


class WacliError(Exception):
    """Base exception for all wacli errors."""

    pass


class AlreadyAuthenticated(WacliError):
    """Session is already paired; a new pairing attempt is not started."""

    def __init__(self, message: str = "already authenticated"):
        super().__init__(message)


class NotAuthenticated(WacliError):
    """Operation requires an authenticated session."""

    def __init__(self, message: str = "not authenticated"):
        super().__init__(message)


class PlatformConnectionError(WacliError):
    """Transport or protocol failure talking to the platform."""

    pass


class PairingRequestError(PlatformConnectionError):
    """Platform refused or failed to issue a phone pairing code."""

    pass


class DeadlineExceeded(WacliError):
    """A local deadline fired before the operation finished.

    Background work started by the operation may still be running.
    """

    pass


class InvalidInput(WacliError):
    """Malformed request body or argument."""

    pass


class InvalidPhoneNumber(InvalidInput):
    """Phone number is empty or not a plausible international number."""

    pass


class InitializationError(WacliError):
    """Local client or credential storage could not be set up."""

    pass


class StartupError(WacliError):
    """Error during daemon startup."""

    pass


class RenderError(WacliError):
    """Pairing code could not be rendered as an image."""

    pass
