"""Logging for the wacli API server.

Everything under the ``wacli`` logger goes to stderr and, when
``log_file`` is set, to that file as well. Records never reach the root
logger, so embedding applications keep their own handlers.
"""

import logging
from pathlib import Path

from wacli.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured: logging.Logger | None = None


def _build_handlers(log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(path))
    return handlers


def setup_logging(config: Config) -> logging.Logger:
    """Attach handlers to the ``wacli`` logger.

    Only the first call configures anything; later calls return the
    already configured logger unchanged. Unknown level names fall back
    to INFO.
    """
    global _configured

    if _configured is not None:
        return _configured

    wacli_logger = logging.getLogger("wacli")
    wacli_logger.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    wacli_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _build_handlers(config.log_file):
        handler.setFormatter(formatter)
        wacli_logger.addHandler(handler)
    wacli_logger.propagate = False

    _configured = wacli_logger
    return wacli_logger


def reset_logging() -> None:
    """Drop the handlers so the next setup_logging() starts clean."""
    global _configured
    if _configured is not None:
        _configured.handlers.clear()
        _configured = None
