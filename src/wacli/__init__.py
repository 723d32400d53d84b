"""wacli API - session authentication for a WhatsApp HTTP API."""

__version__ = "0.1.0"
