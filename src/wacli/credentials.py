"""Persist the linked-device credentials to a JSON file."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from wacli.errors import InitializationError

logger = logging.getLogger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Credentials:
    """Identity of this process as a linked device on the account."""

    jid: str
    push_name: str = ""
    platform: str = ""
    paired_at: str = ""
    last_seen: Optional[str] = None

    def update_last_seen(self) -> None:
        """Update last_seen to current UTC time."""
        self.last_seen = _utc_now()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "jid": self.jid,
            "push_name": self.push_name,
            "platform": self.platform,
            "paired_at": self.paired_at,
            "last_seen": self.last_seen,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Credentials":
        """Create from dictionary."""
        return cls(
            jid=d["jid"],
            push_name=d.get("push_name", ""),
            platform=d.get("platform", ""),
            paired_at=d.get("paired_at", ""),
            last_seen=d.get("last_seen"),
        )


class CredentialStore:
    """JSON file-based credential storage.

    The file lives at ``<store_dir>/session.json``. Its presence with a
    device JID is what makes the session count as authenticated across
    restarts. Unlike a cache, a corrupt file is not silently ignored:
    ``load()`` raises so the process refuses to start with a broken store.
    """

    FILENAME = "session.json"

    def __init__(self, store_dir: Path):
        """Initialize credential store.

        Args:
            store_dir: Directory holding the credential file.
        """
        self.store_dir = Path(store_dir).expanduser()
        self.path = self.store_dir / self.FILENAME
        self._credentials: Optional[Credentials] = None

    def load(self) -> None:
        """Load credentials from file.

        Raises:
            InitializationError: If the directory or file is unusable.
        """
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InitializationError(f"store directory not accessible: {e}") from e

        if not self.path.exists():
            logger.debug(f"No credentials file at {self.path}")
            self._credentials = None
            return

        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InitializationError(f"credential store is corrupt: {e}") from e
        except OSError as e:
            raise InitializationError(f"credential store not readable: {e}") from e

        if not data:
            self._credentials = None
            return

        try:
            self._credentials = Credentials.from_dict(data["device"])
        except (KeyError, TypeError) as e:
            raise InitializationError(f"credential store is corrupt: {e}") from e

        logger.debug(f"Loaded credentials for {self._credentials.jid}")

    def save(self) -> None:
        """Write current credentials to file."""
        self.store_dir.mkdir(parents=True, exist_ok=True)
        data = {"device": self._credentials.to_dict()} if self._credentials else {}
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

    def set(self, jid: str, push_name: str = "", platform: str = "") -> Credentials:
        """Record a freshly paired device identity."""
        credentials = Credentials(
            jid=jid,
            push_name=push_name,
            platform=platform,
            paired_at=_utc_now(),
        )
        credentials.update_last_seen()
        self._credentials = credentials
        self.save()
        logger.info(f"Stored credentials for {jid}")
        return credentials

    def touch(self) -> None:
        """Update last_seen for the stored device, if any."""
        if self._credentials is None:
            return
        self._credentials.update_last_seen()
        try:
            self.save()
        except OSError as e:
            logger.warning(f"Failed to update last_seen: {e}")

    def clear(self) -> None:
        """Invalidate stored credentials (logout)."""
        self._credentials = None
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        logger.info("Local credentials cleared")

    def get(self) -> Optional[Credentials]:
        """Get stored credentials."""
        return self._credentials

    def has_credentials(self) -> bool:
        """Check whether a paired identity is stored."""
        return self._credentials is not None
