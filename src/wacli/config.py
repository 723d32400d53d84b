"""Configuration management for the wacli API server."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml


@dataclass
class BridgeConfig:
    """Messaging bridge sidecar configuration."""

    url: str = "http://127.0.0.1:8090"
    token: str | None = None
    request_timeout: float = 10.0  # seconds
    reconnect_delay: float = 5.0  # seconds between event stream reconnects


@dataclass
class AuthConfig:
    """Pairing and session timing configuration (seconds)."""

    qr_wait_timeout: float = 10.0  # foreground wait for a QR code
    pairing_timeout: float = 60.0  # outer deadline of a background QR attempt
    phone_pair_timeout: float = 30.0
    wait_timeout: float = 120.0  # /auth/wait overall deadline
    poll_interval: float = 1.0
    logout_timeout: float = 10.0
    qr_expires_in: int = 60  # QR codes rotate roughly every minute
    phone_code_expires_in: int = 300


@dataclass
class Config:
    """Server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    store_dir: str = "~/.wacli"
    api_keys: list[str] = field(default_factory=list)
    log_level: str = "INFO"
    log_file: str | None = None
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "wacli" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError:
        return None


def parse_api_keys(raw: str | list[str] | None) -> list[str]:
    """Split a comma-separated key list, dropping blanks."""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else [str(k) for k in raw]
    return [p.strip() for p in parts if p.strip()]


def _apply_env(config: Config, env: Mapping[str, str]) -> Config:
    """Override config values from WACLI_* environment variables."""
    if env.get("WACLI_API_KEYS"):
        config.api_keys = parse_api_keys(env["WACLI_API_KEYS"])
    if env.get("WACLI_API_HOST"):
        config.host = env["WACLI_API_HOST"]
    if env.get("WACLI_API_PORT"):
        try:
            config.port = int(env["WACLI_API_PORT"])
        except ValueError:
            pass
    if env.get("WACLI_STORE_DIR"):
        config.store_dir = env["WACLI_STORE_DIR"]
    if env.get("WACLI_BRIDGE_URL"):
        config.bridge.url = env["WACLI_BRIDGE_URL"]
    if env.get("WACLI_BRIDGE_TOKEN"):
        config.bridge.token = env["WACLI_BRIDGE_TOKEN"]
    if env.get("WACLI_LOG_LEVEL"):
        config.log_level = env["WACLI_LOG_LEVEL"]
    return config


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from file, then apply environment overrides.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.
        env: Environment mapping. Defaults to os.environ.

    Returns:
        Config object with values from file, environment or defaults.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader
    environ = os.environ if env is None else env

    data = reader(config_path)

    if data is None:
        return _apply_env(Config(), environ)

    # Parse bridge config section
    bridge_data = data.get("bridge", {})
    bridge_config = BridgeConfig(
        url=bridge_data.get("url", BridgeConfig.url),
        token=bridge_data.get("token", BridgeConfig.token),
        request_timeout=bridge_data.get(
            "request_timeout", BridgeConfig.request_timeout
        ),
        reconnect_delay=bridge_data.get(
            "reconnect_delay", BridgeConfig.reconnect_delay
        ),
    )

    # Parse auth timing section
    auth_data = data.get("auth", {})
    auth_config = AuthConfig(
        **{
            name: auth_data.get(name, getattr(AuthConfig, name))
            for name in AuthConfig.__dataclass_fields__
        }
    )

    config = Config(
        host=data.get("host", Config.host),
        port=data.get("port", Config.port),
        store_dir=data.get("store_dir", Config.store_dir),
        api_keys=parse_api_keys(data.get("api_keys")),
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        bridge=bridge_config,
        auth=auth_config,
    )
    return _apply_env(config, environ)
