"""Tests for config module."""

from pathlib import Path
from unittest.mock import Mock

import yaml

from wacli.config import (
    AuthConfig,
    BridgeConfig,
    Config,
    get_config_path,
    load_config,
    parse_api_keys,
)


class TestConfigDefaults:
    """Test default configuration values."""

    def test_default_config_values(self):
        config = Config()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.store_dir == "~/.wacli"
        assert config.api_keys == []
        assert config.log_level == "INFO"
        assert config.log_file is None

    def test_default_auth_timings(self):
        auth = AuthConfig()

        assert auth.qr_wait_timeout == 10.0
        assert auth.pairing_timeout == 60.0
        assert auth.wait_timeout == 120.0
        assert auth.poll_interval == 1.0
        assert auth.qr_expires_in == 60
        assert auth.phone_code_expires_in == 300

    def test_default_bridge(self):
        assert BridgeConfig().url == "http://127.0.0.1:8090"
        assert BridgeConfig().token is None


class TestGetConfigPath:
    """Test config path resolution."""

    def test_get_config_path_default(self):
        path = get_config_path()
        assert path == Path.home() / ".config" / "wacli" / "config.yaml"

    def test_get_config_path_custom(self):
        custom = Path("/custom/config.yaml")
        assert get_config_path(custom) == custom


class TestLoadConfig:
    """Test config loading."""

    def test_no_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "nonexistent.yaml", env={})

        assert config.port == 8080
        assert config.api_keys == []

    def test_load_from_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            yaml.dump(
                {
                    "port": 9000,
                    "host": "127.0.0.1",
                    "api_keys": ["k1", "k2"],
                    "log_level": "DEBUG",
                    "bridge": {"url": "http://bridge:8090", "token": "secret"},
                    "auth": {"qr_wait_timeout": 5, "wait_timeout": 30},
                }
            )
        )

        config = load_config(config_file, env={})

        assert config.port == 9000
        assert config.host == "127.0.0.1"
        assert config.api_keys == ["k1", "k2"]
        assert config.log_level == "DEBUG"
        assert config.bridge.url == "http://bridge:8090"
        assert config.bridge.token == "secret"
        assert config.auth.qr_wait_timeout == 5
        assert config.auth.wait_timeout == 30
        assert config.auth.pairing_timeout == 60.0

    def test_invalid_yaml_returns_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("port: [unclosed")

        config = load_config(config_file, env={})

        assert config.port == 8080

    def test_injectable_file_reader(self):
        reader = Mock(return_value={"port": 1234})

        config = load_config(Path("/virtual.yaml"), file_reader=reader, env={})

        reader.assert_called_once_with(Path("/virtual.yaml"))
        assert config.port == 1234


class TestEnvironmentOverrides:
    """WACLI_* variables win over file values."""

    def test_env_overrides_file(self):
        reader = Mock(return_value={"port": 1234, "api_keys": "from-file"})
        env = {
            "WACLI_API_KEYS": "a, b,,c",
            "WACLI_API_HOST": "127.0.0.1",
            "WACLI_API_PORT": "9999",
            "WACLI_STORE_DIR": "/data/wacli",
            "WACLI_BRIDGE_URL": "http://sidecar:8090",
            "WACLI_BRIDGE_TOKEN": "tok",
            "WACLI_LOG_LEVEL": "DEBUG",
        }

        config = load_config(Path("/virtual.yaml"), file_reader=reader, env=env)

        assert config.api_keys == ["a", "b", "c"]
        assert config.host == "127.0.0.1"
        assert config.port == 9999
        assert config.store_dir == "/data/wacli"
        assert config.bridge.url == "http://sidecar:8090"
        assert config.bridge.token == "tok"
        assert config.log_level == "DEBUG"

    def test_env_without_file(self):
        config = load_config(
            Path("/virtual.yaml"),
            file_reader=lambda p: None,
            env={"WACLI_API_KEYS": "only"},
        )

        assert config.api_keys == ["only"]

    def test_bad_port_is_ignored(self):
        config = load_config(
            Path("/virtual.yaml"),
            file_reader=lambda p: None,
            env={"WACLI_API_PORT": "http"},
        )

        assert config.port == 8080


class TestParseApiKeys:
    def test_comma_string(self):
        assert parse_api_keys(" one ,two ") == ["one", "two"]

    def test_list(self):
        assert parse_api_keys(["one", " ", 3]) == ["one", "3"]

    def test_none(self):
        assert parse_api_keys(None) == []
