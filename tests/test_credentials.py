"""Tests for the credential store."""

import json

import pytest

from wacli.credentials import CredentialStore, Credentials
from wacli.errors import InitializationError

JID = "15551234567@s.whatsapp.net"


class TestCredentials:
    """Tests for Credentials dataclass."""

    def test_update_last_seen(self):
        creds = Credentials(jid=JID, paired_at="2024-01-01T00:00:00Z")
        assert creds.last_seen is None

        creds.update_last_seen()

        assert creds.last_seen.endswith("Z")

    def test_from_dict_defaults(self):
        creds = Credentials.from_dict({"jid": JID})

        assert creds.jid == JID
        assert creds.push_name == ""
        assert creds.last_seen is None

    def test_to_dict(self):
        creds = Credentials(jid=JID, push_name="Ada", platform="android")

        d = creds.to_dict()

        assert d["jid"] == JID
        assert d["push_name"] == "Ada"
        assert d["platform"] == "android"


class TestCredentialStore:
    """Tests for CredentialStore."""

    def test_load_empty_directory(self, tmp_path):
        store = CredentialStore(tmp_path / "store")

        store.load()

        assert store.has_credentials() is False
        assert (tmp_path / "store").is_dir()

    def test_set_persists(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.load()

        store.set(JID, push_name="Ada")

        reloaded = CredentialStore(tmp_path)
        reloaded.load()
        assert reloaded.has_credentials()
        assert reloaded.get().jid == JID
        assert reloaded.get().paired_at.endswith("Z")

    def test_file_layout(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.load()
        store.set(JID)

        data = json.loads((tmp_path / "session.json").read_text())

        assert data["device"]["jid"] == JID

    def test_clear_removes_file(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.load()
        store.set(JID)

        store.clear()

        assert store.has_credentials() is False
        assert not (tmp_path / "session.json").exists()

    def test_clear_without_file(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.load()

        store.clear()

        assert store.get() is None

    def test_touch_updates_last_seen(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.load()
        store.set(JID)
        store.get().last_seen = None

        store.touch()

        assert store.get().last_seen is not None

    def test_touch_without_credentials_is_noop(self, tmp_path):
        store = CredentialStore(tmp_path)
        store.load()

        store.touch()

        assert not (tmp_path / "session.json").exists()

    def test_empty_object_means_unpaired(self, tmp_path):
        (tmp_path / "session.json").write_text("{}")
        store = CredentialStore(tmp_path)

        store.load()

        assert store.has_credentials() is False

    def test_corrupt_json_raises(self, tmp_path):
        (tmp_path / "session.json").write_text("{not json")
        store = CredentialStore(tmp_path)

        with pytest.raises(InitializationError, match="corrupt"):
            store.load()

    def test_missing_device_fields_raises(self, tmp_path):
        (tmp_path / "session.json").write_text('{"device": {"name": "x"}}')
        store = CredentialStore(tmp_path)

        with pytest.raises(InitializationError, match="corrupt"):
            store.load()

    def test_inaccessible_directory_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        store = CredentialStore(blocker / "store")

        with pytest.raises(InitializationError, match="not accessible"):
            store.load()
