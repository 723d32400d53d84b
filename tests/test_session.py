"""Tests for the session handle."""

import asyncio

import pytest

from tests.fakes import FakePlatformClient
from wacli.errors import InitializationError, PlatformConnectionError
from wacli.session import SessionHandle


class TestSessionPredicates:
    """State predicates never block and never open the client."""

    def test_unopened_session_is_not_authenticated(self):
        factory_calls = []
        handle = SessionHandle(lambda: factory_calls.append(1))

        assert handle.is_authenticated() is False
        assert handle.is_connected() is False
        assert handle.is_open is False
        assert factory_calls == []

    async def test_predicates_read_live_client_state(self, session, fake_client):
        await session.ensure_opened()
        assert session.snapshot() == {"authenticated": False, "connected": False}

        fake_client.authenticated = True
        fake_client.connected = True

        assert session.snapshot() == {"authenticated": True, "connected": True}

    def test_client_before_open_raises(self):
        handle = SessionHandle(FakePlatformClient)

        with pytest.raises(InitializationError):
            handle.client


class TestEnsureOpened:
    """Tests for lazy client creation."""

    async def test_opens_exactly_once(self):
        created = []

        def factory():
            client = FakePlatformClient()
            created.append(client)
            return client

        handle = SessionHandle(factory)
        clients = await asyncio.gather(*(handle.ensure_opened() for _ in range(5)))

        assert len(created) == 1
        assert all(c is created[0] for c in clients)
        assert created[0].open_calls == 1
        await handle.close()

    async def test_failed_open_can_be_retried(self):
        """A corrupt store leaves the handle unopened."""
        clients = [
            FakePlatformClient(open_error=InitializationError("store is corrupt")),
            FakePlatformClient(),
        ]
        handle = SessionHandle(lambda: clients.pop(0))

        with pytest.raises(InitializationError, match="store is corrupt"):
            await handle.ensure_opened()
        assert handle.is_open is False

        client = await handle.ensure_opened()
        assert handle.is_open is True
        assert client.open_calls == 1
        await handle.close()

    async def test_failed_open_closes_client(self):
        client = FakePlatformClient(open_error=InitializationError("nope"))
        handle = SessionHandle(lambda: client)

        with pytest.raises(InitializationError):
            await handle.ensure_opened()

        assert client.close_calls == 1

    async def test_other_open_errors_become_initialization_errors(self):
        client = FakePlatformClient(open_error=PlatformConnectionError("bridge down"))
        handle = SessionHandle(lambda: client)

        with pytest.raises(InitializationError, match="bridge down"):
            await handle.ensure_opened()


class TestClose:
    """Tests for releasing the client."""

    async def test_close_is_idempotent(self, fake_client):
        handle = SessionHandle(lambda: fake_client)
        await handle.ensure_opened()

        await handle.close()
        await handle.close()

        assert fake_client.close_calls == 1
        assert handle.is_open is False

    async def test_close_unopened(self, fake_client):
        handle = SessionHandle(lambda: fake_client)

        await handle.close()

        assert fake_client.close_calls == 0

    async def test_open_after_close_fails(self, fake_client):
        handle = SessionHandle(lambda: fake_client)
        await handle.close()

        with pytest.raises(InitializationError, match="closed"):
            await handle.ensure_opened()
