"""Pytest configuration and shared fixtures."""

import asyncio

import pytest
import pytest_asyncio

from tests.fakes import FakePlatformClient
from wacli.config import AuthConfig
from wacli.pairing import PairingCoordinator
from wacli.poller import AuthStatusPoller
from wacli.session import SessionHandle
from wacli.supervisor import ConnectionSupervisor


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from wacli.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def cleanup_aiohttp_sessions():
    """Give aiohttp sessions time to clean up their connectors."""
    yield
    await asyncio.sleep(0)


@pytest.fixture
def auth_config() -> AuthConfig:
    """Timings scaled down for fast tests."""
    return AuthConfig(
        qr_wait_timeout=0.3,
        pairing_timeout=2.0,
        phone_pair_timeout=0.5,
        wait_timeout=0.5,
        poll_interval=0.02,
        logout_timeout=0.5,
    )


@pytest.fixture
def fake_client() -> FakePlatformClient:
    return FakePlatformClient()


@pytest_asyncio.fixture
async def session(fake_client):
    handle = SessionHandle(lambda: fake_client)
    yield handle
    await handle.close()


@pytest.fixture
def supervisor(session) -> ConnectionSupervisor:
    return ConnectionSupervisor(session)


@pytest_asyncio.fixture
async def coordinator(session, supervisor, auth_config):
    coord = PairingCoordinator(session, supervisor, auth_config)
    yield coord
    await coord.close()


@pytest.fixture
def poller(session, auth_config) -> AuthStatusPoller:
    return AuthStatusPoller(
        session,
        interval=auth_config.poll_interval,
        timeout=auth_config.wait_timeout,
    )
