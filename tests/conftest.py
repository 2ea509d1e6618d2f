"""Shared fixtures: asyncio backend, deterministic clock, fake transport."""

from __future__ import annotations

import pytest

from fakes import FakeClock, FakeTransport
from famlynook.session.events import SessionEvent, SessionEventBus
from famlynook.session.store import CredentialStore, MemorySecretStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def secrets() -> MemorySecretStore:
    return MemorySecretStore({"auth_token": "old-tk", "refresh_token": "rt-1"})


@pytest.fixture
def store(secrets: MemorySecretStore) -> CredentialStore:
    return CredentialStore(secrets)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def bus() -> SessionEventBus:
    return SessionEventBus()


@pytest.fixture
def events(bus: SessionEventBus) -> list[SessionEvent]:
    received: list[SessionEvent] = []
    bus.subscribe(received.append)
    return received


def pytest_addoption(parser):
    """Add integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )
