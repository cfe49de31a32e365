"""Pytest hooks and fixtures."""

import asyncio
import socket

import pytest

from xtwallet.intercom.server import IntercomServer
from xtwallet.intercom.transport.memory import LocalRuntime


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "network: binds a localhost websocket port",
    )


async def _drain(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def drain():
    """Awaitable that lets queued deliveries and handler tasks run."""
    return _drain


@pytest.fixture
def runtime() -> LocalRuntime:
    return LocalRuntime()


@pytest.fixture
def legacy_runtime() -> LocalRuntime:
    return LocalRuntime(manifest_version=2)


@pytest.fixture
def server(runtime: LocalRuntime):
    srv = IntercomServer(runtime)
    yield srv
    srv.close()


@pytest.fixture
def privileged_ports(runtime: LocalRuntime) -> list:
    """Raw privileged ends of every port opened after this fixture, for scripted replies."""
    ports: list = []
    runtime.on_connect(ports.append)
    return ports


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
