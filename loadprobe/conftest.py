"""
Pytest configuration and fixtures for the load testing engine.

This module provides hypothesis profiles and mock HTTP plumbing shared by
all test modules.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

import httpx
import pytest
import pytest_asyncio
from hypothesis import Verbosity, settings

from loadprobe.framework.models import ResourceSample
from loadprobe.framework.requester import HttpRequester

# Configure Hypothesis profiles
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.register_profile(
    "dev",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Load the default hypothesis profile
    settings.load_profile("default")
    config.addinivalue_line("markers", "property: property-based tests")
    config.addinivalue_line("markers", "slow: tests that run real timed traffic")


class StubResourceMonitor:
    """Resource monitor returning fixed values instead of sampling psutil."""

    def __init__(self, cpu_percent: float = 5.0, memory_mb: float = 50.0):
        self.cpu_percent = cpu_percent
        self.memory_mb = memory_mb
        self.ticks: list[int] = []

    def start(self) -> None:
        pass

    def sample(self, tick: int) -> Optional[ResourceSample]:
        self.ticks.append(tick)
        return ResourceSample(
            tick=tick,
            timestamp=datetime.utcnow(),
            cpu_percent=self.cpu_percent,
            memory_mb=self.memory_mb,
        )


@pytest.fixture
def resource_monitor():
    """Deterministic resource monitor."""
    return StubResourceMonitor()


@pytest_asyncio.fixture
async def mock_requester_factory():
    """Build an HttpRequester backed by an httpx.MockTransport handler.

    An optional delay is applied before the handler runs to simulate
    endpoint latency. Every client built is closed on teardown.
    """
    clients: list[httpx.AsyncClient] = []

    def factory(
        handler: Callable[[httpx.Request], httpx.Response],
        delay_seconds: float = 0.0,
    ) -> HttpRequester:
        async def transport_handler(request: httpx.Request) -> httpx.Response:
            if delay_seconds:
                await asyncio.sleep(delay_seconds)
            return handler(request)

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(transport_handler),
            base_url="http://testserver",
        )
        clients.append(client)
        return HttpRequester(client)

    yield factory

    for client in clients:
        await client.aclose()
