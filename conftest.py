"""
Shared fixtures: fake clock, recorded sleeps, in-memory cache and a backend
client wired to an httpx.MockTransport.
"""

import asyncio
from typing import Callable, List

import httpx
import pytest

from connectors.backend_client import BackendClient
from core.cache import Cache
from core.kv_store import MemoryKeyValueStore
from core.resilience import ActionExecutor, RetryPolicy


class FakeClock:
    """Millisecond clock advanced by hand"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms


class RecordedSleep:
    """Sleep replacement that records requested delays (seconds) and yields once"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        await asyncio.sleep(0)

    @property
    def total_ms(self) -> float:
        return sum(self.calls) * 1000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordedSleep:
    return RecordedSleep()


@pytest.fixture
def cache(clock) -> Cache:
    return Cache(MemoryKeyValueStore(), clock=clock)


@pytest.fixture
def executor(sleep) -> ActionExecutor:
    return ActionExecutor(policy=RetryPolicy(max_retries=2, base_delay_ms=1000), sleep=sleep)


@pytest.fixture
async def make_backend():
    """Build BackendClients around handler functions and close them afterwards"""
    clients: List[BackendClient] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> BackendClient:
        client = BackendClient(base_url="http://backend.test", token="test-token",
                               transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.close()
