import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
import pytest

from ranking_cache.config import CacheConfig, Config, StoreConfig
from ranking_cache.store import DocumentStoreClient

Responder = Callable[[httpx.Request], httpx.Response]

DOCUMENTS_PREFIX = '/v1/projects/test-project/databases/(default)/documents'


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@dataclass
class FakeStore:
    """In-memory document store that records every fetch.

    Values come from ``documents``; keys listed in ``failures`` raise the
    mapped exception. When ``gate`` is set, fetches wait on it before
    answering so tests can pile up concurrent callers.
    """

    documents: dict[str, Any] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    gate: asyncio.Event | None = None

    async def fetch(self, key: str) -> Any:
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if key in self.failures:
            raise self.failures[key]
        if key not in self.documents:
            raise KeyError(key)
        return self.documents[key]

    def count(self, key: str) -> int:
        return self.calls.count(key)


@dataclass
class MockAPI:
    responses: dict[str, Responder] = field(default_factory=dict)
    calls: list[httpx.Request] = field(default_factory=list)

    def add_json(self, path: str, payload: dict[str, Any], status_code: int = 200) -> None:
        def responder(_: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code=status_code, json=payload)

        self.responses[DOCUMENTS_PREFIX + path] = responder

    def add_responder(self, path: str, responder: Responder) -> None:
        self.responses[DOCUMENTS_PREFIX + path] = responder

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        responder = self.responses.get(request.url.path)
        if responder is None:
            raise AssertionError(f'Unexpected request to {request.url.path}')
        return responder(request)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(max_entries=2, ttl_ms=1_000, sweep_interval_ms=200)


@pytest.fixture
def store_config() -> StoreConfig:
    return StoreConfig(
        base_url='https://store.example.test/v1',
        project_id='test-project',
        auth_token=None,
        user_agent='pytest-agent',
        timeout=5.0,
        max_retries=2,
        retry_base_delay=0.1,  # Fast for tests
        retry_max_delay=1.0,  # Fast for tests
        page_size=2,
    )


@pytest.fixture
def config(store_config: StoreConfig) -> Config:
    return Config(
        store=store_config,
        rankings_cache=CacheConfig(max_entries=50, ttl_ms=60_000, sweep_interval_ms=10_000),
        profile_cache=CacheConfig(max_entries=3, ttl_ms=60_000, sweep_interval_ms=10_000),
    )


@pytest.fixture
def mock_api() -> tuple[MockAPI, httpx.MockTransport]:
    api = MockAPI()
    transport = httpx.MockTransport(api.handler)
    return api, transport


@pytest.fixture
def store_client(
    store_config: StoreConfig, mock_api: tuple[MockAPI, httpx.MockTransport]
) -> DocumentStoreClient:
    _, transport = mock_api
    return DocumentStoreClient(store_config, transport=transport)
