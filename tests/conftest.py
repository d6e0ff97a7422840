"""Shared test fixtures."""
from typing import Callable, Optional
from unittest.mock import AsyncMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from panelsync.cache.store import CacheStore
from panelsync.host.client import HostClient
from panelsync.models.gateway import ProviderCircuitStatus
from panelsync.models.request_log import RequestLogSummary

NOW = 1_700_000_000.0


class FakeClock:
    """Manually advanced unix-seconds clock."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="store")
def store_fixture(clock: FakeClock) -> CacheStore:
    return CacheStore(clock=clock)


@pytest.fixture(name="scheduler")
def scheduler_fixture() -> AsyncIOScheduler:
    """Never started: jobs stay pending so tests can inspect and run them by hand."""
    return AsyncIOScheduler()


@pytest.fixture(name="client")
def client_fixture() -> AsyncMock:
    """HostClient double; every host command is an AsyncMock."""
    return AsyncMock(spec=HostClient)


@pytest.fixture(name="make_log")
def make_log_fixture() -> Callable[..., RequestLogSummary]:
    """Factory for request log rows. created_at defaults to the id."""

    def _make(
        id: int,
        created_at: Optional[int] = None,
        created_at_ms: Optional[int] = None,
        **extra,
    ) -> RequestLogSummary:
        return RequestLogSummary(
            id=id,
            created_at=id if created_at is None else created_at,
            created_at_ms=created_at_ms,
            **extra,
        )

    return _make


@pytest.fixture(name="make_circuit")
def make_circuit_fixture() -> Callable[..., ProviderCircuitStatus]:
    def _make(provider_id: int, state: str = "CLOSED", **kwargs) -> ProviderCircuitStatus:
        return ProviderCircuitStatus(provider_id=provider_id, state=state, **kwargs)

    return _make
