"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for time-dependent behavior
- Scripted fetcher and in-memory chain gateway fakes
- A fully wired engine over the in-memory repository
"""

import pytest

from tests.support import ETH_ADDRESS, UNLIMITED, FakeClock, FakeFetcher, InMemoryChainGateway
from trust_engine.adapters.repository.memory import InMemoryVerificationRepository
from trust_engine.domain.engine import TrustEngine
from trust_engine.domain.models import Platform


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def chain() -> InMemoryChainGateway:
    gateway = InMemoryChainGateway()
    gateway.register_address(Platform.ETHEREUM, ETH_ADDRESS)
    return gateway


@pytest.fixture
def repository() -> InMemoryVerificationRepository:
    return InMemoryVerificationRepository()


@pytest.fixture
def engine(
    repository: InMemoryVerificationRepository,
    fetcher: FakeFetcher,
    chain: InMemoryChainGateway,
    clock: FakeClock,
) -> TrustEngine:
    return TrustEngine.create(
        repository,
        fetcher,
        chain,
        clock=clock,
        rate_limits=UNLIMITED,
        check_timeout=5.0,
        moderators=["moderator"],
    )
