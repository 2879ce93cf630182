"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Batch factories and sample inventories for two warehouses
- A mock bulk-read source and a local change feed
- Stub alert sources
- FastAPI test client
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from tenacity import wait_none

from freshtrack.domain.models import Batch, BatchStatus, GasLevel, ViewerRole
from freshtrack.infrastructure.backend_client import BackendClient
from freshtrack.infrastructure.change_feed import LocalChangeFeed
from freshtrack.main import app


NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


# ============================================================
# Sample Data Fixtures
# ============================================================

def build_batch(
    record_id: str,
    warehouse_id: str = "wh-a",
    status: BatchStatus = BatchStatus.ACTIVE,
    risk_score: Optional[int] = 20,
    quantity: float = 100.0,
    days_ago: int = 0,
    **overrides,
) -> Batch:
    """Build a batch with sensible defaults."""
    values = dict(
        id=record_id,
        batch_id=f"B-{record_id}",
        warehouse_id=warehouse_id,
        zone="Z1",
        crop="Tomato",
        quantity=quantity,
        unit="kg",
        entry_date=NOW - timedelta(days=days_ago),
        shelf_life=7,
        risk_score=risk_score,
        status=status,
    )
    values.update(overrides)
    return Batch(**values)


@pytest.fixture
def make_batch() -> Callable[..., Batch]:
    """Factory fixture for batches."""
    return build_batch


@pytest.fixture
def warehouse_a_batches() -> list[Batch]:
    """Three non-expired batches in warehouse A, newest first."""
    return [
        build_batch("a1", risk_score=10, quantity=50, days_ago=0),
        build_batch("a2", risk_score=45, quantity=75, days_ago=1),
        build_batch("a3", risk_score=85, quantity=25, days_ago=2),
    ]


@pytest.fixture
def warehouse_b_batches() -> list[Batch]:
    """Two non-expired batches in warehouse B, newest first."""
    return [
        build_batch("b1", warehouse_id="wh-b", risk_score=30, days_ago=0),
        build_batch("b2", warehouse_id="wh-b", risk_score=71, days_ago=3),
    ]


@pytest.fixture
def fresh_intake_batch() -> Batch:
    """Batch entered now with no sensor readings."""
    return build_batch("fresh", risk_score=None, ethylene=GasLevel.NORMAL, co2=GasLevel.NORMAL)


# ============================================================
# Collaborator Fixtures
# ============================================================

@pytest.fixture
def mock_source(warehouse_a_batches, warehouse_b_batches) -> AsyncMock:
    """Mock bulk-read source honoring the warehouse filter."""
    source = AsyncMock(spec=BackendClient)

    async def fetch(warehouse_id=None):
        rows = warehouse_a_batches + warehouse_b_batches
        if warehouse_id is None:
            return rows
        return [b for b in rows if b.warehouse_id == warehouse_id]

    source.fetch_active_batches.side_effect = fetch
    return source


@pytest.fixture
def change_feed() -> LocalChangeFeed:
    """Fresh in-process change feed."""
    return LocalChangeFeed()


class StubAlertSource:
    """Alert source returning a fixed count or raising a fixed error."""

    def __init__(
        self,
        source_id: str,
        count: int = 0,
        error: Optional[Exception] = None,
        roles: Optional[set[ViewerRole]] = None,
    ):
        self.source_id = source_id
        self.count = count
        self.error = error
        self.roles = roles
        self.calls: list[str] = []

    def visible_to(self, role: ViewerRole) -> bool:
        return self.roles is None or role in self.roles

    async def count_unacknowledged(self, warehouse_id: str) -> int:
        self.calls.append(warehouse_id)
        if self.error is not None:
            raise self.error
        return self.count


@pytest.fixture
def stub_source_factory() -> Callable[..., StubAlertSource]:
    """Factory fixture for stub alert sources."""
    return StubAlertSource


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def wait_until() -> Callable:
    """Coroutine function yielding to the event loop until a predicate holds."""
    return _wait_until


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    """Retry immediately instead of backing off."""
    monkeypatch.setattr(BackendClient._send.retry, "wait", wait_none())


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client() -> Iterator[TestClient]:
    """Test client with the application lifespan running."""
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
