"""
Shared fixtures for the docrecords test suite.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from docrecords.store.memory import InMemoryStore


class FakeClock:
    """Deterministic clock advancing a fixed step on every call."""

    def __init__(
        self,
        start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
        step: timedelta = timedelta(seconds=1),
    ) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current += self.step
        return now


@pytest_asyncio.fixture
async def store():
    """Connected in-memory store, cleared after the test."""
    store = InMemoryStore()
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def clock():
    """Clock starting at 2024-01-01T00:00:00Z, one second per tick."""
    return FakeClock()
