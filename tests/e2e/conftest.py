"""
E2E test fixtures for docrecords.

These tests require a running MongoDB server. Each test gets its own
database, dropped afterwards.

    docker run -d -p 27017:27017 mongo:7
    DOCRECORDS_MONGO_TESTS=1 pytest tests/e2e
"""

import os
import uuid

import pytest
import pytest_asyncio

from docrecords.config import MongoConfig
from docrecords.store.mongo import MongoStore

E2E_ENABLED = os.environ.get("DOCRECORDS_MONGO_TESTS", "0") == "1"

requires_mongo = pytest.mark.skipif(
    not E2E_ENABLED,
    reason="MongoDB tests disabled. Set DOCRECORDS_MONGO_TESTS=1 to enable."
)


@pytest_asyncio.fixture
async def mongo_store():
    """MongoStore connected to a throwaway database."""
    config = MongoConfig(
        uri=os.environ.get("MONGO_URI", "mongodb://localhost:27017"),
        database=f"docrecords_test_{uuid.uuid4().hex[:12]}",
        server_selection_timeout_ms=3000,
    )
    store = MongoStore(config)
    await store.connect()
    try:
        yield store
    finally:
        await store._client.drop_database(config.database)
        await store.close()
