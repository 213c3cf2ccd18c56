"""Shared fixtures for merge engine tests."""

from __future__ import annotations

import pytest
import pytest_asyncio
from merge_engine.models.merge import MergeColumnConfig
from merge_engine.state.database import create_tables
from merge_engine.state.memory import InMemoryEntityStore
from merge_engine.state.sqlite_adapter import get_local_engine


@pytest.fixture
def sku_config() -> MergeColumnConfig:
    return MergeColumnConfig(key_columns=["sku"])


@pytest.fixture
def hashed_config() -> MergeColumnConfig:
    return MergeColumnConfig(key_columns=["sku"], hash_column="contentHash")


@pytest.fixture
def memory_store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


@pytest_asyncio.fixture
async def sqlite_engine():
    """Provide an in-memory SQLite engine with the entity tables created."""
    engine = get_local_engine(":memory:")
    await create_tables(engine)
    yield engine
    await engine.dispose()
