"""Unit tests for the SQL entity repository.

These tests use an in-memory SQLite database via aiosqlite so they can run
without a PostgreSQL instance.  The ``JSONB`` column falls back to ``JSON``
through its SQLite type variant.
"""

from __future__ import annotations

import pytest
from merge_engine.state.base import RecordRepository
from merge_engine.state.database import get_session
from merge_engine.state.repository import EntityRepository, entity_repository_scope

# ---------------------------------------------------------------------------
# create / get / find_all
# ---------------------------------------------------------------------------


class TestEntityRepositoryCreate:
    @pytest.mark.asyncio
    async def test_create_assigns_identity(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            repo = EntityRepository(session, "products", actor="etl")
            record = await repo.create({"sku": "A", "q": 1, "inactive": False})

        assert record["id"]
        assert record["sku"] == "A"
        assert record["inactive"] is False
        assert record["createdBy"] == "etl"
        assert record["updatedBy"] == "etl"
        assert record["createdAt"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_create_ignores_system_fields(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            repo = EntityRepository(session, "products")
            record = await repo.create({"sku": "A", "id": "foreign", "createdAt": "1999"})

        assert record["id"] != "foreign"
        assert record["createdAt"] != "1999"
        assert "createdBy" not in record

    @pytest.mark.asyncio
    async def test_round_trip_through_new_session(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            created = await EntityRepository(session, "products").create({"sku": "A", "meta": {"tags": ["x"]}})

        async with get_session(sqlite_engine) as session:
            fetched = await EntityRepository(session, "products").get(created["id"])

        assert fetched is not None
        assert fetched["meta"] == {"tags": ["x"]}
        assert fetched["inactive"] is False
        assert fetched["createdAt"].endswith("+00:00")

    @pytest.mark.asyncio
    async def test_get_unknown(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            assert await EntityRepository(session, "products").get("missing") is None


class TestEntityRepositoryFindAll:
    @pytest.mark.asyncio
    async def test_scoped_by_schema_and_tenant(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            await EntityRepository(session, "products").create({"sku": "A"})
            await EntityRepository(session, "parts").create({"sku": "P"})
            await EntityRepository(session, "products", tenant_id="other").create({"sku": "Z"})

        async with get_session(sqlite_engine) as session:
            products = await EntityRepository(session, "products").find_all()
            other = await EntityRepository(session, "products", tenant_id="other").find_all()

        assert [r["sku"] for r in products] == ["A"]
        assert [r["sku"] for r in other] == ["Z"]

    @pytest.mark.asyncio
    async def test_inactive_filter_and_count(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            repo = EntityRepository(session, "products")
            await repo.create({"sku": "A"})
            await repo.create({"sku": "B", "inactive": True})

        async with get_session(sqlite_engine) as session:
            repo = EntityRepository(session, "products")
            everything = await repo.find_all()
            active = await repo.find_all(include_inactive=False)
            assert await repo.count() == 2
            assert await repo.count(include_inactive=False) == 1

        assert sorted(r["sku"] for r in everything) == ["A", "B"]
        assert [r["sku"] for r in active] == ["A"]


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


class TestEntityRepositoryUpdate:
    @pytest.mark.asyncio
    async def test_shallow_merge(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            created = await EntityRepository(session, "products").create({"sku": "A", "q": 1, "keep": "yes"})

        async with get_session(sqlite_engine) as session:
            updated = await EntityRepository(session, "products", actor="etl").update(
                created["id"], {"q": 2, "id": "ignored"}
            )

        assert updated is not None
        assert updated["id"] == created["id"]
        assert updated["q"] == 2
        assert updated["keep"] == "yes"
        assert updated["updatedBy"] == "etl"

        async with get_session(sqlite_engine) as session:
            fetched = await EntityRepository(session, "products").get(created["id"])
        assert fetched["q"] == 2

    @pytest.mark.asyncio
    async def test_deactivate(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            created = await EntityRepository(session, "products").create({"sku": "A"})

        async with get_session(sqlite_engine) as session:
            await EntityRepository(session, "products").update(created["id"], {"inactive": True})

        async with get_session(sqlite_engine) as session:
            repo = EntityRepository(session, "products")
            assert (await repo.get(created["id"]))["inactive"] is True
            assert await repo.find_all(include_inactive=False) == []

    @pytest.mark.asyncio
    async def test_unknown_id_returns_none(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            assert await EntityRepository(session, "products").update("missing", {"q": 1}) is None

    @pytest.mark.asyncio
    async def test_other_collection_not_reachable(self, sqlite_engine):
        async with get_session(sqlite_engine) as session:
            created = await EntityRepository(session, "products").create({"sku": "A"})

        async with get_session(sqlite_engine) as session:
            assert await EntityRepository(session, "parts").update(created["id"], {"q": 1}) is None


# ---------------------------------------------------------------------------
# Sessions and scopes
# ---------------------------------------------------------------------------


class TestRepositoryScope:
    @pytest.mark.asyncio
    async def test_scope_yields_bound_repository(self, sqlite_engine):
        scope = entity_repository_scope(sqlite_engine, tenant_id="t1", actor="etl")
        async with scope("products") as repo:
            assert isinstance(repo, RecordRepository)
            assert repo.schema_id == "products"
            await repo.create({"sku": "A"})

        async with get_session(sqlite_engine) as session:
            stored = await EntityRepository(session, "products", tenant_id="t1").find_all()
        assert [r["sku"] for r in stored] == ["A"]

    @pytest.mark.asyncio
    async def test_scope_rolls_back_on_error(self, sqlite_engine):
        scope = entity_repository_scope(sqlite_engine)
        with pytest.raises(RuntimeError):
            async with scope("products") as repo:
                await repo.create({"sku": "A"})
                raise RuntimeError("abort")

        async with get_session(sqlite_engine) as session:
            assert await EntityRepository(session, "products").count() == 0

    def test_sql_repository_is_sequential(self):
        assert not getattr(EntityRepository, "supports_concurrent_writes", False)
