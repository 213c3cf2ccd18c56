"""End-to-end merges against the SQL entity store on SQLite.

Runs the full pipeline (key specification parsing, source grouping, diff,
apply) through :func:`entity_repository_scope` and checks that the store
converges and that a repeated run is a no-op.
"""

from __future__ import annotations

import pytest
from merge_engine.merge import (
    build_source_by_schema,
    merge_entities,
    parse_merge_columns,
    plan_entities,
)
from merge_engine.state.database import get_session
from merge_engine.state.repository import EntityRepository, entity_repository_scope

GRAPH = {
    "graphId": "catalog",
    "nodes": [
        {"id": "n1", "schemaId": "products", "payload": {"sku": "A", "warehouse": 1, "qty": 5}},
        {"id": "n2", "schemaId": "products", "payload": {"sku": "A", "warehouse": 2, "qty": 1}},
        {"id": "n3", "schemaId": "products", "payload": {"sku": "B", "warehouse": 1, "qty": 0}},
        {"id": "n4", "schemaId": "suppliers", "payload": {"sku": "S1", "warehouse": 0, "name": "Acme"}},
        {"id": "n5", "schemaId": "products", "payload": {"warehouse": 3}},
    ],
    "edges": [],
}


async def _stored(engine, schema_id):
    async with get_session(engine) as session:
        records = await EntityRepository(session, schema_id).find_all()
    return {(r["sku"], r["warehouse"]): r for r in records}


class TestMergeOnSqlite:
    @pytest.mark.asyncio
    async def test_converges_and_is_idempotent(self, sqlite_engine):
        config = parse_merge_columns('[{"key":"sku"},{"key":"warehouse"}]')
        source = build_source_by_schema(GRAPH)
        scope = entity_repository_scope(sqlite_engine, actor="etl")

        first = await merge_entities(source, config, scope)
        second = await merge_entities(source, config, scope)

        assert [(s.schema_id, s.inserted, s.skipped_invalid_key) for s in first.summaries] == [
            ("products", 3, 1),
            ("suppliers", 1, 0),
        ]
        assert second.total.inserted == 0
        assert second.total.updated == 0
        assert second.total.deactivated == 0
        assert second.total.skipped_invalid_key == 1

        products = await _stored(sqlite_engine, "products")
        assert set(products) == {("A", 1), ("A", 2), ("B", 1)}
        assert all(r["createdBy"] == "etl" for r in products.values())

    @pytest.mark.asyncio
    async def test_update_and_deactivate_then_reactivate(self, sqlite_engine):
        config = parse_merge_columns('[{"key":"sku"},{"key":"warehouse"}]')
        scope = entity_repository_scope(sqlite_engine)
        await merge_entities(build_source_by_schema(GRAPH), config, scope)
        before = await _stored(sqlite_engine, "products")

        changed = [
            {"schemaId": "products", "sku": "A", "warehouse": 1, "qty": 7},
            {"schemaId": "products", "sku": "B", "warehouse": 1, "qty": 0},
        ]
        result = await merge_entities(build_source_by_schema(changed, ["products"]), config, scope)

        summary = result.summaries[0]
        assert (summary.inserted, summary.updated, summary.deactivated) == (0, 1, 1)
        after = await _stored(sqlite_engine, "products")
        assert after[("A", 1)]["qty"] == 7
        assert after[("A", 1)]["id"] == before[("A", 1)]["id"]
        assert after[("A", 2)]["inactive"] is True

        restored = [{"schemaId": "products", "sku": "A", "warehouse": 2, "qty": 3}]
        result = await merge_entities(build_source_by_schema(restored), config, scope)
        after = await _stored(sqlite_engine, "products")
        assert after[("A", 2)]["inactive"] is False
        assert after[("A", 2)]["qty"] == 3
        assert result.summaries[0].updated == 1

    @pytest.mark.asyncio
    async def test_hash_column_controls_updates(self, sqlite_engine):
        config = parse_merge_columns('[{"key":"sku"},{"hash":"rev"}]')
        scope = entity_repository_scope(sqlite_engine)
        await merge_entities({"docs": [{"sku": "D1", "rev": 1, "body": "v1"}]}, config, scope)

        same_rev = await merge_entities({"docs": [{"sku": "D1", "rev": 1, "body": "v2"}]}, config, scope)
        new_rev = await merge_entities({"docs": [{"sku": "D1", "rev": 2, "body": "v3"}]}, config, scope)

        assert same_rev.summaries[0].updated == 0
        assert new_rev.summaries[0].updated == 1
        async with get_session(sqlite_engine) as session:
            (doc,) = await EntityRepository(session, "docs").find_all()
        assert doc["body"] == "v3"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, sqlite_engine):
        config = parse_merge_columns('[{"key":"sku"},{"key":"warehouse"}]')
        scope = entity_repository_scope(sqlite_engine)

        diffs = await plan_entities(build_source_by_schema(GRAPH), config, scope)

        assert len(diffs["products"].to_insert) == 3
        assert await _stored(sqlite_engine, "products") == {}
