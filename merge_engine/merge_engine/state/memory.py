"""Dict-backed entity store for tests and local dry runs.

Mirrors the behaviour of :class:`~merge_engine.state.repository.EntityRepository`
(generated ids, ISO-8601 timestamps, shallow-merge updates) without a
database.  Returned records are copies, so callers cannot mutate stored state
by accident.
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from merge_engine.merge.fields import INACTIVE_FIELD, SYSTEM_FIELDS, omit


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class InMemoryEntityRepository:
    """Repository over one collection held by an :class:`InMemoryEntityStore`."""

    supports_concurrent_writes = True

    def __init__(self, records: list[dict[str, Any]], actor: str | None = None) -> None:
        self._records = records
        self._actor = actor

    async def find_all(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._records)

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        now = _now_iso()
        record = copy.deepcopy(omit(payload, SYSTEM_FIELDS))
        record.setdefault(INACTIVE_FIELD, False)
        record.update({"id": uuid.uuid4().hex, "createdAt": now, "updatedAt": now})
        if self._actor:
            record["createdBy"] = self._actor
            record["updatedBy"] = self._actor
        self._records.append(record)
        return copy.deepcopy(record)

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any] | None:
        for record in self._records:
            if record.get("id") == record_id:
                record.update(copy.deepcopy(omit(patch, SYSTEM_FIELDS)))
                record["updatedAt"] = _now_iso()
                if self._actor:
                    record["updatedBy"] = self._actor
                return copy.deepcopy(record)
        return None


class InMemoryEntityStore:
    """Collections of records keyed by schema id."""

    def __init__(
        self,
        collections: dict[str, list[dict[str, Any]]] | None = None,
        actor: str | None = None,
    ) -> None:
        self._collections: dict[str, list[dict[str, Any]]] = {
            schema_id: copy.deepcopy(records) for schema_id, records in (collections or {}).items()
        }
        self._actor = actor

    def repository(self, schema_id: str) -> InMemoryEntityRepository:
        return InMemoryEntityRepository(self._collections.setdefault(schema_id, []), actor=self._actor)

    @asynccontextmanager
    async def scope(self, schema_id: str) -> AsyncGenerator[InMemoryEntityRepository, None]:
        """:data:`~merge_engine.state.base.RepositoryScope` over this store."""
        yield self.repository(schema_id)

    def records(self, schema_id: str) -> list[dict[str, Any]]:
        """Return a copy of the stored records of *schema_id*."""
        return copy.deepcopy(self._collections.get(schema_id, []))

    @property
    def schema_ids(self) -> list[str]:
        return list(self._collections)
