"""SQL-backed repository over one collection of the entity store.

The repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call
``session.flush()``; the caller is responsible for committing (or relying on
the :func:`~merge_engine.state.database.get_session` context manager).

``AsyncSession`` is not safe for concurrent use, so this repository does not
advertise ``supports_concurrent_writes``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from merge_engine.merge.fields import INACTIVE_FIELD, SYSTEM_FIELDS, omit
from merge_engine.state.base import RepositoryScope
from merge_engine.state.database import get_session
from merge_engine.state.tables import EntityTable

logger = logging.getLogger(__name__)


def _isoformat(value: datetime) -> str:
    # SQLite hands back naive datetimes; they were written as UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _to_record(row: EntityTable) -> dict[str, Any]:
    record: dict[str, Any] = dict(row.data or {})
    record[INACTIVE_FIELD] = bool(row.inactive)
    record["id"] = row.id
    record["createdAt"] = _isoformat(row.created_at)
    record["updatedAt"] = _isoformat(row.updated_at)
    if row.created_by is not None:
        record["createdBy"] = row.created_by
    if row.updated_by is not None:
        record["updatedBy"] = row.updated_by
    return record


class EntityRepository:
    """CRUD operations for one collection of the ``entities`` table.

    Parameters
    ----------
    session:
        Active async session.
    schema_id:
        Collection the repository is bound to.
    tenant_id:
        Tenant scope for every query and write.
    actor:
        Identity recorded as ``createdBy``/``updatedBy``, if any.
    """

    def __init__(
        self,
        session: AsyncSession,
        schema_id: str,
        tenant_id: str = "default",
        actor: str | None = None,
    ) -> None:
        self._session = session
        self._schema_id = schema_id
        self._tenant_id = tenant_id
        self._actor = actor

    @property
    def schema_id(self) -> str:
        return self._schema_id

    def _scoped(self) -> Any:
        return select(EntityTable).where(
            EntityTable.tenant_id == self._tenant_id,
            EntityTable.schema_id == self._schema_id,
        )

    async def _get_row(self, record_id: str) -> EntityTable | None:
        stmt = self._scoped().where(EntityTable.id == record_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_all(self, include_inactive: bool = True) -> list[dict[str, Any]]:
        """Return the collection's records, oldest first."""
        stmt = self._scoped()
        if not include_inactive:
            stmt = stmt.where(EntityTable.inactive.is_(False))
        stmt = stmt.order_by(EntityTable.created_at, EntityTable.id)
        result = await self._session.execute(stmt)
        return [_to_record(row) for row in result.scalars().all()]

    async def get(self, record_id: str) -> dict[str, Any] | None:
        """Return a single record by id, or ``None``."""
        row = await self._get_row(record_id)
        return _to_record(row) if row is not None else None

    async def count(self, include_inactive: bool = True) -> int:
        """Return the number of records in the collection."""
        stmt = select(func.count()).where(
            EntityTable.tenant_id == self._tenant_id,
            EntityTable.schema_id == self._schema_id,
        )
        if not include_inactive:
            stmt = stmt.where(EntityTable.inactive.is_(False))
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert a record with a generated id; system fields in *payload* are ignored."""
        data = omit(payload, SYSTEM_FIELDS)
        data.setdefault(INACTIVE_FIELD, False)
        row = EntityTable(
            tenant_id=self._tenant_id,
            schema_id=self._schema_id,
            id=uuid.uuid4().hex,
            data=data,
            inactive=bool(data[INACTIVE_FIELD]),
            created_by=self._actor,
            updated_by=self._actor,
        )
        self._session.add(row)
        await self._session.flush()
        return _to_record(row)

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any] | None:
        """Shallow-merge *patch* into the record's body; ``None`` if it does not exist."""
        row = await self._get_row(record_id)
        if row is None:
            logger.warning("Update skipped: %s record %s not found", self._schema_id, record_id)
            return None

        # Reassign rather than mutate so the JSON column is flagged dirty.
        data = {**(row.data or {}), **omit(patch, SYSTEM_FIELDS)}
        row.data = data
        row.inactive = bool(data.get(INACTIVE_FIELD, False))
        row.updated_at = datetime.now(UTC)
        if self._actor is not None:
            row.updated_by = self._actor
        await self._session.flush()
        return _to_record(row)


def entity_repository_scope(
    engine: AsyncEngine,
    tenant_id: str = "default",
    actor: str | None = None,
) -> RepositoryScope:
    """Build a scope that opens one session (and transaction) per collection."""

    @asynccontextmanager
    async def _scope(schema_id: str) -> AsyncGenerator[EntityRepository, None]:
        async with get_session(engine) as session:
            yield EntityRepository(session, schema_id, tenant_id=tenant_id, actor=actor)

    return _scope
