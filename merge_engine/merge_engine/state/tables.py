"""SQLAlchemy 2.0 ORM table definitions for the entity store.

Records are schema-agnostic, so each row keeps the record body as JSON and
lifts out only what the store itself manages: identity, the ``inactive``
flag, audit actors and timestamps.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, PrimaryKeyConstraint, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON (stored as TEXT) on SQLite.
_JsonType = JSONB().with_variant(JSON(), "sqlite")


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all entity-store tables."""


class EntityTable(Base):
    """One record of one collection."""

    __tablename__ = "entities"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    schema_id: Mapped[str] = mapped_column(String(256), nullable=False)
    id: Mapped[str] = mapped_column(String(64), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(_JsonType, nullable=False, default=dict)
    inactive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        PrimaryKeyConstraint("tenant_id", "schema_id", "id"),
        Index("ix_entities_tenant_schema_inactive", "tenant_id", "schema_id", "inactive"),
    )
