"""Domain models for entity reconciliation.

``MergeColumnConfig`` and the reporting models are pydantic models so they
validate on construction and serialise cleanly.  The per-run working
structures (``CompositeKeyResult``, ``UpdatePair``, ``SchemaDiff``) are plain
dataclasses: they hold references to the caller's record dicts and must not
copy them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

Record = dict[str, Any]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MergeColumnConfig(BaseModel):
    """Composite natural key and optional change-fingerprint column."""

    model_config = ConfigDict(frozen=True)

    key_columns: list[str] = Field(
        ...,
        min_length=1,
        description="Ordered field names whose values form the composite key.",
    )
    hash_column: str | None = Field(
        default=None,
        description="Field compared directly to detect changes; None falls back to field comparison.",
    )

    @field_validator("key_columns")
    @classmethod
    def _validate_key_columns(cls, value: list[str]) -> list[str]:
        cleaned = [column.strip() for column in value]
        if any(not column for column in cleaned):
            raise ValueError("key_columns entries must be non-empty strings")
        return cleaned

    @field_validator("hash_column")
    @classmethod
    def _validate_hash_column(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None


# ---------------------------------------------------------------------------
# Composite keys
# ---------------------------------------------------------------------------


class SkipReason(str, Enum):
    """Why a record could not contribute a composite key."""

    NOT_A_MAPPING = "NOT_A_MAPPING"
    MISSING_VALUE = "MISSING_VALUE"
    EMPTY_VALUE = "EMPTY_VALUE"


@dataclass(frozen=True, slots=True)
class CompositeKeyResult:
    """Outcome of deriving a composite key: either ``key`` or ``skip_reason``."""

    key: str | None = None
    skip_reason: SkipReason | None = None
    column: str | None = None

    @property
    def ok(self) -> bool:
        return self.key is not None


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class UpdatePair:
    """A target record and the source record that supersedes it."""

    existing: Record
    source: Record


@dataclass(slots=True)
class SchemaDiff:
    """Insert/update/deactivate buckets for one collection."""

    to_insert: list[Record] = field(default_factory=list)
    to_update: list[UpdatePair] = field(default_factory=list)
    to_deactivate: list[Record] = field(default_factory=list)
    skipped_invalid_key: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.to_insert or self.to_update or self.to_deactivate)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


class SchemaMergeSummary(BaseModel):
    """Counts of the operations applied to one collection."""

    model_config = ConfigDict(frozen=True)

    schema_id: str = Field(..., description="Collection the counts refer to.")
    inserted: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    deactivated: int = Field(default=0, ge=0)
    skipped_invalid_key: int = Field(
        default=0,
        ge=0,
        description="Source records ignored because they lack a composite key.",
    )


class MergeTotals(BaseModel):
    """Counters summed over every collection of a run."""

    inserted: int = 0
    updated: int = 0
    deactivated: int = 0
    skipped_invalid_key: int = 0


class MergeResult(BaseModel):
    """Per-collection summaries of a multi-collection merge, in run order."""

    summaries: list[SchemaMergeSummary] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> MergeTotals:
        totals = MergeTotals()
        for summary in self.summaries:
            totals.inserted += summary.inserted
            totals.updated += summary.updated
            totals.deactivated += summary.deactivated
            totals.skipped_invalid_key += summary.skipped_invalid_key
        return totals
