"""Domain models for the merge engine."""

from merge_engine.models.merge import (
    CompositeKeyResult,
    MergeColumnConfig,
    MergeResult,
    MergeTotals,
    Record,
    SchemaDiff,
    SchemaMergeSummary,
    SkipReason,
    UpdatePair,
)

__all__ = [
    "CompositeKeyResult",
    "MergeColumnConfig",
    "MergeResult",
    "MergeTotals",
    "Record",
    "SchemaDiff",
    "SchemaMergeSummary",
    "SkipReason",
    "UpdatePair",
]
