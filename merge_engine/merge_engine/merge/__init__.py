"""Key-driven reconciliation of source snapshots against persisted records."""

from merge_engine.merge.apply import (
    apply_schema_merge,
    merge_entities,
    plan_entities,
    plan_schema_merge,
)
from merge_engine.merge.comparator import has_changed
from merge_engine.merge.composite_key import build_composite_key, resolve_composite_key
from merge_engine.merge.fields import COMPARISON_EXCLUDED_FIELDS, SYSTEM_FIELDS, omit
from merge_engine.merge.key_spec import MAX_MERGE_COLUMNS_LENGTH, parse_merge_columns
from merge_engine.merge.schema_diff import compute_schema_diff
from merge_engine.merge.source import build_source_by_schema, parse_included_schema_ids

__all__ = [
    "COMPARISON_EXCLUDED_FIELDS",
    "MAX_MERGE_COLUMNS_LENGTH",
    "SYSTEM_FIELDS",
    "apply_schema_merge",
    "build_composite_key",
    "build_source_by_schema",
    "compute_schema_diff",
    "has_changed",
    "merge_entities",
    "omit",
    "parse_included_schema_ids",
    "parse_merge_columns",
    "plan_entities",
    "plan_schema_merge",
    "resolve_composite_key",
]
