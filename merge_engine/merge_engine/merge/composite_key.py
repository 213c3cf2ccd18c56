"""Composite natural-key derivation.

A record's key is the trimmed textual form of each key-column value, joined
with :data:`KEY_SEPARATOR` in column order.  Key columns are expected to hold
scalars; the text of a dict or list value is not a stable key.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from merge_engine.models.merge import CompositeKeyResult, MergeColumnConfig, SkipReason

KEY_SEPARATOR = "|"


def stringify_scalar(value: Any) -> str:
    """Render *value* the way it is written in JSON text.

    Booleans become ``true``/``false`` and integral floats lose their
    fractional part, so ``1.0`` and ``1`` produce the same key.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def resolve_composite_key(record: Any, config: MergeColumnConfig) -> CompositeKeyResult:
    """Derive the composite key of *record*, or the reason it has none."""
    if not isinstance(record, Mapping):
        return CompositeKeyResult(skip_reason=SkipReason.NOT_A_MAPPING)

    parts: list[str] = []
    for column in config.key_columns:
        value = record.get(column)
        if value is None:
            return CompositeKeyResult(skip_reason=SkipReason.MISSING_VALUE, column=column)
        if value == "":
            return CompositeKeyResult(skip_reason=SkipReason.EMPTY_VALUE, column=column)
        parts.append(stringify_scalar(value).strip())

    key = KEY_SEPARATOR.join(parts)
    if not key:
        # Only reachable with a single whitespace-only key value.
        return CompositeKeyResult(skip_reason=SkipReason.EMPTY_VALUE, column=config.key_columns[-1])
    return CompositeKeyResult(key=key)


def build_composite_key(record: Any, config: MergeColumnConfig) -> str | None:
    """Return the composite key of *record*, or ``None`` when it has none."""
    return resolve_composite_key(record, config).key
