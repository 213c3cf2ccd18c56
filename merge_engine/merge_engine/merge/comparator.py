"""Change detection between a source record and its persisted counterpart."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from merge_engine.merge.composite_key import stringify_scalar
from merge_engine.merge.fields import COMPARISON_EXCLUDED_FIELDS
from merge_engine.models.merge import MergeColumnConfig

_MISSING = object()


def normalize_hash(value: Any) -> str:
    """Return the comparable text of a hash-column value (``None`` -> ``""``)."""
    if value is None:
        return ""
    return stringify_scalar(value)


def _normalize_numbers(value: Any) -> Any:
    """Map integral floats to ints, recursively, so ``1.0`` and ``1`` compare equal."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, Mapping):
        return {name: _normalize_numbers(item) for name, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize_numbers(item) for item in value]
    return value


def _canonical(value: Any) -> str | None:
    if value is _MISSING:
        return None
    return json.dumps(_normalize_numbers(value), sort_keys=True, separators=(",", ":"), default=str)


def values_equal(left: Any, right: Any) -> bool:
    """Structural equality on the JSON form of two field values.

    ``_MISSING`` (field absent) only equals ``_MISSING``; in particular an
    absent field is not equal to an explicit ``None``.  Integral floats equal
    their int counterparts (``1.0 == 1``), as in JSON text.
    """
    return _canonical(left) == _canonical(right)


def changed_field(existing: Mapping[str, Any], source: Mapping[str, Any]) -> str | None:
    """Return the first non-system field of *source* that differs on *existing*."""
    for name, source_value in source.items():
        if name in COMPARISON_EXCLUDED_FIELDS:
            continue
        if not values_equal(source_value, existing.get(name, _MISSING)):
            return name
    return None


def has_changed(
    existing: Mapping[str, Any],
    source: Mapping[str, Any],
    config: MergeColumnConfig,
) -> bool:
    """Decide whether *existing* must be updated from *source*.

    With a hash column configured only that column is compared.  Otherwise
    every field carried by *source*, minus system fields and ``inactive``, is
    compared against *existing*; fields present only on *existing* are
    ignored.
    """
    if config.hash_column:
        return normalize_hash(source.get(config.hash_column)) != normalize_hash(
            existing.get(config.hash_column)
        )
    return changed_field(existing, source) is not None
