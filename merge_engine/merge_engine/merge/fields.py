"""System field handling for merged records.

System fields are owned by the repository (identity, timestamps, audit
actors).  They are never copied from a source record into a write payload,
and together with ``inactive`` they are ignored when deciding whether a
record changed.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

INACTIVE_FIELD = "inactive"

SYSTEM_FIELDS: frozenset[str] = frozenset({"id", "createdAt", "updatedAt", "createdBy", "updatedBy"})

COMPARISON_EXCLUDED_FIELDS: frozenset[str] = SYSTEM_FIELDS | {INACTIVE_FIELD}


def omit(record: Mapping[str, Any], fields: Iterable[str]) -> dict[str, Any]:
    """Return a shallow copy of *record* without *fields*."""
    excluded = fields if isinstance(fields, (set, frozenset)) else frozenset(fields)
    return {name: value for name, value in record.items() if name not in excluded}


def build_write_payload(source: Mapping[str, Any]) -> dict[str, Any]:
    """Build the create/update payload for *source*: system fields stripped, marked active."""
    payload = omit(source, SYSTEM_FIELDS)
    payload[INACTIVE_FIELD] = False
    return payload
