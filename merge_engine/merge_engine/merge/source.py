"""Group an incoming merge payload into per-collection source records.

Two payload shapes are accepted:

* a graph document ``{"nodes": [...], ...}`` whose nodes carry the record in
  ``payload`` and the collection in ``schemaId`` (on the node or inside the
  payload);
* a flat list of records, each carrying its own ``schemaId``.

Collections keep the order in which they first appear.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from merge_engine.errors import InvalidMergeSourceError

SCHEMA_ID_FIELD = "schemaId"


def parse_included_schema_ids(raw: str | None) -> list[str] | None:
    """Split a comma-separated schema-id filter; ``None`` means no filter."""
    if not raw:
        return None
    ids = [part.strip() for part in raw.split(",")]
    ids = [schema_id for schema_id in ids if schema_id]
    return ids or None


def _schema_id_of(value: Any) -> str | None:
    if isinstance(value, dict):
        schema_id = value.get(SCHEMA_ID_FIELD)
        if isinstance(schema_id, str) and schema_id:
            return schema_id
    return None


def _is_included(schema_id: str, included: list[str] | None) -> bool:
    return not included or schema_id in included


def group_nodes_by_schema(
    nodes: Iterable[Any] | None,
    included: list[str] | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Group graph nodes by schema id, using each node's ``payload`` as the record."""
    grouped: dict[str, list[dict[str, Any]]] = {}
    if not isinstance(nodes, list):
        return grouped

    for node in nodes:
        if not isinstance(node, dict):
            continue
        payload = node.get("payload")
        record = payload if isinstance(payload, dict) else node
        schema_id = _schema_id_of(node) or _schema_id_of(payload)
        if schema_id is None or not _is_included(schema_id, included):
            continue
        grouped.setdefault(schema_id, []).append(record)
    return grouped


def group_entities_by_schema(
    entities: Iterable[Any] | None,
    included: list[str] | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Group flat entity records by their own ``schemaId``."""
    grouped: dict[str, list[dict[str, Any]]] = {}
    if not isinstance(entities, list):
        return grouped

    for entity in entities:
        schema_id = _schema_id_of(entity)
        if schema_id is None or not _is_included(schema_id, included):
            continue
        grouped.setdefault(schema_id, []).append(entity)
    return grouped


def build_source_by_schema(
    body: Any,
    included: list[str] | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Turn a decoded payload into ``{schema_id: [record, ...]}``.

    Raises
    ------
    InvalidMergeSourceError
        If *body* is neither a graph document nor a list, or if no record
        survives grouping and filtering.
    """
    if isinstance(body, dict) and isinstance(body.get("nodes"), list):
        grouped = group_nodes_by_schema(body["nodes"], included)
    elif isinstance(body, list):
        grouped = group_entities_by_schema(body, included)
    else:
        raise InvalidMergeSourceError(
            "Invalid merge source. Expected { graphId, nodes, edges } or an array of entities with schemaId."
        )

    if not grouped:
        raise InvalidMergeSourceError(
            "No valid entities found to merge. Ensure that nodes or entities include a schemaId "
            "and match the included schema ids (if provided)."
        )
    return grouped
