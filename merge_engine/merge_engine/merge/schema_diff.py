"""Diff engine partitioning a source snapshot against persisted records.

Source and target records are indexed by composite key, then classified:

* key only in the source           -> insert
* key in both, comparator: changed -> update
* key only in the target           -> deactivate

Two policies are deliberate:

* Duplicate keys inside the source resolve to the **last** record carrying
  that key; earlier ones are silently superseded.
* Target records without a valid key are left out of the index and are
  never updated or deactivated, so legacy rows survive a merge untouched.

Bucket order follows the order in which keys were first seen.  Nothing
downstream depends on it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from merge_engine.merge.comparator import has_changed
from merge_engine.merge.composite_key import build_composite_key, resolve_composite_key
from merge_engine.models.merge import MergeColumnConfig, Record, SchemaDiff, UpdatePair

logger = logging.getLogger(__name__)


def index_by_key(
    records: Iterable[Any] | None,
    config: MergeColumnConfig,
) -> tuple[dict[str, Record], int]:
    """Index *records* by composite key, last one winning.

    Returns the index and the number of records that had no key.
    """
    by_key: dict[str, Record] = {}
    skipped = 0
    for record in records or ():
        result = resolve_composite_key(record, config)
        if result.key is None:
            skipped += 1
            logger.debug(
                "Skipping record without composite key (%s, column=%s)",
                result.skip_reason.value if result.skip_reason else "unknown",
                result.column,
            )
            continue
        by_key[result.key] = record
    return by_key, skipped


def compute_schema_diff(
    source_records: Iterable[Any] | None,
    target_records: Iterable[Any] | None,
    config: MergeColumnConfig,
) -> SchemaDiff:
    """Compute the operations that align *target_records* with *source_records*.

    Parameters
    ----------
    source_records:
        The incoming snapshot.  Records without a composite key are counted
        in ``skipped_invalid_key`` and otherwise ignored.
    target_records:
        The persisted records of the same collection, as returned by the
        repository.  Records without a composite key are ignored.
    config:
        Key columns and optional hash column.

    Returns
    -------
    SchemaDiff
        Buckets holding the caller's own record objects.
    """
    source_by_key, skipped_invalid_key = index_by_key(source_records, config)

    target_by_key: dict[str, Record] = {}
    for record in target_records or ():
        key = build_composite_key(record, config)
        if key is None:
            continue
        target_by_key[key] = record

    diff = SchemaDiff(skipped_invalid_key=skipped_invalid_key)

    for key, source in source_by_key.items():
        existing = target_by_key.get(key)
        if existing is None:
            diff.to_insert.append(source)
        elif has_changed(existing, source, config):
            diff.to_update.append(UpdatePair(existing=existing, source=source))

    for key, existing in target_by_key.items():
        if key not in source_by_key:
            diff.to_deactivate.append(existing)

    logger.debug(
        "Diff computed: insert=%d update=%d deactivate=%d skipped_invalid_key=%d",
        len(diff.to_insert),
        len(diff.to_update),
        len(diff.to_deactivate),
        diff.skipped_invalid_key,
    )
    return diff
