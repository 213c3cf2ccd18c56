"""Apply orchestrator: drives a schema diff against a repository.

Within one collection the buckets run in a fixed order -- inserts, then
updates, then deactivations.  By default each repository call is awaited
before the next is issued.  With ``concurrency > 1`` the calls of a single
bucket are dispatched in parallel, bounded by a semaphore; this is only done
for repositories that declare ``supports_concurrent_writes``.  Buckets never
overlap and collections are always processed one after another.

Failure policy is fail-fast: the first repository error cancels the rest of
the bucket and propagates.  Collections already merged by
:func:`merge_entities` keep their changes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from merge_engine.merge.fields import INACTIVE_FIELD, build_write_payload
from merge_engine.merge.schema_diff import compute_schema_diff
from merge_engine.models.merge import MergeColumnConfig, MergeResult, SchemaDiff, SchemaMergeSummary
from merge_engine.state.base import RecordRepository, RepositoryScope

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


def _effective_concurrency(repository: RecordRepository, concurrency: int) -> int:
    if concurrency <= 1:
        return 1
    if not getattr(repository, "supports_concurrent_writes", False):
        logger.debug(
            "%s does not support concurrent writes; applying sequentially",
            type(repository).__name__,
        )
        return 1
    return concurrency


async def _run_operations(operations: Sequence[Operation], concurrency: int) -> None:
    """Await *operations* in order, or at most *concurrency* at a time."""
    if concurrency <= 1:
        for operation in operations:
            await operation()
        return

    semaphore = asyncio.Semaphore(concurrency)

    async def _guarded(operation: Operation) -> None:
        async with semaphore:
            await operation()

    tasks = [asyncio.ensure_future(_guarded(operation)) for operation in operations]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def plan_schema_merge(
    source_records: Sequence[Any] | None,
    repository: RecordRepository,
    config: MergeColumnConfig,
) -> SchemaDiff:
    """Fetch the collection and diff it against *source_records* without writing."""
    target_records = await repository.find_all()
    return compute_schema_diff(source_records, target_records, config)


async def apply_schema_merge(
    schema_id: str,
    source_records: Sequence[Any] | None,
    repository: RecordRepository,
    config: MergeColumnConfig,
    *,
    concurrency: int = 1,
) -> SchemaMergeSummary:
    """Reconcile one collection with *source_records*.

    Parameters
    ----------
    schema_id:
        Identifier reported in the summary.
    source_records:
        The incoming snapshot of the collection.
    repository:
        Repository bound to the collection.
    config:
        Key columns and optional hash column.
    concurrency:
        Maximum number of in-flight repository writes within one bucket.

    Returns
    -------
    SchemaMergeSummary
        Counts of the writes that were issued.

    Raises
    ------
    Exception
        Whatever the repository raises; remaining work is abandoned.
    """
    diff = await plan_schema_merge(source_records, repository, config)
    limit = _effective_concurrency(repository, concurrency)

    counts = {"inserted": 0, "updated": 0, "deactivated": 0}

    def _insert(source: dict[str, Any]) -> Operation:
        async def _op() -> None:
            await repository.create(build_write_payload(source))
            counts["inserted"] += 1

        return _op

    def _update(record_id: str, patch: dict[str, Any], counter: str) -> Operation:
        async def _op() -> None:
            await repository.update(record_id, patch)
            counts[counter] += 1

        return _op

    inserts = [_insert(source) for source in diff.to_insert]

    updates: list[Operation] = []
    for pair in diff.to_update:
        existing_id = pair.existing.get("id")
        if not existing_id:
            logger.debug("Skipping update for %s record without id", schema_id)
            continue
        updates.append(_update(str(existing_id), build_write_payload(pair.source), "updated"))

    deactivations: list[Operation] = []
    for existing in diff.to_deactivate:
        existing_id = existing.get("id")
        if not existing_id:
            logger.debug("Skipping deactivation for %s record without id", schema_id)
            continue
        deactivations.append(_update(str(existing_id), {INACTIVE_FIELD: True}, "deactivated"))

    await _run_operations(inserts, limit)
    await _run_operations(updates, limit)
    await _run_operations(deactivations, limit)

    summary = SchemaMergeSummary(
        schema_id=schema_id,
        skipped_invalid_key=diff.skipped_invalid_key,
        **counts,
    )
    logger.info(
        "Merged %s: inserted=%d updated=%d deactivated=%d skipped_invalid_key=%d",
        schema_id,
        summary.inserted,
        summary.updated,
        summary.deactivated,
        summary.skipped_invalid_key,
        extra={"merge": summary.model_dump()},
    )
    return summary


async def merge_entities(
    source_by_schema: Mapping[str, Sequence[Any] | None],
    config: MergeColumnConfig,
    repository_scope: RepositoryScope,
    *,
    concurrency: int = 1,
) -> MergeResult:
    """Merge every collection of *source_by_schema*, in mapping order.

    Each collection is opened through *repository_scope* and merged
    independently; there is no transaction spanning collections.  The first
    failure propagates and the remaining collections are not processed.
    """
    summaries: list[SchemaMergeSummary] = []
    for schema_id, source_records in source_by_schema.items():
        records = source_records if isinstance(source_records, (list, tuple)) else []
        async with repository_scope(schema_id) as repository:
            summary = await apply_schema_merge(
                schema_id,
                records,
                repository,
                config,
                concurrency=concurrency,
            )
        summaries.append(summary)
    return MergeResult(summaries=summaries)


async def plan_entities(
    source_by_schema: Mapping[str, Sequence[Any] | None],
    config: MergeColumnConfig,
    repository_scope: RepositoryScope,
) -> dict[str, SchemaDiff]:
    """Dry-run counterpart of :func:`merge_entities`: diffs only, no writes."""
    diffs: dict[str, SchemaDiff] = {}
    for schema_id, source_records in source_by_schema.items():
        records = source_records if isinstance(source_records, (list, tuple)) else []
        async with repository_scope(schema_id) as repository:
            diffs[schema_id] = await plan_schema_merge(records, repository, config)
    return diffs
