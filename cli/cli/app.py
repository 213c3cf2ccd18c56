"""entity-merge CLI application -- Typer-based operator interface.

Provides commands to reconcile a JSON source snapshot into the entity store
and to inspect the stored collections.  Human-readable output goes to
*stderr* via Rich; machine-readable output (``--json``) goes to *stdout* so
that pipelines can compose cleanly.

Exit codes: ``0`` success, ``2`` invalid input (key specification or source
payload), ``3`` any other failure.
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from rich.console import Console
from rich.markup import escape

from cli.display import (
    diffs_to_json,
    display_entities,
    display_merge_result,
    display_schema_diffs,
)

if TYPE_CHECKING:
    from merge_engine.config import Settings
    from merge_engine.models.merge import MergeColumnConfig, MergeResult, SchemaDiff
    from sqlalchemy.ext.asyncio import AsyncEngine

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="entity-merge",
    help="entity-merge - key-driven reconciliation of entity snapshots",
    no_args_is_help=True,
)
console = Console(stderr=True)

EXIT_CLIENT_ERROR = 2
EXIT_FAILURE = 3

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_metrics_file: Path | None = None
_log_level: str | None = None
_database_url: str | None = None
_tenant_id: str | None = None


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    metrics_file: Path | None = typer.Option(
        None,
        "--metrics-file",
        help="Append metrics events to this file (JSONL).",
        envvar="MERGE_METRICS_FILE",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Log level for engine diagnostics on stderr (default: WARNING).",
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Entity store URL (sqlite+aiosqlite:///path or postgresql+asyncpg://...).",
    ),
    tenant: str | None = typer.Option(
        None,
        "--tenant",
        help="Tenant scope for stored records.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _metrics_file, _log_level, _database_url, _tenant_id  # noqa: PLW0603
    _json_output = json_mode
    _metrics_file = metrics_file
    _log_level = log_level
    _database_url = database_url
    _tenant_id = tenant


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings() -> Settings:
    """Load settings, applying global command-line overrides, and set up logging."""
    from merge_engine.config import load_settings
    from merge_engine.log_config import configure_logging

    overrides: dict[str, Any] = {}
    if _database_url is not None:
        overrides["database_url"] = _database_url
    if _tenant_id is not None:
        overrides["tenant_id"] = _tenant_id
    if _log_level is not None:
        overrides["log_level"] = _log_level
    if _metrics_file is not None:
        overrides["metrics_file"] = _metrics_file

    settings = load_settings(**overrides)
    configure_logging(settings.log_level, structured=settings.structured_logging)
    return settings


def _emit_metrics(settings: Settings | None, event: str, data: dict[str, Any]) -> None:
    """Append a timestamped metrics event to the metrics file, if configured.

    Failures are swallowed: metrics emission must never break the command.
    """
    metrics_file = settings.metrics_file if settings is not None else _metrics_file
    if metrics_file is None:
        return
    record = {
        "event": event,
        "timestamp": datetime.now(UTC).isoformat(),
        "data": data,
    }
    try:
        with metrics_file.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, sort_keys=True, default=str) + "\n")
    except OSError:
        pass


def _load_source(path: Path) -> Any:
    """Decode the source payload file."""
    from merge_engine.errors import InvalidMergeSourceError

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise InvalidMergeSourceError(f"Source file {path} is not valid JSON: {exc}") from exc


def _write_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=False, default=str) + "\n")


async def _open_engine(settings: Settings) -> AsyncEngine:
    """Create the store engine; tables are created for local and dev stores."""
    from merge_engine.config import PlatformEnv
    from merge_engine.state.database import create_tables, get_engine

    engine = get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.is_sqlite() or settings.env == PlatformEnv.DEV:
        await create_tables(engine)
    return engine


async def _run_merge(
    settings: Settings,
    source_by_schema: dict[str, list[dict[str, Any]]],
    config: MergeColumnConfig,
    concurrency: int,
) -> MergeResult:
    from merge_engine.merge import merge_entities
    from merge_engine.state.repository import entity_repository_scope

    engine = await _open_engine(settings)
    try:
        scope = entity_repository_scope(engine, tenant_id=settings.tenant_id, actor=settings.actor)
        return await merge_entities(source_by_schema, config, scope, concurrency=concurrency)
    finally:
        await engine.dispose()


async def _run_plan(
    settings: Settings,
    source_by_schema: dict[str, list[dict[str, Any]]],
    config: MergeColumnConfig,
) -> dict[str, SchemaDiff]:
    from merge_engine.merge import plan_entities
    from merge_engine.state.repository import entity_repository_scope

    engine = await _open_engine(settings)
    try:
        scope = entity_repository_scope(engine, tenant_id=settings.tenant_id, actor=settings.actor)
        return await plan_entities(source_by_schema, config, scope)
    finally:
        await engine.dispose()


async def _list_entities(settings: Settings, schema_id: str, include_inactive: bool) -> list[dict[str, Any]]:
    from merge_engine.state.database import get_session
    from merge_engine.state.repository import EntityRepository

    engine = await _open_engine(settings)
    try:
        async with get_session(engine) as session:
            repo = EntityRepository(session, schema_id, tenant_id=settings.tenant_id)
            return await repo.find_all(include_inactive=include_inactive)
    finally:
        await engine.dispose()


def _fail(settings: Settings | None, label: str, exc: Exception) -> typer.Exit:
    from merge_engine.errors import is_client_error

    code = EXIT_CLIENT_ERROR if is_client_error(exc) else EXIT_FAILURE
    console.print(f"[red]{label}: {escape(str(exc))}[/red]")
    _emit_metrics(settings, "merge.error", {"error": str(exc), "exit_code": code})
    return typer.Exit(code=code)


# ---------------------------------------------------------------------------
# merge
# ---------------------------------------------------------------------------


@app.command()
def merge(
    source: Path = typer.Argument(
        ...,
        help="JSON file: a graph document {nodes: [...]} or an array of entities with schemaId.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    merge_columns: str | None = typer.Option(
        None,
        "--merge-columns",
        "-m",
        help='Key specification, e.g. \'[{"key":"sku"},{"hash":"contentHash"}]\'.',
        envvar="MERGE_COLUMNS",
    ),
    include: str | None = typer.Option(
        None,
        "--include",
        help="Comma-separated schema ids to merge; others in the source are ignored.",
    ),
    concurrency: int | None = typer.Option(
        None,
        "--concurrency",
        min=1,
        help="Maximum in-flight writes per operation bucket (default: MERGE_APPLY_CONCURRENCY).",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Compute the operations without writing anything.",
    ),
) -> None:
    """Reconcile the stored collections with a source snapshot."""
    from merge_engine.merge import (
        build_source_by_schema,
        parse_included_schema_ids,
        parse_merge_columns,
    )

    settings: Settings | None = None
    try:
        config = parse_merge_columns(merge_columns)
        source_by_schema = build_source_by_schema(
            _load_source(source),
            parse_included_schema_ids(include),
        )
        settings = _load_settings()

        if dry_run:
            diffs = asyncio.run(_run_plan(settings, source_by_schema, config))
            if _json_output:
                _write_json(diffs_to_json(diffs))
            else:
                display_schema_diffs(console, diffs, config)
            raise typer.Exit(code=0)

        result = asyncio.run(
            _run_merge(
                settings,
                source_by_schema,
                config,
                concurrency or settings.apply_concurrency,
            )
        )
        _emit_metrics(settings, "merge.completed", result.model_dump(mode="json"))

        if _json_output:
            _write_json(result.model_dump(mode="json"))
        else:
            display_merge_result(console, result, config)
        raise typer.Exit(code=0)

    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(settings, "Merge failed", exc) from exc


# ---------------------------------------------------------------------------
# entities
# ---------------------------------------------------------------------------


@app.command()
def entities(
    schema_id: str = typer.Argument(..., help="Collection to list."),
    include_inactive: bool = typer.Option(
        True,
        "--include-inactive/--active-only",
        help="Whether deactivated records are listed.",
    ),
) -> None:
    """List the records stored for a collection."""
    settings: Settings | None = None
    try:
        settings = _load_settings()
        records = asyncio.run(_list_entities(settings, schema_id, include_inactive))
        if _json_output:
            _write_json(records)
        else:
            display_entities(console, schema_id, records)
        raise typer.Exit(code=0)

    except typer.Exit:
        raise
    except Exception as exc:
        raise _fail(settings, "Listing failed", exc) from exc
