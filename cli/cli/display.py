"""Rich output formatting for the entity-merge CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from merge_engine.models.merge import MergeColumnConfig, MergeResult, SchemaDiff

_SYSTEM_COLUMNS = ("id", "inactive", "createdAt", "updatedAt")


def _count(value: int, colour: str) -> str:
    """Colour non-zero counters; leave zeros dim."""
    if value == 0:
        return "[dim]0[/dim]"
    return f"[{colour}]{value}[/{colour}]"


def _config_panel(console: Console, config: MergeColumnConfig, title: str) -> None:
    lines = [
        f"[bold]Key columns:[/bold] {', '.join(config.key_columns)}",
        f"[bold]Hash column:[/bold] {config.hash_column or '(field comparison)'}",
    ]
    console.print(Panel("\n".join(lines), title=title, border_style="blue"))


# ---------------------------------------------------------------------------
# Merge summaries
# ---------------------------------------------------------------------------


def display_merge_result(console: Console, result: MergeResult, config: MergeColumnConfig) -> None:
    """Render per-collection merge counts with a totals row.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    result:
        The merge outcome to display.
    config:
        Key specification the merge ran with.
    """
    _config_panel(console, config, "Merge")

    if not result.summaries:
        console.print("[dim]No collections merged.[/dim]")
        return

    table = Table(title="Merge Summary", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Schema", style="bold")
    table.add_column("Inserted", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Deactivated", justify="right")
    table.add_column("Skipped (no key)", justify="right")

    for summary in result.summaries:
        table.add_row(
            escape(summary.schema_id),
            _count(summary.inserted, "green"),
            _count(summary.updated, "yellow"),
            _count(summary.deactivated, "red"),
            _count(summary.skipped_invalid_key, "magenta"),
        )

    total = result.total
    table.add_section()
    table.add_row(
        "[bold]Total[/bold]",
        str(total.inserted),
        str(total.updated),
        str(total.deactivated),
        str(total.skipped_invalid_key),
    )
    console.print(table)


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------


def display_schema_diffs(
    console: Console,
    diffs: dict[str, SchemaDiff],
    config: MergeColumnConfig,
) -> None:
    """Render the planned operations of a dry run."""
    _config_panel(console, config, "Dry Run")

    table = Table(title="Planned Operations", show_lines=False, pad_edge=True, expand=False)
    table.add_column("Schema", style="bold")
    table.add_column("To Insert", justify="right")
    table.add_column("To Update", justify="right")
    table.add_column("To Deactivate", justify="right")
    table.add_column("Skipped (no key)", justify="right")

    for schema_id, diff in diffs.items():
        table.add_row(
            escape(schema_id),
            _count(len(diff.to_insert), "green"),
            _count(len(diff.to_update), "yellow"),
            _count(len(diff.to_deactivate), "red"),
            _count(diff.skipped_invalid_key, "magenta"),
        )

    console.print(table)
    console.print("[dim]Dry run: no changes were written.[/dim]")


def diffs_to_json(diffs: dict[str, SchemaDiff]) -> dict[str, Any]:
    """Machine-readable form of a dry run."""
    return {
        "diffs": [
            {
                "schema_id": schema_id,
                "to_insert": diff.to_insert,
                "to_update": [{"existing": pair.existing, "source": pair.source} for pair in diff.to_update],
                "to_deactivate": diff.to_deactivate,
                "skipped_invalid_key": diff.skipped_invalid_key,
            }
            for schema_id, diff in diffs.items()
        ]
    }


# ---------------------------------------------------------------------------
# Stored entities
# ---------------------------------------------------------------------------


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, (dict, list)):
        return escape(json.dumps(value, sort_keys=True, default=str))
    return escape(str(value))


def display_entities(console: Console, schema_id: str, records: list[dict[str, Any]]) -> None:
    """Render stored records of one collection as a table."""
    if not records:
        console.print(f"[yellow]No records stored for '{escape(schema_id)}'.[/yellow]")
        return

    field_names: list[str] = []
    for record in records:
        for name in record:
            if name not in field_names and name not in _SYSTEM_COLUMNS:
                field_names.append(name)

    table = Table(title=f"{escape(schema_id)} ({len(records)} records)", show_lines=False, pad_edge=True, expand=False)
    table.add_column("ID", style="dim")
    table.add_column("Status")
    for name in field_names:
        table.add_column(escape(name))

    for record in records:
        status = "[dim red]inactive[/dim red]" if record.get("inactive") else "[green]active[/green]"
        table.add_row(
            _cell(record.get("id")),
            status,
            *[_cell(record.get(name)) for name in field_names],
        )

    console.print(table)
