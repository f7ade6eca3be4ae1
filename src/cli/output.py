"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import dataclasses
import json

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.cli.protocol import (
    AssignOutcome,
    ImportSummary,
    PoolCounts,
    ReportOutcome,
    TrackingPage,
    UploadLogEntry,
)
from src.errors import TrackPoolError, format_error_summary

console = Console()

# Accessibility color map
ACCESS_COLORS = {
    "Yes": "green",
    "No": "dim",
}

MAX_REJECTED_SHOWN = 20


def _render(renderable) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def format_weight(grams: float | None) -> str:
    """Format a weight in grams.

    Args:
        grams: Weight in grams, or None.

    Returns:
        Formatted string like "750g" or "-" for None.
    """
    if grams is None:
        return "-"
    return f"{grams:g}g"


def format_pool_summary(pools: list[PoolCounts], as_json: bool = False) -> str:
    """Format pool counts as a Rich table or JSON.

    Args:
        pools: Per-pool counts.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps([dataclasses.asdict(p) for p in pools], indent=2)

    table = Table(title="Tracking Pools")
    table.add_column("Pool", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Available", justify="right", style="green")
    table.add_column("Bound", justify="right", style="cyan")
    table.add_column("Withdrawn", justify="right", style="dim")
    for p in pools:
        available = str(p.available) if p.available else "[red]0[/red]"
        table.add_row(p.tracking_class, str(p.total), available, str(p.bound), str(p.withdrawn))
    return _render(table)


def format_entries_table(page: TrackingPage, title: str, as_json: bool = False) -> str:
    """Format one page of pool entries as a Rich table or JSON.

    Args:
        page: Page of entries.
        title: Table title.
        as_json: If True, return JSON string instead of Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(dataclasses.asdict(page), indent=2)

    if not page.rows:
        return "No tracking numbers found."

    end = page.offset + len(page.rows)
    table = Table(
        title=f"{title} ({page.offset + 1}-{end} of {page.total})",
        show_lines=False,
    )
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Tracking", style="cyan", no_wrap=True)
    table.add_column("Order")
    table.add_column("Status")
    table.add_column("Assigned")
    table.add_column("Uploaded By")
    table.add_column("Accessible")

    for row in page.rows:
        color = ACCESS_COLORS.get(row.is_accessable, "white")
        table.add_row(
            str(row.id),
            row.tracking_id,
            row.order_id or "-",
            row.current_status or "-",
            row.assigned_at[:19] if row.assigned_at else "-",
            row.upload_userid or "-",
            f"[{color}]{row.is_accessable}[/{color}]",
        )
    return _render(table)


def format_import_summary(summary: ImportSummary, as_json: bool = False) -> str:
    """Format an upload result as a Rich panel or JSON.

    Rejected rows are grouped by error code, as in the upload log.
    """
    if as_json:
        return json.dumps(dataclasses.asdict(summary), indent=2)

    inserted = summary.eg_inserted + summary.cg_inserted
    skipped = summary.duplicates + summary.invalid
    lines = [
        f"[bold]File:[/bold]        {summary.file_name}",
        f"[bold]Batch:[/bold]       {summary.batch_id}",
        f"[bold]Lines:[/bold]       {summary.total_lines}",
        "",
        f"[bold]Added EG:[/bold]    [green]{summary.eg_inserted}[/green]",
        f"[bold]Added CG:[/bold]    [green]{summary.cg_inserted}[/green]",
        f"[bold]Total added:[/bold] [green]{inserted}[/green]",
        f"[bold]Duplicates:[/bold]  [yellow]{summary.duplicates}[/yellow]",
        f"[bold]Invalid:[/bold]     [red]{summary.invalid}[/red]",
        f"[bold]Skipped:[/bold]     {skipped}",
    ]
    if summary.log_file:
        lines.append("")
        lines.append(f"[bold]Log:[/bold]         {summary.log_file}")

    output = _render(Panel("\n".join(lines), title="Upload Result", border_style="cyan"))

    errors = [
        TrackPoolError.from_code(row.code, lines=[row.line], value=row.value or None)
        for row in summary.rejected[:MAX_REJECTED_SHOWN]
        if row.code
    ]
    if errors:
        output += "\n" + format_error_summary(errors)
        hidden = len(summary.rejected) - MAX_REJECTED_SHOWN
        if hidden > 0:
            output += f"\n... and {hidden} more rejected rows (see the upload log)"
    return output


def format_assign_outcome(outcome: AssignOutcome, as_json: bool = False) -> str:
    """Format an assignment or status event outcome."""
    if as_json:
        return json.dumps(dataclasses.asdict(outcome), indent=2)

    lines = []
    if outcome.assigned:
        lines.append(
            f"[green]Order #{outcome.order_id} assigned {outcome.tracking_class} "
            f"tracking number {outcome.tracking_id}[/green] "
            f"(weight {format_weight(outcome.weight_grams)})"
        )
    elif outcome.exhausted_class:
        lines.append(f"[red]Order #{outcome.order_id}: {outcome.error}[/red]")
    else:
        lines.append(f"[yellow]Order #{outcome.order_id}: no tracking number assigned.[/yellow]")
    if outcome.status_synced:
        lines.append(f"Tracking status updated for order #{outcome.order_id}.")
    return "\n".join(lines)


def format_upload_logs(logs: list[UploadLogEntry], as_json: bool = False) -> str:
    if as_json:
        return json.dumps([dataclasses.asdict(entry) for entry in logs], indent=2)

    if not logs:
        return "No upload logs found."

    table = Table(title="Upload Logs")
    table.add_column("Name", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for entry in logs:
        table.add_row(entry.name, f"{entry.size:,} B", entry.modified_at[:19])
    return _render(table)


def format_report_outcome(outcome: ReportOutcome, as_json: bool = False) -> str:
    if as_json:
        return json.dumps(dataclasses.asdict(outcome), indent=2)

    lines = [
        f"[bold]Report:[/bold]  {outcome.report_id}",
        f"[bold]Rows:[/bold]    [green]{outcome.rows_written}[/green]",
        f"[bold]Skipped:[/bold] {outcome.skipped} (no matching order)",
    ]
    if outcome.saved_to:
        lines.append(f"[bold]Saved:[/bold]   {outcome.saved_to}")
    return _render(Panel("\n".join(lines), title="GST Report", border_style="green"))
