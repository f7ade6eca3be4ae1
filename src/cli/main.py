"""TrackPool CLI.

Unified entry point for daemon management, pool administration,
tracking number uploads, order assignment and reports.

Usage:
    trackpool daemon start          Start the TrackPool daemon
    trackpool pool summary          Show pool counts
    trackpool import file.csv -u 7  Upload tracking numbers
    trackpool assign 1042           Assign a tracking number to an order
"""

import asyncio
import logging
from typing import Optional

import httpx
import typer
from pydantic import ValidationError as ConfigValidationError
from rich.console import Console

from src.cli.config import TrackPoolConfig, get_config, load_config
from src.cli.daemon import DEFAULT_PID_FILE, configure_logging
from src.cli.factory import daemon_base_url, get_client
from src.cli.output import (
    format_assign_outcome,
    format_entries_table,
    format_import_summary,
    format_pool_summary,
    format_report_outcome,
    format_upload_logs,
)
from src.cli.protocol import TrackPoolClientError

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="trackpool",
    help="India Post tracking number pools and order assignment",
    no_args_is_help=True,
)
daemon_app = typer.Typer(help="Manage the TrackPool daemon")
config_app = typer.Typer(help="Configuration management")
pool_app = typer.Typer(help="Inspect and administer the EG/CG pools")
logs_app = typer.Typer(help="Browse upload logs")
report_app = typer.Typer(help="Generate reports")

app.add_typer(daemon_app, name="daemon")
app.add_typer(config_app, name="config")
app.add_typer(pool_app, name="pool")
app.add_typer(logs_app, name="logs")
app.add_typer(report_app, name="report")

console = Console()

# --- Global state ---
_standalone: bool = False
_config_path: str | None = None


@app.callback()
def main(
    standalone: bool = typer.Option(
        False, "--standalone", help="Work on the local database without a daemon"
    ),
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to trackpool.yaml config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """TrackPool CLI."""
    global _standalone, _config_path
    _standalone = standalone
    _config_path = config
    if verbose:
        configure_logging("debug")


def _load() -> TrackPoolConfig:
    """Resolved config, exiting with a message when it is unusable."""
    try:
        return get_config(_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except ConfigValidationError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


def _run(action) -> None:
    """Run an async action against the selected backend.

    Args:
        action: Coroutine function taking the entered client.
    """
    cfg = _load()
    client = get_client(standalone=_standalone, config=cfg)

    async def _go():
        async with client:
            await action(client)

    try:
        asyncio.run(_go())
    except TrackPoolClientError as e:
        prefix = f"{e.error_code}: " if e.error_code else ""
        console.print(f"[red]Error:[/red] {prefix}{e.message}")
        raise typer.Exit(1)
    except httpx.TransportError as e:
        _log.debug("Daemon request failed: %s", e)
        console.print(
            f"[red]Cannot reach the daemon at {daemon_base_url(cfg)}.[/red] "
            "Start it with 'trackpool daemon start' or use --standalone."
        )
        raise typer.Exit(1)


# --- Version ---


@app.command()
def version():
    """Show TrackPool version."""
    from importlib.metadata import PackageNotFoundError, version as pkg_version

    try:
        v = pkg_version("trackpool")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]TrackPool[/bold] v{v}")


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration."""
    cfg = _load()
    if load_config(config_path=_config_path) is None:
        console.print("[yellow]No config file found; showing defaults.[/yellow]")

    console.print("[bold]Daemon:[/bold]")
    console.print(f"  host: {cfg.daemon.host}")
    console.print(f"  port: {cfg.daemon.port}")
    console.print(f"  workers: {cfg.daemon.workers}")
    console.print(f"  log_level: {cfg.daemon.log_level}")
    console.print(f"  log_format: {cfg.daemon.log_format}")

    console.print("\n[bold]Assignment:[/bold]")
    console.print(f"  ready_status: {cfg.assignment.ready_status}")
    console.print(f"  weight_threshold_grams: {cfg.assignment.weight_threshold_grams:g}")
    console.print(f"  weight_policy: {cfg.assignment.weight_policy.value}")
    console.print(f"  tracking_url_template: {cfg.assignment.tracking_url_template}")

    console.print("\n[bold]Storage:[/bold]")
    console.print(f"  log_dir: {cfg.storage.resolved_log_dir()}")
    console.print(f"  report_dir: {cfg.storage.resolved_report_dir()}")
    console.print(f"  max_upload_bytes: {cfg.storage.max_upload_bytes}")


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate a config file without starting the daemon."""
    path = config or _config_path
    try:
        cfg = load_config(config_path=path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except (ConfigValidationError, ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)
    if cfg is None:
        console.print("[red]No config file found.[/red]")
        console.print("Searched: ./trackpool.yaml, ~/.trackpool/config.yaml")
        raise typer.Exit(1)
    console.print("[green]Config is valid.[/green]")
    console.print(f"  Weight threshold: {cfg.assignment.weight_threshold_grams:g}g")
    console.print(f"  Ready status: {cfg.assignment.ready_status}")


# --- Daemon commands ---


@daemon_app.command("start")
def daemon_start_cmd(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Start the TrackPool daemon (FastAPI)."""
    import os

    from src.cli.daemon import start_daemon

    cfg = _load()
    final_host = host or cfg.daemon.host
    final_port = port or cfg.daemon.port

    configure_logging(cfg.daemon.log_level, cfg.daemon.log_format, cfg.daemon.log_file)

    # The API process loads the same config as the CLI
    if _config_path:
        os.environ["TRACKPOOL_CONFIG_PATH"] = str(_config_path)

    console.print(f"[bold]Starting TrackPool daemon on {final_host}:{final_port}[/bold]")
    start_daemon(
        host=final_host,
        port=final_port,
        pid_file=cfg.daemon.pid_file,
        log_level=cfg.daemon.log_level,
        workers=cfg.daemon.workers,
    )


@daemon_app.command("stop")
def daemon_stop_cmd():
    """Stop the TrackPool daemon."""
    from src.cli.daemon import stop_daemon

    cfg = _load()
    if stop_daemon(pid_file=cfg.daemon.pid_file or DEFAULT_PID_FILE):
        console.print("[green]Daemon stopped.[/green]")
    else:
        console.print("[yellow]Daemon is not running.[/yellow]")


@daemon_app.command("status")
def daemon_status_cmd():
    """Check daemon status."""
    from src.cli.daemon import daemon_status as check_status

    cfg = _load()
    status = check_status(pid_file=cfg.daemon.pid_file, base_url=daemon_base_url(cfg))
    if status["alive"] and status["healthy"]:
        console.print(f"[green]Daemon running[/green] (PID {status['pid']}), healthy")
    elif status["alive"]:
        console.print(f"[yellow]Daemon running[/yellow] (PID {status['pid']}), unhealthy")
    else:
        console.print("[red]Daemon not running[/red]")


# --- Pool commands ---


@pool_app.command("summary")
def pool_summary(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show total, available, bound and withdrawn counts per pool."""

    async def _action(client):
        pools = await client.pool_summary()
        console.print(format_pool_summary(pools, as_json=json_output))
        if not json_output:
            for p in pools:
                if p.available == 0:
                    console.print(
                        f"[red]The {p.tracking_class} pool is empty;[/red] "
                        "orders in that weight class cannot be assigned."
                    )

    _run(_action)


@pool_app.command("list")
def pool_list(
    tracking_class: str = typer.Argument(help="Pool to list: EG or CG"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Tracking number substring"),
    order_by: str = typer.Option("id", "--order-by", help="Sort column"),
    ascending: bool = typer.Option(False, "--asc", help="Sort ascending"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, max=500),
    offset: int = typer.Option(0, "--offset", min=0),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List one pool."""

    async def _action(client):
        page = await client.list_entries(
            tracking_class,
            search=search,
            order_by=order_by,
            order="asc" if ascending else "desc",
            limit=limit,
            offset=offset,
        )
        title = f"{tracking_class.upper()} Tracking Numbers"
        console.print(format_entries_table(page, title, as_json=json_output))

    _run(_action)


def _bulk(tracking_class: str, action: str, ids: list[int], verb: str) -> None:
    async def _action(client):
        affected = await client.bulk_action(tracking_class, action, ids)
        console.print(f"[green]{verb} {affected} of {len(ids)} entries.[/green]")
        if affected < len(ids):
            console.print("[dim]Entries bound to an order or not found were skipped.[/dim]")

    _run(_action)


@pool_app.command("withdraw")
def pool_withdraw(
    tracking_class: str = typer.Argument(help="EG or CG"),
    ids: list[int] = typer.Argument(help="Entry ids"),
):
    """Withdraw unbound entries from assignment."""
    _bulk(tracking_class, "make_inaccessible", ids, "Withdrew")


@pool_app.command("restore")
def pool_restore(
    tracking_class: str = typer.Argument(help="EG or CG"),
    ids: list[int] = typer.Argument(help="Entry ids"),
):
    """Make withdrawn entries available again."""
    _bulk(tracking_class, "make_accessible", ids, "Restored")


@pool_app.command("delete")
def pool_delete(
    tracking_class: str = typer.Argument(help="EG or CG"),
    ids: list[int] = typer.Argument(help="Entry ids"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete unbound entries."""
    if not yes:
        typer.confirm(
            f"Delete {len(ids)} {tracking_class.upper()} entries?", abort=True
        )
    _bulk(tracking_class, "delete", ids, "Deleted")


# --- Upload ---


@app.command("import")
def import_cmd(
    file_path: str = typer.Argument(help="CSV file, one tracking number per row"),
    user: str = typer.Option(..., "--user", "-u", help="Uploading operator id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Upload tracking numbers into the EG and CG pools."""

    async def _action(client):
        summary = await client.import_file(file_path, user)
        console.print(format_import_summary(summary, as_json=json_output))

    _run(_action)


# --- Orders ---


@app.command()
def assign(
    order_id: str = typer.Argument(help="Order id"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Assign a tracking number to an order by its weight class."""

    async def _action(client):
        outcome = await client.assign(order_id)
        console.print(format_assign_outcome(outcome, as_json=json_output))

    _run(_action)


@app.command()
def sync(
    order_id: str = typer.Argument(help="Order id"),
    status: str = typer.Argument(help="New order status"),
    from_status: Optional[str] = typer.Option(None, "--from", help="Previous order status"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Report an order status change.

    Assigns a tracking number when the order becomes ready to ship,
    then mirrors the status onto its pool entry.
    """

    async def _action(client):
        outcome = await client.status_changed(order_id, status, from_status=from_status)
        console.print(format_assign_outcome(outcome, as_json=json_output))

    _run(_action)


# --- Upload logs ---


@logs_app.command("list")
def logs_list(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List upload logs, newest first."""

    async def _action(client):
        console.print(format_upload_logs(await client.list_upload_logs(), as_json=json_output))

    _run(_action)


@logs_app.command("show")
def logs_show(name: str = typer.Argument(help="Log file name")):
    """Print one upload log."""

    async def _action(client):
        console.print(await client.read_upload_log(name), markup=False, highlight=False)

    _run(_action)


# --- Reports ---


@report_app.command("gst")
def report_gst(
    file_path: str = typer.Argument(help="CSV or XLSX with an 'Article Number' column"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Save the report here"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Generate a GST report for the listed article numbers."""

    async def _action(client):
        outcome = await client.generate_gst_report(file_path, output_path=output)
        console.print(format_report_outcome(outcome, as_json=json_output))

    _run(_action)


if __name__ == "__main__":
    app()
