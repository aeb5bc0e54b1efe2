"""Click-based CLI for rate-sentinel.

Thin wrapper around library modules. Zero business logic: every operation
delegates to the ingestion or analytics packages.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from rate_sentinel.core.exceptions import RateSentinelError

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code.

    Library errors are printed and turned into exit code 1.
    """
    try:
        return asyncio.run(coro)
    except RateSentinelError as exc:
        console.print(f"[red]{type(exc).__name__}: {escape(str(exc))}[/red]")
        raise SystemExit(1) from exc


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose)],
        force=True,
    )
    # httpx logs every request URL at INFO, including the access key.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from rate_sentinel.core import load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except RateSentinelError as exc:
            console.print(f"[red]{type(exc).__name__}: {escape(str(exc))}[/red]")
            raise SystemExit(1) from exc
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from rate_sentinel.ingestion import create_store

    return await create_store(config.storage)


async def _with_engine(config, fn):
    """Open the store, run ``fn(engine)``, and always close the store."""
    from rate_sentinel.analytics import AggregationEngine

    store = await _create_store_async(config)
    try:
        return await fn(AggregationEngine(store))
    finally:
        await store.close()


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _format_epoch(epoch: int | None) -> str:
    if epoch is None:
        return "N/A"
    return datetime.fromtimestamp(epoch).strftime("%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="RATE_SENTINEL_CONFIG",
    default=None,
    help="Path to rate-sentinel.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="rate-sentinel")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Rate Sentinel: crypto exchange-rate tracker."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Fetch current rates once and append them to the history store."""
    config = _load_config(ctx)

    async def _run():
        from rate_sentinel.ingestion import CoinlayerClient, RateSyncService

        store = await _create_store_async(config)
        try:
            async with CoinlayerClient(config.provider) as client:
                service = RateSyncService(client, store, config.sync)
                return await service.sync_to_store()
        finally:
            await store.close()

    written = _run_async(_run())
    console.print(f"[green]✓[/green] Stored {written} rate samples")


# ---------------------------------------------------------------------------
# Read-side commands
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--symbol", "-s", type=str, default=None, help="Single symbol. Default: all.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def latest(ctx: click.Context, symbol: str | None, as_json: bool) -> None:
    """Show the most recent stored rate per symbol."""
    config = _load_config(ctx)
    rows = _run_async(_with_engine(config, lambda engine: engine.latest(symbol)))

    if as_json:
        _echo_json([r.model_dump(mode="json") for r in rows])
        return
    if not rows:
        console.print("[yellow]No rates stored yet. Run 'sync' first.[/yellow]")
        return

    table = Table(title=f"Latest Rates ({config.provider.target})")
    table.add_column("Symbol", style="bold")
    table.add_column("Rate", justify="right")
    table.add_column("Last Update")
    for r in rows:
        table.add_row(r.symbol, f"{r.rate:f}", r.last_update)
    console.print(table)


@cli.command()
@click.argument("symbol")
@click.option("--start", "-s", type=str, required=True, help="Start date (YYYY-MM-DD).")
@click.option("--end", "-e", type=str, required=True, help="End date (YYYY-MM-DD).")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def history(ctx: click.Context, symbol: str, start: str, end: str, as_json: bool) -> None:
    """Show stored rates for SYMBOL over whole calendar days."""
    config = _load_config(ctx)
    points = _run_async(
        _with_engine(config, lambda engine: engine.history(symbol, start, end))
    )

    if as_json:
        _echo_json([p.model_dump(mode="json") for p in points])
        return

    table = Table(title=f"{symbol.upper()} {start} → {end}")
    table.add_column("Date")
    table.add_column("Rate", justify="right")
    for p in points:
        table.add_row(p.date, f"{p.rate:f}")
    console.print(table)
    console.print(f"{len(points)} samples")


@cli.command()
@click.argument("symbol")
@click.option(
    "--range",
    "window",
    type=click.Choice(["7d", "30d"]),
    default="7d",
    help="Lookback window.",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def summary(ctx: click.Context, symbol: str, window: str, as_json: bool) -> None:
    """Show max/min/avg and change for SYMBOL."""
    config = _load_config(ctx)
    stats = _run_async(
        _with_engine(config, lambda engine: engine.summary(symbol, window))
    )

    if as_json:
        _echo_json(stats.model_dump(mode="json"))
        return

    table = Table(title=f"{stats.symbol} Summary ({stats.window})")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Max", f"{stats.max_value:f}")
    table.add_row("Min", f"{stats.min_value:f}")
    table.add_row("Average", f"{stats.avg_value:f}")
    table.add_section()
    table.add_row("Change", f"{stats.price_change:f}")
    table.add_row("Change %", stats.price_change_percent)
    table.add_row("Samples", str(stats.sample_count))
    console.print(table)


@cli.command()
@click.argument("symbol")
@click.pass_context
def explain(ctx: click.Context, symbol: str) -> None:
    """Print a short commentary on SYMBOL's last 24 hours."""
    config = _load_config(ctx)
    report = _run_async(_with_engine(config, lambda engine: engine.explain_market(symbol)))
    click.echo(report.report)


@cli.command()
@click.option("--keyword", "-k", type=str, default=None, help="Case-insensitive filter.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def symbols(ctx: click.Context, keyword: str | None, as_json: bool) -> None:
    """List tracked symbols, optionally filtered by keyword."""
    config = _load_config(ctx)
    found = _run_async(
        _with_engine(config, lambda engine: engine.search_symbols(keyword))
    )

    if as_json:
        _echo_json(found)
        return
    click.echo(" ".join(found) if found else "(no matches)")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address. Default: api.host.")
@click.option("--port", "-p", type=int, default=None, help="Port number. Default: api.port.")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server and the sync scheduler."""
    import uvicorn

    config = _load_config(ctx)
    if ctx.obj.get("config_path"):
        # The app factory re-reads config in the server process.
        os.environ["RATE_SENTINEL_CONFIG"] = ctx.obj["config_path"]
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting rate-sentinel API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "rate_sentinel.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show store coverage and scheduler settings."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.get_statistics()
        finally:
            await store.close()

    stats = _run_async(_run())

    table = Table(title="Rate Sentinel Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Database path", config.storage.sqlite_path)
    table.add_row("Provider", f"{config.provider.base_url}{config.provider.live_path}")
    table.add_section()
    table.add_row("Total samples", str(stats["total_samples"]))
    table.add_row("Unique symbols", str(stats["unique_symbols"]))
    table.add_row(
        "Observed range",
        f"{_format_epoch(stats['earliest_observed_at'])} → "
        f"{_format_epoch(stats['latest_observed_at'])}"
        if stats["total_samples"] > 0
        else "N/A",
    )
    table.add_section()
    table.add_row("Scheduler enabled", str(config.scheduler.enabled))
    table.add_row("Interval (ms)", str(config.scheduler.interval_ms))
    table.add_row("Initial delay (ms)", str(config.scheduler.initial_delay_ms))

    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
