"""Click-based CLI for fx-proxy.

Thin wrapper around library modules. Every command delegates to the
ingestion pipeline, the query service, or the store.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import UTC, datetime

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from fx_proxy.core.exceptions import FxProxyError
from fx_proxy.core.models import IngestOutcome

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from fx_proxy.core import load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except FxProxyError as exc:
            _fail(exc)
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from fx_proxy.ingestion import create_store

    return await create_store(config.storage)


def _fail(exc: FxProxyError) -> None:
    console.print(f"[red]{exc.kind}: {exc}[/red]")
    raise SystemExit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="FX_PROXY_CONFIG",
    default=None,
    help="Path to fx-proxy.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="fx-proxy")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """fx-proxy: budget-governed FX rate ingestion and cached queries."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def ingest(ctx: click.Context) -> None:
    """Run one ingestion: budget check, feed fetch, store write."""
    config = _load_config(ctx)

    async def _run():
        from fx_proxy.core import ConfigProvider
        from fx_proxy.ingestion import (
            CallBudgetGovernor,
            IngestionPipeline,
            ResilientFetcher,
        )

        store = await _create_store_async(config)
        try:
            async with ResilientFetcher(config.feed) as fetcher:
                pipeline = IngestionPipeline(
                    config_provider=ConfigProvider.fixed(config),
                    governor=CallBudgetGovernor(store),
                    fetcher=fetcher,
                    store=store,
                )
                return await pipeline.run()
        finally:
            await store.close()

    try:
        result = _run_async(_run())
    except FxProxyError as exc:
        _fail(exc)

    if result.outcome == IngestOutcome.INGESTED:
        console.print(
            f"[green]✓[/green] Ingested {len(result.symbols)} rates for "
            f"{result.base} on {result.rate_date} "
            f"(call {result.budget_count}/{config.feed.daily_call_budget} today)"
        )
    elif result.outcome == IngestOutcome.BUDGET_EXHAUSTED:
        console.print(
            f"[yellow]Daily budget of {config.feed.daily_call_budget} calls "
            f"already spent. Skipped.[/yellow]"
        )
    else:
        console.print(
            "[yellow]Feed returned none of the configured symbols. Nothing stored.[/yellow]"
        )


# ---------------------------------------------------------------------------
# latest / history
# ---------------------------------------------------------------------------


def _query_service(config, store):
    from fx_proxy.core import ConfigProvider
    from fx_proxy.query import QueryService, ResolverCache

    return QueryService(
        store,
        ResolverCache(max_entries=config.cache.max_entries),
        ConfigProvider.fixed(config),
    )


@cli.command()
@click.option("--base", "-b", type=str, default=None, help="Base currency (default: configured).")
@click.option(
    "--symbols",
    "-s",
    type=str,
    default=None,
    help="Comma-separated symbols (default: configured).",
)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def latest(ctx: click.Context, base: str | None, symbols: str | None, as_json: bool) -> None:
    """Show the latest stored rates."""
    config = _load_config(ctx)
    base = base or config.feed.base_currency
    symbol_list = (
        [s.strip() for s in symbols.split(",") if s.strip()]
        if symbols is not None
        else list(config.feed.symbols)
    )

    async def _run():
        store = await _create_store_async(config)
        try:
            return await _query_service(config, store).get_latest(base, symbol_list)
        finally:
            await store.close()

    try:
        result = _run_async(_run())
    except FxProxyError as exc:
        _fail(exc)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    table = Table(title=f"{result.base} as of {result.as_of.isoformat()}")
    table.add_column("Symbol", style="bold")
    table.add_column("Rate", justify="right")
    for entry in result.rates:
        table.add_row(entry.key, f"{entry.value:.6f}")
    Console().print(table)


@cli.command()
@click.option("--base", "-b", type=str, default=None, help="Base currency (default: configured).")
@click.option("--symbol", "-s", type=str, required=True, help="Quote symbol, e.g. EUR.")
@click.option("--days", "-d", type=int, default=30, show_default=True, help="Trailing days (1-365).")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
@click.pass_context
def history(
    ctx: click.Context, base: str | None, symbol: str, days: int, as_json: bool
) -> None:
    """Show a symbol's daily history."""
    config = _load_config(ctx)
    base = base or config.feed.base_currency

    async def _run():
        store = await _create_store_async(config)
        try:
            return await _query_service(config, store).get_history(base, symbol, days)
        finally:
            await store.close()

    try:
        points = _run_async(_run())
    except FxProxyError as exc:
        _fail(exc)

    if as_json:
        click.echo(json.dumps([p.model_dump() for p in points], indent=2))
        return

    if not points:
        console.print(f"[yellow]No {symbol.upper()} data in the last {days} days.[/yellow]")
        return

    table = Table(title=f"{base.upper()}/{symbol.upper()} last {days} days")
    table.add_column("Date", style="bold")
    table.add_column("Rate", justify="right")
    for p in points:
        table.add_row(p.date, f"{p.value:.6f}")
    Console().print(table)


# ---------------------------------------------------------------------------
# status / purge
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show today's budget usage and data coverage."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            today = datetime.now(UTC).date()
            counter = await store.get_budget_counter(today)
            snapshot = await store.query_latest(config.feed.base_currency)
            return today, counter, snapshot
        finally:
            await store.close()

    try:
        today, counter, snapshot = _run_async(_run())
    except FxProxyError as exc:
        _fail(exc)

    table = Table(title="fx-proxy Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Storage backend", config.storage.backend.value)
    table.add_row("Database path", config.storage.sqlite_path)
    table.add_section()
    table.add_row("Base currency", config.feed.base_currency)
    table.add_row("Symbols", ",".join(config.feed.symbols))
    table.add_row(
        f"Calls today ({today.isoformat()})",
        f"{counter.count if counter else 0}/{config.feed.daily_call_budget}",
    )
    table.add_section()
    table.add_row(
        "Latest snapshot",
        snapshot.rate_date.isoformat() if snapshot else "N/A",
    )
    table.add_row(
        "Latest fetch",
        snapshot.fetched_at.isoformat() if snapshot else "N/A",
    )

    Console().print(table)


@cli.command()
@click.pass_context
def purge(ctx: click.Context) -> None:
    """Delete rows whose retention period has passed."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.purge_expired()
        finally:
            await store.close()

    try:
        removed = _run_async(_run())
    except FxProxyError as exc:
        _fail(exc)
    console.print(f"[green]✓[/green] Purged {removed} expired rows")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind host (default: config api.host).")
@click.option("--port", type=int, default=None, help="Bind port (default: config api.port).")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Start the query API server."""
    try:
        import uvicorn
    except ImportError:
        console.print(
            "[red]uvicorn not installed. Install with: pip install uvicorn[/red]"
        )
        sys.exit(1)

    from fx_proxy.api import create_app

    config = _load_config(ctx)
    uvicorn.run(
        create_app(config),
        host=host or config.api.host,
        port=port or config.api.port,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
