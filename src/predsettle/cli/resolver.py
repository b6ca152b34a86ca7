"""Resolver subcommand: run, once, status."""

from __future__ import annotations

import asyncio
import signal
import sys

import structlog
import typer

from predsettle.cli.wiring import build_ledger, build_oracle
from predsettle.config import Settings
from predsettle.errors import LedgerUnavailable, StartupError
from predsettle.resolution import MarketResolver, ResolutionPoller, TickReport
from predsettle.storage.db import get_connection, init_schema
from predsettle.storage.journal import Journal, journal_stats

log = structlog.get_logger(__name__)

app = typer.Typer(help="Resolve expired markets against the price oracle")


async def _startup(settings: Settings):
    """Load signer and verify the ledger endpoint. Raises StartupError."""
    ledger = build_ledger(settings, with_signer=True)
    try:
        version = await ledger.health()
    except LedgerUnavailable as e:
        await ledger.aclose()
        raise StartupError(f"Ledger RPC unreachable at {settings.rpc_url}: {e}") from e
    log.info("ledger_connected", rpc_url=settings.rpc_url, version=version)
    return ledger


def _build_poller(settings: Settings, ledger, oracle, journal: Journal | None) -> ResolutionPoller:
    resolver = MarketResolver(
        ledger,
        oracle,
        program_id=settings.program_id,
        receiver_program_id=settings.receiver_program_id,
        shard_id=settings.shard_id,
    )
    return ResolutionPoller(
        ledger,
        resolver,
        interval_sec=settings.poll_interval_sec,
        max_concurrency=settings.max_concurrency,
        attempt_timeout_sec=settings.attempt_timeout_sec,
        journal=journal,
    )


def _open_journal(settings: Settings) -> Journal:
    conn = get_connection(settings.db_path)
    init_schema(conn)
    return Journal(conn)


async def _serve(settings: Settings, stop_event: asyncio.Event, once: bool) -> TickReport | None:
    ledger = await _startup(settings)
    oracle = build_oracle(settings)
    journal = _open_journal(settings)
    poller = _build_poller(settings, ledger, oracle, journal)
    try:
        if once:
            return await poller.tick()
        await poller.run(stop_event=stop_event)
        return None
    finally:
        await oracle.aclose()
        await ledger.aclose()
        journal.close()


def _print_report(report: TickReport) -> None:
    if report.list_error:
        typer.echo(f"Listing markets failed: {report.list_error}")
        return
    typer.echo(f"Markets listed: {report.listed}  expired: {report.expired}")
    typer.echo(f"Resolved: {len(report.resolved)}  failed: {len(report.failed)}  skipped: {len(report.skipped)}")
    for address, result in report.results.items():
        outcome = "YES" if result.plan.expected_outcome else "NO"
        typer.echo(f"  {address}  {outcome}  price={result.plan.final_price}  tx={result.signature}")


@app.command("run")
def run(ctx: typer.Context) -> None:
    """Poll and resolve until SIGINT/SIGTERM. Exit 1 on startup failure."""
    settings = ctx.obj["settings"]
    stop_event = asyncio.Event()

    def shutdown() -> None:
        log.info("shutdown_requested")
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo("Starting resolver (Ctrl+C to stop)...")
        loop.run_until_complete(_serve(settings, stop_event, once=False))
    except StartupError as e:
        typer.echo(f"Startup failed: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()
    typer.echo("Stopped.")


@app.command("once")
def once(ctx: typer.Context) -> None:
    """Run a single poll cycle and print a summary."""
    settings = ctx.obj["settings"]
    try:
        report = asyncio.run(_serve(settings, asyncio.Event(), once=True))
    except StartupError as e:
        typer.echo(f"Startup failed: {e}", err=True)
        raise typer.Exit(1)
    _print_report(report)


@app.command("status")
def status(
    ctx: typer.Context,
    recent: int = typer.Option(10, "--recent", "-n", help="Number of recent attempts to show"),
) -> None:
    """Show resolution journal statistics."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = journal_stats(conn, recent=recent)
        typer.echo(f"Total attempts: {s['total_attempts']}")
        for name, count in s["by_status"].items():
            typer.echo(f"  {name}: {count}")
        if s["recent"]:
            typer.echo("Recent attempts:")
            for row in s["recent"]:
                detail = row["signature"] or row["error_kind"] or ""
                typer.echo(f"  {row['attempted_at']}  {row['market'][:20]}...  {row['status']}  {detail}")
    finally:
        conn.close()
