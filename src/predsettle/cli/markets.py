"""Markets subcommand: list, create."""

from __future__ import annotations

import asyncio
import time

import typer

from predsettle.cli.wiring import build_ledger, build_oracle
from predsettle.errors import LedgerError, OracleError, StartupError
from predsettle.feeds import feed_id_to_bytes
from predsettle.ledger.addresses import derive_oracle_update_address
from predsettle.models import Market, MarketState
from predsettle.models.market import PRICE_DECIMALS, STAKE_DECIMALS
from predsettle.oracle.pricing import format_fixed, parse_fixed, to_settlement_confidence, to_settlement_price
from predsettle.settlement import market_odds

app = typer.Typer(help="Market listing and creation")


async def _list(settings) -> list[Market]:
    ledger = build_ledger(settings)
    try:
        return await ledger.list_markets()
    finally:
        await ledger.aclose()


def _status_label(market: Market, now: int) -> str:
    state = market.state(now)
    if state is MarketState.RESOLVED:
        return "YES WON" if market.outcome else "NO WON"
    if state is MarketState.EXPIRED:
        return "EXPIRED"
    minutes, seconds = divmod(market.end_time - now, 60)
    return f"LIVE {minutes}m {seconds}s"


@app.command("list")
def list_markets(
    ctx: typer.Context,
    state: MarketState | None = typer.Option(None, "--state", "-s", help="Filter by state"),
) -> None:
    """List markets on the ledger with display-formatted prices and pools."""
    settings = ctx.obj["settings"]
    try:
        markets = asyncio.run(_list(settings))
    except LedgerError as e:
        typer.echo(f"Ledger error: {e}", err=True)
        raise typer.Exit(1)
    now = int(time.time())
    if state is not None:
        markets = [m for m in markets if m.state(now) is state]
    markets.sort(key=lambda m: m.end_time)
    for m in markets:
        direction = "below" if m.inverted else "above"
        up_pct, down_pct = market_odds(m)
        typer.echo(f"  {m.address}  {m.asset_symbol}  {_status_label(m, now)}")
        typer.echo(f"    {m.question[:70]}")
        typer.echo(
            f"    target {direction} ${format_fixed(m.target_price, PRICE_DECIMALS)}"
            f"  start ${format_fixed(m.start_price, PRICE_DECIMALS)}"
        )
        typer.echo(
            f"    up {format_fixed(m.total_up_pool, STAKE_DECIMALS)} ({up_pct:.1f}%)"
            f"  down {format_fixed(m.total_down_pool, STAKE_DECIMALS)} ({down_pct:.1f}%)"
        )
    typer.echo(f"Total: {len(markets)} markets")


async def _create(settings, symbol: str, feed_id: str, target_price: int, duration: int, inverted: bool, question: str):
    oracle = build_oracle(settings)
    try:
        quote = await oracle.fetch_quote(feed_id)
    finally:
        await oracle.aclose()
    price_update, _ = derive_oracle_update_address(feed_id, settings.receiver_program_id, settings.shard_id)
    ledger = build_ledger(settings, with_signer=True)
    try:
        return await ledger.create_market(
            question=question,
            asset_symbol=symbol,
            duration_sec=duration,
            feed_id=feed_id_to_bytes(feed_id),
            start_price=to_settlement_price(quote),
            confidence=to_settlement_confidence(quote),
            target_price=target_price,
            inverted=inverted,
            price_update=price_update,
        )
    finally:
        await ledger.aclose()


@app.command("create")
def create_market(
    ctx: typer.Context,
    symbol: str = typer.Argument(..., help="Asset symbol from the feed table, e.g. BTC"),
    target: str = typer.Option(..., "--target", "-t", help="Target price in USD, e.g. 90000"),
    duration: int = typer.Option(3600, "--duration", "-d", min=60, help="Betting window in seconds"),
    below: bool = typer.Option(False, "--below", help="YES wins when the final price is below target"),
    question: str | None = typer.Option(None, "--question", "-q", help="Defaults to 'Will <SYMBOL> go above $<target>?'"),
) -> None:
    """Create a market starting at the live oracle price."""
    settings = ctx.obj["settings"]
    symbol = symbol.upper()
    feed_id = settings.feed_table.get(symbol)
    if feed_id is None:
        typer.echo(f"Unknown symbol: {symbol}. Configured: {', '.join(settings.feed_table)}", err=True)
        raise typer.Exit(1)
    try:
        target_price = parse_fixed(target, PRICE_DECIMALS)
    except ValueError as e:
        typer.echo(f"Invalid target: {e}", err=True)
        raise typer.Exit(1)
    if target_price <= 0:
        typer.echo("Invalid target: must be positive", err=True)
        raise typer.Exit(1)
    if question is None:
        question = f"Will {symbol} go {'below' if below else 'above'} ${format_fixed(target_price, PRICE_DECIMALS)}?"
    try:
        address = asyncio.run(_create(settings, symbol, feed_id, target_price, duration, below, question))
    except (StartupError, OracleError, LedgerError, ValueError) as e:
        typer.echo(f"Create failed: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Created market {address}")
    typer.echo(f"  {question}  closes in {duration}s")
