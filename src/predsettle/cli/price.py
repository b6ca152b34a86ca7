"""Price subcommand: get."""

from __future__ import annotations

import asyncio

import typer

from predsettle.cli.wiring import build_oracle
from predsettle.errors import OracleError
from predsettle.models import PriceQuote
from predsettle.oracle.pricing import format_display_value

app = typer.Typer(help="Live oracle prices")


async def _fetch(settings, feed_id: str) -> PriceQuote:
    oracle = build_oracle(settings)
    try:
        return await oracle.fetch_quote(feed_id)
    finally:
        await oracle.aclose()


@app.command("get")
def get(ctx: typer.Context, symbol: str = typer.Argument(..., help="Asset symbol, e.g. BTC")) -> None:
    """Fetch and display the latest price for an asset."""
    settings = ctx.obj["settings"]
    feed_id = settings.feed_table.get(symbol.upper())
    if feed_id is None:
        typer.echo(f"Unknown symbol: {symbol}. Configured: {', '.join(settings.feed_table)}")
        raise typer.Exit(1)
    try:
        quote = asyncio.run(_fetch(settings, feed_id))
    except OracleError as e:
        typer.echo(f"Oracle error: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"{symbol.upper()}/USD  ${format_display_value(quote)}")
    typer.echo(f"  raw {quote.price}e{quote.exponent}  conf {quote.confidence}  published {quote.publish_time}")
