"""Bets subcommand: list, place."""

from __future__ import annotations

import asyncio
import time

import typer

from predsettle.cli.wiring import build_ledger
from predsettle.errors import LedgerError, LedgerRejected, SettlementError, StartupError
from predsettle.models import MarketState
from predsettle.models.market import STAKE_DECIMALS
from predsettle.oracle.pricing import format_fixed, parse_fixed
from predsettle.settlement import claim_payout

app = typer.Typer(help="Bet placement, listing and claim status")


async def _load(settings, owner: str | None):
    ledger = build_ledger(settings)
    try:
        bets = await ledger.list_bets(owner=owner)
        markets = {m.address: m for m in await ledger.list_markets()}
        return bets, markets
    finally:
        await ledger.aclose()


@app.command("list")
def list_bets(
    ctx: typer.Context,
    owner: str | None = typer.Option(None, "--owner", "-o", help="Only bets placed by this account"),
) -> None:
    """List bets with their side, stake and claim status."""
    settings = ctx.obj["settings"]
    try:
        bets, markets = asyncio.run(_load(settings, owner))
    except LedgerError as e:
        typer.echo(f"Ledger error: {e}", err=True)
        raise typer.Exit(1)
    for bet in bets:
        side = "UP" if bet.direction else "DOWN"
        market = markets.get(bet.market)
        if market is None:
            status = "market unavailable"
        else:
            try:
                payout = claim_payout(market, bet, settings.fee_bps)
                status = f"claimable {format_fixed(payout, STAKE_DECIMALS, places=4)}"
            except SettlementError as e:
                status = e.code
        typer.echo(f"  {bet.address}  {side}  {format_fixed(bet.amount, STAKE_DECIMALS, places=4)}  {status}")
    typer.echo(f"Total: {len(bets)} bets")


async def _place(settings, market: str, direction: bool, amount: int) -> str:
    ledger = build_ledger(settings, with_signer=True)
    try:
        record = await ledger.fetch_market(market)
        if record is None:
            raise LedgerRejected(f"market account not found or unreadable: {market}")
        if record.state(int(time.time())) is not MarketState.OPEN:
            raise LedgerRejected(f"market {market} is closed for betting", program_error="MarketClosed")
        return await ledger.place_bet(market, direction, amount)
    finally:
        await ledger.aclose()


@app.command("place")
def place_bet(
    ctx: typer.Context,
    market: str = typer.Argument(..., help="Market account address"),
    direction: bool | None = typer.Option(None, "--up/--down", help="Side to back: up (YES) or down (NO)"),
    amount: str = typer.Option(..., "--amount", "-a", help="Stake in native units, e.g. 0.5"),
) -> None:
    """Stake on one side of an open market."""
    settings = ctx.obj["settings"]
    if direction is None:
        typer.echo("Choose a side with --up or --down", err=True)
        raise typer.Exit(1)
    try:
        lamports = parse_fixed(amount, STAKE_DECIMALS)
    except ValueError as e:
        typer.echo(f"Invalid amount: {e}", err=True)
        raise typer.Exit(1)
    if lamports <= 0:
        typer.echo("Invalid amount: must be positive", err=True)
        raise typer.Exit(1)
    try:
        bet = asyncio.run(_place(settings, market, direction, lamports))
    except (StartupError, LedgerError) as e:
        typer.echo(f"Bet failed: {e}", err=True)
        raise typer.Exit(1)
    side = "UP" if direction else "DOWN"
    typer.echo(f"Placed bet {bet}  {side}  {format_fixed(lamports, STAKE_DECIMALS, places=4)}")
