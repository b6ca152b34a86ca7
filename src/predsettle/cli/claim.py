"""Claim subcommand: check, submit."""

from __future__ import annotations

import asyncio

import typer

from predsettle.cli.wiring import build_ledger
from predsettle.errors import LedgerError, SettlementError, StartupError
from predsettle.models.market import STAKE_DECIMALS
from predsettle.oracle.pricing import format_fixed
from predsettle.settlement import ClaimService

app = typer.Typer(help="Check and claim winning bets")


async def _check(settings, bet: str):
    ledger = build_ledger(settings)
    try:
        return await ClaimService(ledger, settings.fee_bps).quote(bet)
    finally:
        await ledger.aclose()


async def _submit(settings, bet: str):
    ledger = build_ledger(settings, with_signer=True)
    try:
        return await ClaimService(ledger, settings.fee_bps).claim(bet)
    finally:
        await ledger.aclose()


@app.command("check")
def check(ctx: typer.Context, bet: str = typer.Argument(..., help="Bet account address")) -> None:
    """Show whether a bet can be claimed and the expected payout."""
    settings = ctx.obj["settings"]
    try:
        q = asyncio.run(_check(settings, bet))
    except (SettlementError, LedgerError) as e:
        typer.echo(f"Not claimable: {e}")
        raise typer.Exit(1)
    typer.echo(f"Claimable: {format_fixed(q.payout, STAKE_DECIMALS, places=9)} (stake {format_fixed(q.bet.amount, STAKE_DECIMALS, places=9)})")


@app.command("submit")
def submit(ctx: typer.Context, bet: str = typer.Argument(..., help="Bet account address")) -> None:
    """Claim a winning bet."""
    settings = ctx.obj["settings"]
    try:
        receipt = asyncio.run(_submit(settings, bet))
    except StartupError as e:
        typer.echo(f"Startup failed: {e}", err=True)
        raise typer.Exit(1)
    except (SettlementError, LedgerError) as e:
        typer.echo(f"Claim failed: {e}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Claimed {format_fixed(receipt.payout, STAKE_DECIMALS, places=9)}  tx={receipt.signature}")
