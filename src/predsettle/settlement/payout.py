"""Pari-mutuel payout math and claim eligibility. Integer-only."""

from __future__ import annotations

from predsettle.errors import AlreadyClaimed, MarketNotResolved, NoWinningPool, NotAWinningBet
from predsettle.models import Bet, Market

BPS_DENOMINATOR = 10_000
U64_MAX = 2**64 - 1


def _check_amount(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def protocol_fee(total_pool: int, fee_rate_bps: int) -> int:
    """Fee taken from the combined pool, truncated toward zero."""
    return total_pool * fee_rate_bps // BPS_DENOMINATOR


def compute_payout(user_stake: int, winning_pool_total: int, losing_pool_total: int, fee_rate_bps: int) -> int:
    """Winner's share of the net pool: user_stake * net_pool // winning_pool_total."""
    _check_amount("user_stake", user_stake)
    _check_amount("winning_pool_total", winning_pool_total)
    _check_amount("losing_pool_total", losing_pool_total)
    _check_amount("fee_rate_bps", fee_rate_bps)
    if fee_rate_bps > BPS_DENOMINATOR:
        raise ValueError(f"fee_rate_bps must be at most {BPS_DENOMINATOR}, got {fee_rate_bps}")
    if winning_pool_total == 0:
        raise NoWinningPool()
    if user_stake > winning_pool_total:
        raise ValueError("user_stake cannot exceed the winning pool it belongs to")
    total_pool = winning_pool_total + losing_pool_total
    net_pool = total_pool - protocol_fee(total_pool, fee_rate_bps)
    payout = user_stake * net_pool // winning_pool_total
    if payout > U64_MAX:
        raise ValueError("payout exceeds the ledger's u64 range")
    return payout


def winning_pools(market: Market) -> tuple[int, int]:
    """(winning, losing) pool totals of a resolved market."""
    if not market.resolved or market.outcome is None:
        raise MarketNotResolved(market.address)
    if market.outcome:
        return market.total_up_pool, market.total_down_pool
    return market.total_down_pool, market.total_up_pool


def check_claim(market: Market, bet: Bet) -> None:
    """Raise unless bet may be claimed now."""
    if bet.market != market.address:
        raise ValueError(f"bet {bet.address} belongs to market {bet.market}, not {market.address}")
    if not market.resolved:
        raise MarketNotResolved(market.address)
    if bet.claimed:
        raise AlreadyClaimed(bet.address)
    if bet.direction != market.outcome:
        raise NotAWinningBet(bet.address)


def claim_payout(market: Market, bet: Bet, fee_rate_bps: int) -> int:
    """Validated payout for a claimable bet."""
    check_claim(market, bet)
    winning, losing = winning_pools(market)
    return compute_payout(bet.amount, winning, losing, fee_rate_bps)


def market_odds(market: Market) -> tuple[float, float]:
    """Implied (up %, down %) from pool sizes. Display only."""
    total = market.total_pool
    if total == 0:
        return 0.0, 0.0
    return market.total_up_pool / total * 100.0, market.total_down_pool / total * 100.0
