"""Error taxonomy for oracle, ledger, settlement and resolution failures.

Retryable (next tick): OracleUnavailable, NoQuoteForFeed, LedgerUnavailable,
LedgerRejected during resolution.
Caller-facing (claims): AlreadyClaimed, NotAWinningBet, MarketNotResolved,
NoWinningPool, LedgerRejected.
"""

from __future__ import annotations


class PredSettleError(Exception):
    """Base application error."""

    code = "error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# --- startup / configuration ---

class ConfigError(PredSettleError):
    code = "config_error"


class StartupError(PredSettleError):
    code = "startup_error"


# --- oracle ---

class OracleError(PredSettleError):
    code = "oracle_error"


class OracleUnavailable(OracleError):
    code = "oracle_unavailable"


class NoQuoteForFeed(OracleError):
    code = "no_quote_for_feed"

    def __init__(self, feed_id: str) -> None:
        self.feed_id = feed_id
        super().__init__(f"No price published for feed {feed_id}")


class PriceScaleError(OracleError):
    code = "price_scale_error"


# --- ledger ---

class LedgerError(PredSettleError):
    code = "ledger_error"


class LedgerUnavailable(LedgerError):
    code = "ledger_unavailable"


class LedgerRejected(LedgerError):
    """The ledger program (or its preflight simulation) refused a transaction."""

    code = "ledger_rejected"

    def __init__(
        self,
        message: str,
        program_error: str | None = None,
        logs: list[str] | None = None,
    ) -> None:
        self.program_error = program_error
        self.logs = logs or []
        super().__init__(message)


class DecodeError(PredSettleError):
    code = "decode_error"


class IncompatibleLayout(DecodeError):
    code = "incompatible_layout"


# --- settlement ---

class SettlementError(PredSettleError):
    code = "settlement_error"


class NoWinningPool(SettlementError):
    code = "no_winning_pool"

    def __init__(self) -> None:
        super().__init__("Winning pool is empty; payout is undefined")


class AlreadyClaimed(SettlementError):
    code = "already_claimed"

    def __init__(self, bet: str) -> None:
        self.bet = bet
        super().__init__(f"Bet already claimed: {bet}")


class NotAWinningBet(SettlementError):
    code = "not_a_winning_bet"

    def __init__(self, bet: str) -> None:
        self.bet = bet
        super().__init__(f"Bet did not win: {bet}")


class MarketNotResolved(SettlementError):
    code = "market_not_resolved"

    def __init__(self, market: str) -> None:
        self.market = market
        super().__init__(f"Market not resolved yet: {market}")


# --- resolution ---

class ResolutionError(PredSettleError):
    code = "resolution_error"


class MarketAlreadyResolved(ResolutionError):
    code = "market_already_resolved"

    def __init__(self, market: str) -> None:
        self.market = market
        super().__init__(f"Market already resolved: {market}")


class MarketNotExpired(ResolutionError):
    code = "market_not_expired"

    def __init__(self, market: str, end_time: int) -> None:
        self.market = market
        self.end_time = end_time
        super().__init__(f"Market {market} is open until {end_time}")


class ResolutionInProgress(ResolutionError):
    code = "resolution_in_progress"

    def __init__(self, market: str) -> None:
        self.market = market
        super().__init__(f"Resolution already in flight for {market}")


# Anchor custom error codes start at 6000, in declaration order.
PROGRAM_ERRORS = [
    "MarketClosed",
    "MarketNotEnded",
    "MarketAlreadyResolved",
    "MarketNotResolved",
    "AlreadyClaimed",
    "LostBet",
    "MathError",
]
ANCHOR_ERROR_OFFSET = 6000


def program_error_name(code: int) -> str | None:
    """Map an Anchor custom error code to the ledger program's error name."""
    idx = code - ANCHOR_ERROR_OFFSET
    if 0 <= idx < len(PROGRAM_ERRORS):
        return PROGRAM_ERRORS[idx]
    return None
