"""Claim flow: fresh state -> eligibility -> payout -> submit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import structlog

from predsettle.errors import AlreadyClaimed, LedgerRejected
from predsettle.models import Bet, Market
from predsettle.settlement.payout import claim_payout

log = structlog.get_logger(__name__)


class ClaimLedger(Protocol):
    async def fetch_bet(self, address: str) -> Bet | None: ...
    async def fetch_market(self, address: str) -> Market | None: ...
    async def claim(self, bet: str, market: str) -> str: ...


@dataclass(frozen=True)
class ClaimQuote:
    bet: Bet
    market: Market
    payout: int


@dataclass(frozen=True)
class ClaimReceipt:
    bet: str
    market: str
    payout: int
    signature: str


class ClaimService:
    """Validates and submits claims. Errors are raised to the caller for display."""

    def __init__(self, ledger: ClaimLedger, fee_rate_bps: int) -> None:
        self.ledger = ledger
        self.fee_rate_bps = fee_rate_bps
        self._claimed: set[str] = set()

    async def quote(self, bet_address: str) -> ClaimQuote:
        """Expected payout for a claimable bet; raises the settlement error otherwise."""
        bet = await self.ledger.fetch_bet(bet_address)
        if bet is None:
            raise LedgerRejected(f"bet account not found or unreadable: {bet_address}")
        market = await self.ledger.fetch_market(bet.market)
        if market is None:
            raise LedgerRejected(f"market account not found or unreadable: {bet.market}")
        if bet_address in self._claimed:
            raise AlreadyClaimed(bet_address)
        payout = claim_payout(market, bet, self.fee_rate_bps)
        return ClaimQuote(bet=bet, market=market, payout=payout)

    async def claim(self, bet_address: str) -> ClaimReceipt:
        if bet_address in self._claimed:
            raise AlreadyClaimed(bet_address)
        q = await self.quote(bet_address)
        # mark before awaiting the submit so a concurrent claim fails fast
        self._claimed.add(bet_address)
        try:
            signature = await self.ledger.claim(bet_address, q.market.address)
        except Exception:
            self._claimed.discard(bet_address)
            raise
        log.info("bet_claimed", bet=bet_address, market=q.market.address, payout=q.payout, signature=signature)
        return ClaimReceipt(bet=bet_address, market=q.market.address, payout=q.payout, signature=signature)
