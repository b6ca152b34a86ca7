"""Outcome evaluation, payout math and the claim flow."""

from predsettle.settlement.claims import ClaimQuote, ClaimReceipt, ClaimService
from predsettle.settlement.outcome import evaluate
from predsettle.settlement.payout import (
    check_claim,
    claim_payout,
    compute_payout,
    market_odds,
    protocol_fee,
    winning_pools,
)

__all__ = [
    "ClaimQuote",
    "ClaimReceipt",
    "ClaimService",
    "check_claim",
    "claim_payout",
    "compute_payout",
    "evaluate",
    "market_odds",
    "protocol_fee",
    "winning_pools",
]
