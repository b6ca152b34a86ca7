"""Canonical schema (Pydantic) - Market, Bet, PriceQuote."""

from predsettle.models.market import Bet, Market, MarketState
from predsettle.models.price import PriceQuote, PriceUpdate

__all__ = [
    "Market",
    "MarketState",
    "Bet",
    "PriceQuote",
    "PriceUpdate",
]
