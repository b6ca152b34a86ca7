"""Market, Bet - ledger records as seen by the settlement engine."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from predsettle.feeds import bytes_to_feed_id

PRICE_DECIMALS = 8  # market prices are fixed-point at 1e8
STAKE_DECIMALS = 9  # pools and stakes are native units at 1e9


class MarketState(str, Enum):
    OPEN = "open"
    EXPIRED = "expired"
    RESOLVED = "resolved"


class Market(BaseModel):
    """Binary market record. Immutable snapshot of the ledger account."""

    model_config = ConfigDict(frozen=True)

    address: str
    admin: str = ""
    question: str = ""
    asset_symbol: str = ""
    feed_id: bytes = Field(..., min_length=32, max_length=32)
    start_price: int = 0
    target_price: int
    end_price: int = 0
    price_conf: int = Field(0, ge=0)
    start_time: int = 0
    end_time: int  # unix seconds
    total_up_pool: int = Field(0, ge=0)
    total_down_pool: int = Field(0, ge=0)
    resolved: bool = False
    outcome: bool | None = None
    vault_bump: int = 0
    inverted: bool = False

    @model_validator(mode="after")
    def _outcome_only_when_resolved(self) -> Market:
        if not self.resolved and self.outcome is not None:
            raise ValueError("unresolved market cannot carry an outcome")
        if self.resolved and self.outcome is None:
            raise ValueError("resolved market must carry an outcome")
        return self

    @property
    def feed_id_hex(self) -> str:
        return bytes_to_feed_id(self.feed_id)

    @property
    def total_pool(self) -> int:
        return self.total_up_pool + self.total_down_pool

    def state(self, now: int) -> MarketState:
        if self.resolved:
            return MarketState.RESOLVED
        if now >= self.end_time:
            return MarketState.EXPIRED
        return MarketState.OPEN

    def is_expired(self, now: int) -> bool:
        """True when the betting window has elapsed and nobody has resolved it yet."""
        return self.state(now) is MarketState.EXPIRED


class Bet(BaseModel):
    """A single stake on one side of a market."""

    model_config = ConfigDict(frozen=True)

    address: str
    user: str
    market: str
    amount: int = Field(..., gt=0)
    direction: bool  # True = up / yes
    claimed: bool = False
