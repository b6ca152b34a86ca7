"""PriceQuote, PriceUpdate - transient oracle data."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PriceQuote(BaseModel):
    """Fixed-point oracle price: value = price * 10**exponent."""

    model_config = ConfigDict(frozen=True)

    feed_id: str
    price: int
    confidence: int = Field(0, ge=0)
    exponent: int
    publish_time: int | None = None  # unix seconds


class PriceUpdate(BaseModel):
    """Quote plus the attestation blobs the ledger can verify on-chain."""

    model_config = ConfigDict(frozen=True)

    quote: PriceQuote
    encoding: str = "base64"
    binary: list[str] = Field(default_factory=list)
