"""Collaborator protocols for the resolution engine (ledger + oracle)."""

from __future__ import annotations

from typing import Protocol

from solders.pubkey import Pubkey

from predsettle.models import Market, PriceUpdate


class MarketLedger(Protocol):
    """Ledger reads and the resolution write the poller needs."""

    async def list_markets(self) -> list[Market]: ...

    async def resolve_market(
        self, market: str, final_price: int, price_update: str | Pubkey, vault: str | Pubkey
    ) -> str: ...


class PriceOracle(Protocol):
    """Latest price plus attestation for a feed."""

    async def fetch_update(self, feed_id: str) -> PriceUpdate: ...
