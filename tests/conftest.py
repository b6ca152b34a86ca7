"""Shared fixtures: market factory, in-memory ledger and oracle fakes."""

from __future__ import annotations

import asyncio

import pytest
from solders.pubkey import Pubkey

from predsettle.errors import LedgerRejected, NoQuoteForFeed
from predsettle.models import Bet, Market, PriceQuote, PriceUpdate
from predsettle.feeds import bytes_to_feed_id
from predsettle.settlement.outcome import evaluate

NOW = 1_700_000_000
BTC_FEED = bytes.fromhex("e62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43")
PROGRAM_ID = "6kdWRDeTupf2DK3A8p1JRjh6adpFStzLZjBany25GY97"
RECEIVER_ID = "7UVimffxr9ow1uXYxsr4LHAcV58mLzhmwaeKvJ1iqJQ9"


def new_address() -> str:
    return str(Pubkey.new_unique())


def make_market(**overrides) -> Market:
    fields = {
        "address": new_address(),
        "admin": new_address(),
        "question": "Will BTC go above $55,000?",
        "asset_symbol": "BTC",
        "feed_id": BTC_FEED,
        "start_price": 5_000_000_000_000,
        "target_price": 5_500_000_000_000,
        "price_conf": 100,
        "start_time": NOW - 600,
        "end_time": NOW - 60,
        "total_up_pool": 1_000_000_000,
        "total_down_pool": 500_000_000,
    }
    fields.update(overrides)
    return Market(**fields)


def make_bet(market: Market, **overrides) -> Bet:
    fields = {
        "address": new_address(),
        "user": new_address(),
        "market": market.address,
        "amount": 1_000_000_000,
        "direction": True,
    }
    fields.update(overrides)
    return Bet(**fields)


class FakeLedger:
    """In-memory ledger enforcing the program's resolve/claim rules."""

    def __init__(self, markets=(), bets=(), delay: float = 0.0) -> None:
        self.markets = {m.address: m for m in markets}
        self.bets = {b.address: b for b in bets}
        self.delay = delay
        self.reject = set()
        self.list_error: Exception | None = None
        self.resolve_calls = []
        self.claim_calls = []
        self.created = []
        self.placed = []
        self.active = 0
        self.max_active = 0

    async def health(self):
        return "fake"

    async def aclose(self):
        pass

    async def list_markets(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.markets.values())

    async def fetch_market(self, address):
        return self.markets.get(address)

    async def fetch_bet(self, address):
        return self.bets.get(address)

    async def resolve_market(self, market, final_price, price_update, vault):
        self.resolve_calls.append((market, final_price, str(price_update), str(vault)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if market in self.reject:
            raise LedgerRejected("simulation failed", program_error="MarketNotEnded")
        m = self.markets[market]
        if m.resolved:
            raise LedgerRejected("simulation failed", program_error="MarketAlreadyResolved")
        outcome = evaluate(m.start_price, m.target_price, final_price, m.inverted)
        self.markets[market] = m.model_copy(update={"resolved": True, "outcome": outcome, "end_price": final_price})
        return f"sig-{market[:8]}"

    async def claim(self, bet, market):
        self.claim_calls.append((bet, market))
        b = self.bets[bet]
        if b.claimed:
            raise LedgerRejected("simulation failed", program_error="AlreadyClaimed")
        self.bets[bet] = b.model_copy(update={"claimed": True})
        return f"claim-{bet[:8]}"

    async def create_market(self, **kwargs):
        self.created.append(kwargs)
        return new_address()

    async def place_bet(self, market, direction, amount):
        self.placed.append((market, direction, amount))
        return new_address()


class FakeOracle:
    """Serves fixed quotes per feed; errors can be injected per feed."""

    def __init__(self, price: int = 6_000_000_000_000, exponent: int = -8) -> None:
        self.price = price
        self.exponent = exponent
        self.errors: dict[str, Exception] = {}
        self.calls = []

    async def fetch_update(self, feed_id):
        self.calls.append(feed_id)
        if feed_id in self.errors:
            raise self.errors[feed_id]
        if self.price is None:
            raise NoQuoteForFeed(feed_id)
        quote = PriceQuote(feed_id=feed_id, price=self.price, confidence=1000, exponent=self.exponent, publish_time=NOW)
        return PriceUpdate(quote=quote, binary=["UE5BVQ=="])

    async def fetch_quote(self, feed_id):
        return (await self.fetch_update(feed_id)).quote

    async def aclose(self):
        pass


@pytest.fixture
def btc_feed_hex() -> str:
    return bytes_to_feed_id(BTC_FEED)
