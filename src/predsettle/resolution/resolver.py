"""Single-market resolution: quote -> settlement price -> accounts -> ResolveMarket."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

import structlog

from predsettle.errors import MarketAlreadyResolved, MarketNotExpired
from predsettle.ledger.addresses import derive_oracle_update_address, derive_vault_address
from predsettle.models import Market, MarketState
from predsettle.oracle.pricing import to_settlement_price
from predsettle.resolution.base import MarketLedger, PriceOracle
from predsettle.settlement.outcome import evaluate

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResolutionPlan:
    """Everything the ResolveMarket call needs, derived before submission."""

    market: str
    feed_id: str
    final_price: int
    expected_outcome: bool
    price_update: str
    vault: str
    publish_time: int | None = None


@dataclass(frozen=True)
class ResolutionResult:
    plan: ResolutionPlan
    signature: str


class MarketResolver:
    """Drives one resolution attempt. Raises on any failure; callers decide policy."""

    def __init__(
        self,
        ledger: MarketLedger,
        oracle: PriceOracle,
        program_id: str,
        receiver_program_id: str,
        shard_id: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.oracle = oracle
        self.program_id = program_id
        self.receiver_program_id = receiver_program_id
        self.shard_id = shard_id
        self.clock = clock

    async def plan(self, market: Market, now: int | None = None) -> ResolutionPlan:
        now = int(self.clock()) if now is None else now
        state = market.state(now)
        if state is MarketState.RESOLVED:
            raise MarketAlreadyResolved(market.address)
        if state is MarketState.OPEN:
            raise MarketNotExpired(market.address, market.end_time)

        feed_id = market.feed_id_hex
        update = await self.oracle.fetch_update(feed_id)
        final_price = to_settlement_price(update.quote)
        price_update, _ = derive_oracle_update_address(market.feed_id, self.receiver_program_id, self.shard_id)
        vault, _ = derive_vault_address(market.address, self.program_id)
        return ResolutionPlan(
            market=market.address,
            feed_id=feed_id,
            final_price=final_price,
            expected_outcome=evaluate(market.start_price, market.target_price, final_price, market.inverted),
            price_update=str(price_update),
            vault=str(vault),
            publish_time=update.quote.publish_time,
        )

    async def resolve(self, market: Market, now: int | None = None) -> ResolutionResult:
        plan = await self.plan(market, now)
        log.debug(
            "resolution_planned",
            market=plan.market,
            final_price=plan.final_price,
            expected_outcome=plan.expected_outcome,
            price_update=plan.price_update,
        )
        signature = await self.ledger.resolve_market(
            plan.market, plan.final_price, plan.price_update, plan.vault
        )
        return ResolutionResult(plan=plan, signature=signature)
