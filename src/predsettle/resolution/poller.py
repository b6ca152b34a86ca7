"""Resolution poller - fixed-interval scan of markets, bounded fan-out per expired market."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable

import structlog

from predsettle.errors import PredSettleError, ResolutionInProgress
from predsettle.models import Market, MarketState
from predsettle.resolution.base import MarketLedger
from predsettle.resolution.resolver import MarketResolver, ResolutionResult
from predsettle.storage.journal import (
    STATUS_FAILED,
    STATUS_OK,
    STATUS_SKIPPED,
    AttemptRecord,
    Journal,
)

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TickReport:
    """Summary of one poll cycle."""

    started_at: int
    listed: int = 0
    expired: int = 0
    resolved: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    list_error: str | None = None
    results: dict[str, ResolutionResult] = field(default_factory=dict)


class ResolutionPoller:
    """Owns the resolution loop lifecycle (run/stop) and the latest market snapshot.

    Per-market failures are logged and journaled; they never escape the loop.
    The same market is never attempted twice concurrently.
    """

    def __init__(
        self,
        ledger: MarketLedger,
        resolver: MarketResolver,
        interval_sec: float = 120.0,
        max_concurrency: int = 4,
        attempt_timeout_sec: float = 60.0,
        journal: Journal | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.ledger = ledger
        self.resolver = resolver
        self.interval_sec = interval_sec
        self.max_concurrency = max_concurrency
        self.attempt_timeout_sec = attempt_timeout_sec
        self.journal = journal
        self.clock = clock
        self._snapshot: tuple[Market, ...] = ()
        self._in_flight: set[str] = set()
        self._stop = asyncio.Event()
        self._tick_count = 0

    @property
    def snapshot(self) -> tuple[Market, ...]:
        """Markets as listed on the most recent successful tick."""
        return self._snapshot

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    def stop(self) -> None:
        """Stop scheduling new ticks. An in-flight tick runs to completion."""
        self._stop.set()

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Tick immediately, then every interval_sec, until stopped."""
        if stop_event is not None:
            self._stop = stop_event
        log.info("resolver_started", interval_sec=self.interval_sec, max_concurrency=self.max_concurrency)
        while not self._stop.is_set():
            try:
                await self.tick()
            except Exception as e:
                log.exception("tick_failed", error=repr(e))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_sec)
            except TimeoutError:
                pass
        log.info("resolver_stopped", ticks=self._tick_count)

    async def tick(self) -> TickReport:
        """One poll cycle: list, partition, resolve every expired market once."""
        now = int(self.clock())
        self._tick_count += 1
        try:
            markets = await asyncio.wait_for(self.ledger.list_markets(), timeout=self.attempt_timeout_sec)
        except (PredSettleError, TimeoutError) as e:
            log.warning("list_markets_failed", error=str(e) or type(e).__name__)
            return TickReport(started_at=now, list_error=str(e) or type(e).__name__)
        except Exception as e:
            log.exception("list_markets_failed", error=repr(e))
            return TickReport(started_at=now, list_error=repr(e))

        self._snapshot = tuple(markets)
        expired = [m for m in self._snapshot if m.state(now) is MarketState.EXPIRED]
        for m in self._snapshot:
            if m.state(now) is MarketState.OPEN:
                log.debug("market_open", market=m.address, seconds_left=m.end_time - now)
        log.info("tick", listed=len(self._snapshot), expired=len(expired))

        sem = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(*(self._attempt(m, now, sem) for m in expired))
        resolved, failed, skipped = [], [], []
        results: dict[str, ResolutionResult] = {}
        for market, (status, result) in zip(expired, outcomes):
            if status == STATUS_OK:
                resolved.append(market.address)
                results[market.address] = result
            elif status == STATUS_FAILED:
                failed.append(market.address)
            else:
                skipped.append(market.address)
        return TickReport(
            started_at=now,
            listed=len(self._snapshot),
            expired=len(expired),
            resolved=tuple(resolved),
            failed=tuple(failed),
            skipped=tuple(skipped),
            results=results,
        )

    async def _attempt(
        self, market: Market, now: int, sem: asyncio.Semaphore
    ) -> tuple[str, ResolutionResult | None]:
        address = market.address
        if address in self._in_flight:
            err = ResolutionInProgress(address)
            log.info("market_resolution_skipped", market=address, reason=err.code)
            self._journal(market, STATUS_SKIPPED, error=err)
            return STATUS_SKIPPED, None
        self._in_flight.add(address)
        try:
            async with sem:
                with structlog.contextvars.bound_contextvars(market=address, asset=market.asset_symbol):
                    return await self._resolve_one(market, now)
        finally:
            self._in_flight.discard(address)

    async def _resolve_one(self, market: Market, now: int) -> tuple[str, ResolutionResult | None]:
        try:
            result = await asyncio.wait_for(self.resolver.resolve(market, now), timeout=self.attempt_timeout_sec)
        except TimeoutError:
            log.warning("market_resolution_failed", error_kind="timeout", timeout_sec=self.attempt_timeout_sec)
            self._journal(market, STATUS_FAILED, error_kind="timeout", message="attempt timed out")
            return STATUS_FAILED, None
        except PredSettleError as e:
            log.warning(
                "market_resolution_failed",
                error_kind=e.code,
                error=e.message,
                program_error=getattr(e, "program_error", None),
            )
            self._journal(market, STATUS_FAILED, error=e)
            return STATUS_FAILED, None
        except Exception as e:
            log.exception("market_resolution_failed", error_kind="unexpected", error=repr(e))
            self._journal(market, STATUS_FAILED, error_kind="unexpected", message=repr(e))
            return STATUS_FAILED, None
        plan = result.plan
        log.info(
            "market_resolved",
            final_price=plan.final_price,
            outcome="YES" if plan.expected_outcome else "NO",
            signature=result.signature,
        )
        self._journal(
            market,
            STATUS_OK,
            final_price=plan.final_price,
            outcome=plan.expected_outcome,
            signature=result.signature,
        )
        return STATUS_OK, result

    def _journal(
        self,
        market: Market,
        status: str,
        *,
        error: PredSettleError | None = None,
        error_kind: str | None = None,
        message: str | None = None,
        final_price: int | None = None,
        outcome: bool | None = None,
        signature: str | None = None,
    ) -> None:
        if self.journal is None:
            return
        self.journal.record(
            AttemptRecord(
                market=market.address,
                status=status,
                asset_symbol=market.asset_symbol,
                feed_id=market.feed_id_hex,
                final_price=final_price,
                outcome=outcome,
                error_kind=error.code if error else error_kind,
                error=error.message if error else message,
                signature=signature,
            )
        )
