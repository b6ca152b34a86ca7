"""Poller: partitioning, failure isolation, de-duplication, bounds, lifecycle."""

import asyncio

from conftest import NOW, PROGRAM_ID, RECEIVER_ID, FakeLedger, FakeOracle, make_market
from predsettle.errors import LedgerUnavailable, NoQuoteForFeed
from predsettle.resolution import MarketResolver, ResolutionPoller
from predsettle.storage.db import get_connection, init_schema
from predsettle.storage.journal import Journal, journal_stats


def _poller(ledger, oracle=None, **kwargs) -> ResolutionPoller:
    oracle = oracle or FakeOracle()
    resolver = MarketResolver(ledger, oracle, PROGRAM_ID, RECEIVER_ID, clock=lambda: NOW)
    kwargs.setdefault("interval_sec", 0.01)
    return ResolutionPoller(ledger, resolver, clock=lambda: NOW, **kwargs)


def test_tick_resolves_only_expired_unresolved():
    expired = make_market()
    open_ = make_market(end_time=NOW + 3600)
    done = make_market(resolved=True, outcome=False)
    ledger = FakeLedger([expired, open_, done])
    report = asyncio.run(_poller(ledger).tick())
    assert report.listed == 3
    assert report.expired == 1
    assert report.resolved == (expired.address,)
    assert [c[0] for c in ledger.resolve_calls] == [expired.address]
    assert ledger.markets[done.address].outcome is False


def test_second_tick_does_not_resubmit():
    market = make_market()
    ledger = FakeLedger([market])
    poller = _poller(ledger)

    async def two_ticks():
        await poller.tick()
        first = ledger.markets[market.address]
        report = await poller.tick()
        return first, report

    first, report = asyncio.run(two_ticks())
    assert report.expired == 0
    assert len(ledger.resolve_calls) == 1
    after = ledger.markets[market.address]
    assert (after.outcome, after.total_up_pool, after.total_down_pool) == (
        first.outcome,
        first.total_up_pool,
        first.total_down_pool,
    )


def test_failures_are_isolated_per_market():
    bad_oracle = make_market(feed_id=bytes(32))
    rejected, good = make_market(), make_market()
    ledger = FakeLedger([bad_oracle, rejected, good])
    ledger.reject.add(rejected.address)
    oracle = FakeOracle()
    oracle.errors[bad_oracle.feed_id_hex] = NoQuoteForFeed(bad_oracle.feed_id_hex)
    report = asyncio.run(_poller(ledger, oracle).tick())
    assert report.expired == 3
    assert report.resolved == (good.address,)
    assert set(report.failed) == {bad_oracle.address, rejected.address}
    assert ledger.markets[rejected.address].resolved is False


def test_unexpected_exception_does_not_escape():
    market = make_market()

    class BrokenOracle(FakeOracle):
        async def fetch_update(self, feed_id):
            raise RuntimeError("boom")

    report = asyncio.run(_poller(FakeLedger([market]), BrokenOracle()).tick())
    assert report.failed == (market.address,)


def test_listing_failure_fails_tick_only():
    ledger = FakeLedger([make_market()])
    ledger.list_error = LedgerUnavailable("rpc down")
    poller = _poller(ledger)
    report = asyncio.run(poller.tick())
    assert report.list_error == "rpc down"
    assert poller.snapshot == ()


def test_unexpected_listing_error_fails_tick_only():
    ledger = FakeLedger([make_market()])
    ledger.list_error = KeyError("account")
    report = asyncio.run(_poller(ledger).tick())
    assert "KeyError" in report.list_error
    assert ledger.resolve_calls == []


def test_snapshot_replaced_each_tick():
    first = make_market(end_time=NOW + 100)
    ledger = FakeLedger([first])
    poller = _poller(ledger)
    asyncio.run(poller.tick())
    snap1 = poller.snapshot
    second = make_market(end_time=NOW + 100)
    ledger.markets[second.address] = second
    asyncio.run(poller.tick())
    assert snap1 == (first,)
    assert set(m.address for m in poller.snapshot) == {first.address, second.address}
    assert isinstance(poller.snapshot, tuple)


def test_same_market_never_in_flight_twice():
    market = make_market()
    ledger = FakeLedger([market], delay=0.05)
    poller = _poller(ledger)

    async def overlapping():
        return await asyncio.gather(poller.tick(), poller.tick())

    a, b = asyncio.run(overlapping())
    assert len(ledger.resolve_calls) == 1
    assert len(a.resolved) + len(b.resolved) == 1
    assert len(a.skipped) + len(b.skipped) == 1
    assert poller.in_flight == frozenset()


def test_concurrency_is_bounded():
    markets = [make_market() for _ in range(10)]
    ledger = FakeLedger(markets, delay=0.02)
    report = asyncio.run(_poller(ledger, max_concurrency=3).tick())
    assert len(report.resolved) == 10
    assert ledger.max_active == 3


def test_slow_attempt_times_out():
    market = make_market()
    ledger = FakeLedger([market], delay=1.0)
    report = asyncio.run(_poller(ledger, attempt_timeout_sec=0.05).tick())
    assert report.failed == (market.address,)


def test_run_stops_gracefully():
    ledger = FakeLedger([make_market()])
    poller = _poller(ledger, interval_sec=0.01)

    async def run_briefly():
        task = asyncio.create_task(poller.run())
        await asyncio.sleep(0.05)
        poller.stop()
        await asyncio.wait_for(task, timeout=1.0)

    asyncio.run(run_briefly())
    assert len(ledger.resolve_calls) == 1


def test_attempts_are_journaled():
    ok, failing = make_market(), make_market()
    ledger = FakeLedger([ok, failing])
    ledger.reject.add(failing.address)
    conn = get_connection(":memory:")
    init_schema(conn)
    asyncio.run(_poller(ledger, journal=Journal(conn)).tick())
    stats = journal_stats(conn)
    assert stats["total_attempts"] == 2
    assert stats["by_status"] == {"failed": 1, "ok": 1}
    kinds = {r["market"]: r["error_kind"] for r in stats["recent"]}
    assert kinds[failing.address] == "ledger_rejected"
    assert kinds[ok.address] is None
    conn.close()
