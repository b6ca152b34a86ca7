"""LedgerClient reads and writes over a mocked JSON-RPC endpoint."""

import asyncio
import base64
import json

import httpx
import pytest
from solders.keypair import Keypair
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

from conftest import BTC_FEED, PROGRAM_ID, RECEIVER_ID, FakeOracle, make_bet, make_market, new_address
from predsettle.errors import LedgerRejected, LedgerUnavailable, StartupError
from predsettle.ledger import layout
from predsettle.ledger.addresses import derive_vault_address
from predsettle.ledger.client import LedgerClient
from predsettle.ledger.rpc import RpcClient
from predsettle.resolution import MarketResolver, ResolutionPoller


def _account(address: str, data: bytes) -> dict:
    return {
        "pubkey": address,
        "account": {"data": [base64.b64encode(data).decode(), "base64"], "owner": PROGRAM_ID, "lamports": 1},
    }


class Node:
    """Scripted JSON-RPC node."""

    def __init__(self, accounts=(), send_error=None, status_err=None):
        self.accounts = list(accounts)
        self.send_error = send_error
        self.status_err = status_err
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        method = body["method"]
        if method == "getProgramAccounts":
            result = self.accounts
        elif method == "getAccountInfo":
            address = body["params"][0]
            match = [a for a in self.accounts if a["pubkey"] == address]
            result = {"context": {"slot": 1}, "value": match[0]["account"] if match else None}
        elif method == "getLatestBlockhash":
            result = {"context": {"slot": 1}, "value": {"blockhash": "11111111111111111111111111111111", "lastValidBlockHeight": 10}}
        elif method == "sendTransaction":
            if self.send_error:
                return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": self.send_error})
            result = "5sig"
        elif method == "getSignatureStatuses":
            result = {"context": {"slot": 1}, "value": [{"err": self.status_err, "confirmationStatus": "confirmed"}]}
        elif method == "getVersion":
            result = {"solana-core": "1.18.0"}
        else:
            return httpx.Response(400)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def methods(self):
        return [r["method"] for r in self.requests]


def _ledger(node, signer=None) -> LedgerClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(node))
    return LedgerClient(RpcClient("http://node.test", client=http), PROGRAM_ID, signer=signer)


def test_list_markets_skips_incompatible_accounts():
    good = make_market()
    old = make_market()
    node = Node([
        _account(good.address, layout.encode_market(good)),
        _account(old.address, layout.encode_market(old)[:60]),
        _account(new_address(), b"\x00" * 12),
    ])
    markets = asyncio.run(_ledger(node).list_markets())
    assert markets == [good]
    filters = node.requests[0]["params"][1]["filters"]
    assert base64.b64decode(filters[0]["memcmp"]["bytes"]) == layout.MARKET_DISCRIMINATOR


def test_list_bets_filters_by_owner():
    market = make_market()
    bet = make_bet(market)
    node = Node([_account(bet.address, layout.encode_bet(bet))])
    bets = asyncio.run(_ledger(node).list_bets(owner=bet.user))
    assert bets == [bet]
    owner_filter = node.requests[0]["params"][1]["filters"][1]["memcmp"]
    assert owner_filter["offset"] == layout.BET_USER_OFFSET


def test_fetch_missing_market_returns_none():
    assert asyncio.run(_ledger(Node()).fetch_market(new_address())) is None


def test_resolve_market_submits_and_confirms():
    node = Node()
    market = make_market()
    sig = asyncio.run(_ledger(node, Keypair()).resolve_market(market.address, 6_000_000_000_000, new_address(), new_address()))
    assert sig == "5sig"
    assert node.methods() == ["getLatestBlockhash", "sendTransaction", "getSignatureStatuses"]


def test_preflight_rejection_maps_program_error():
    error = {
        "code": -32002,
        "message": "Transaction simulation failed: Error processing Instruction 0: custom program error: 0x1772",
        "data": {"err": {"InstructionError": [0, {"Custom": 6002}]}, "logs": ["Program log: AnchorError"]},
    }
    with pytest.raises(LedgerRejected) as exc:
        asyncio.run(_ledger(Node(send_error=error), Keypair()).resolve_market(new_address(), 1, new_address(), new_address()))
    assert exc.value.program_error == "MarketAlreadyResolved"
    assert exc.value.logs == ["Program log: AnchorError"]


def test_onchain_failure_is_rejected():
    node = Node(status_err={"InstructionError": [0, {"Custom": 6004}]})
    with pytest.raises(LedgerRejected) as exc:
        asyncio.run(_ledger(node, Keypair()).claim(new_address(), new_address()))
    assert exc.value.program_error == "AlreadyClaimed"


def test_transport_failure_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LedgerUnavailable):
        asyncio.run(_ledger(handler).health())


def test_health_reports_version():
    assert asyncio.run(_ledger(Node()).health()) == "1.18.0"


def _reply(result):
    return lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})


@pytest.mark.parametrize("body", [[], "oops", 42, None])
def test_non_object_reply_is_unavailable(body):
    with pytest.raises(LedgerUnavailable):
        asyncio.run(_ledger(lambda r: httpx.Response(200, json=body)).list_markets())


def test_non_object_error_is_unavailable():
    reply = lambda r: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": "boom"})
    with pytest.raises(LedgerUnavailable):
        asyncio.run(_ledger(reply).list_markets())


def test_malformed_account_items_are_skipped():
    good = make_market()
    node = Node([
        {"pubkey": new_address()},
        {"pubkey": new_address(), "account": {"data": ["%%%", "base64"]}},
        {"pubkey": new_address(), "account": {"data": []}},
        _account(good.address, layout.encode_market(good)),
    ])
    assert asyncio.run(_ledger(node).list_markets()) == [good]


def test_listing_that_is_not_a_list_is_unavailable():
    with pytest.raises(LedgerUnavailable):
        asyncio.run(_ledger(_reply({"unexpected": True})).list_markets())


def test_malformed_account_info_is_unavailable():
    reply = _reply({"context": {"slot": 1}, "value": {"lamports": 1}})
    with pytest.raises(LedgerUnavailable):
        asyncio.run(_ledger(reply).fetch_market(new_address()))


def test_missing_blockhash_is_unavailable():
    with pytest.raises(LedgerUnavailable):
        asyncio.run(_ledger(_reply({"value": {}}), Keypair()).claim(new_address(), new_address()))


def test_malformed_listing_is_reported_by_tick():
    ledger = _ledger(_reply([{"pubkey": "x"}, "junk"]))
    resolver = MarketResolver(ledger, FakeOracle(), PROGRAM_ID, RECEIVER_ID)
    report = asyncio.run(ResolutionPoller(ledger, resolver).tick())
    assert report.listed == 0
    assert report.list_error is None

    ledger = _ledger(lambda r: httpx.Response(200, json=["not", "an", "object"]))
    resolver = MarketResolver(ledger, FakeOracle(), PROGRAM_ID, RECEIVER_ID)
    report = asyncio.run(ResolutionPoller(ledger, resolver).tick())
    assert report.list_error


# --- submitted transactions ---

def _sent(node):
    """(program, [(account, signer, writable)], data) of the single submitted instruction."""
    body = next(r for r in node.requests if r["method"] == "sendTransaction")
    message = Transaction.from_bytes(base64.b64decode(body["params"][0])).message
    header = message.header
    keys = message.account_keys
    signed = header.num_required_signatures

    def flags(i):
        if i < signed:
            return True, i < signed - header.num_readonly_signed_accounts
        return False, i < len(keys) - header.num_readonly_unsigned_accounts

    assert len(message.instructions) == 1
    ix = message.instructions[0]
    metas = [(str(keys[i]), *flags(i)) for i in ix.accounts]
    return str(keys[ix.program_id_index]), metas, bytes(ix.data)


def test_create_market_transaction():
    node = Node()
    payer = Keypair()
    price_update = new_address()
    question = "Will BTC go below $45000.00?"
    market = asyncio.run(_ledger(node, payer).create_market(
        question=question,
        asset_symbol="BTC",
        duration_sec=3600,
        feed_id=BTC_FEED,
        start_price=5_000_000_000_000,
        confidence=100,
        target_price=4_500_000_000_000,
        inverted=True,
        price_update=price_update,
    ))
    program, metas, data = _sent(node)
    vault, _ = derive_vault_address(market, PROGRAM_ID)
    assert program == PROGRAM_ID
    assert metas == [
        (market, True, True),
        (price_update, False, False),
        (str(vault), False, True),
        (str(payer.pubkey()), True, True),
        (str(SYSTEM_PROGRAM_ID), False, False),
    ]
    assert data == layout.initialize_market_data(
        question, "BTC", 3600, BTC_FEED, 5_000_000_000_000, 100, 4_500_000_000_000, True
    )


def test_place_bet_transaction():
    node = Node()
    payer = Keypair()
    market = new_address()
    bet = asyncio.run(_ledger(node, payer).place_bet(market, False, 250_000_000))
    program, metas, data = _sent(node)
    vault, _ = derive_vault_address(market, PROGRAM_ID)
    assert metas == [
        (bet, True, True),
        (market, False, True),
        (str(vault), False, True),
        (str(payer.pubkey()), True, True),
        (str(SYSTEM_PROGRAM_ID), False, False),
    ]
    assert data == layout.place_bet_data(False, 250_000_000)
    assert data[8:] == b"\x00" + (250_000_000).to_bytes(8, "little")


def test_place_bet_rejects_non_positive_amount():
    with pytest.raises(ValueError):
        asyncio.run(_ledger(Node(), Keypair()).place_bet(new_address(), True, 0))


def test_claim_transaction():
    node = Node()
    payer = Keypair()
    bet, market = new_address(), new_address()
    asyncio.run(_ledger(node, payer).claim(bet, market))
    _, metas, data = _sent(node)
    vault, _ = derive_vault_address(market, PROGRAM_ID)
    assert metas == [
        (bet, False, True),
        (market, False, True),
        (str(vault), False, True),
        (str(payer.pubkey()), True, True),
        (str(SYSTEM_PROGRAM_ID), False, False),
    ]
    assert data == layout.claim_data()


def test_resolve_market_transaction():
    node = Node()
    market, price_update, vault = new_address(), new_address(), new_address()
    asyncio.run(_ledger(node, Keypair()).resolve_market(market, 6_000_000_000_000, price_update, vault))
    _, metas, data = _sent(node)
    assert metas == [(market, False, True), (price_update, False, False), (vault, False, False)]
    assert data == layout.resolve_market_data(6_000_000_000_000)


def test_writes_need_a_signer():
    with pytest.raises(StartupError):
        asyncio.run(_ledger(Node()).claim(new_address(), new_address()))
