"""Ledger account and instruction codec (Anchor discriminator + Borsh fields).

Account decoding never raises into callers: decode_* returns a DecodeResult
that is either ok (value set) or an IncompatibleLayout error. Old or foreign
account layouts are filtered at the list boundary.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import ValidationError
from solders.pubkey import Pubkey

from predsettle.errors import IncompatibleLayout
from predsettle.models import Bet, Market

T = TypeVar("T")

DISCRIMINATOR_LEN = 8


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_LEN]


def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:DISCRIMINATOR_LEN]


MARKET_DISCRIMINATOR = account_discriminator("Market")
BET_DISCRIMINATOR = account_discriminator("Bet")

# Bet layout: discriminator | user | market | amount | direction | claimed
BET_USER_OFFSET = DISCRIMINATOR_LEN

# string capacity reserved by initialize_market
MAX_QUESTION_BYTES = 200
MAX_ASSET_BYTES = 10


class BorshReader:
    """Sequential little-endian reader over an account's data."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.offset = offset

    def _take(self, n: int) -> bytes:
        end = self.offset + n
        if end > len(self.data):
            raise IncompatibleLayout(f"account data too short: need {end} bytes, have {len(self.data)}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def _unpack(self, fmt: str, size: int):
        return struct.unpack(fmt, self._take(size))[0]

    def u8(self) -> int:
        return self._unpack("<B", 1)

    def u16(self) -> int:
        return self._unpack("<H", 2)

    def u32(self) -> int:
        return self._unpack("<I", 4)

    def u64(self) -> int:
        return self._unpack("<Q", 8)

    def i64(self) -> int:
        return self._unpack("<q", 8)

    def boolean(self) -> bool:
        value = self.u8()
        if value > 1:
            raise IncompatibleLayout(f"invalid bool byte {value} at offset {self.offset - 1}")
        return value == 1

    def fixed(self, n: int) -> bytes:
        return self._take(n)

    def pubkey(self) -> str:
        return str(Pubkey.from_bytes(self._take(32)))

    def string(self) -> str:
        length = self.u32()
        try:
            return self._take(length).decode("utf-8")
        except UnicodeDecodeError as e:
            raise IncompatibleLayout(f"string field is not utf-8: {e}") from e

    def option_bool(self) -> bool | None:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return self.boolean()
        raise IncompatibleLayout(f"invalid option tag {tag}")


class BorshWriter:
    """Accumulates Borsh-encoded instruction arguments."""

    def __init__(self, prefix: bytes = b"") -> None:
        self._parts = [prefix]

    def u8(self, value: int) -> BorshWriter:
        self._parts.append(struct.pack("<B", value))
        return self

    def u16(self, value: int) -> BorshWriter:
        self._parts.append(struct.pack("<H", value))
        return self

    def u64(self, value: int) -> BorshWriter:
        self._parts.append(struct.pack("<Q", value))
        return self

    def i64(self, value: int) -> BorshWriter:
        self._parts.append(struct.pack("<q", value))
        return self

    def boolean(self, value: bool) -> BorshWriter:
        return self.u8(1 if value else 0)

    def fixed(self, value: bytes) -> BorshWriter:
        self._parts.append(bytes(value))
        return self

    def string(self, value: str) -> BorshWriter:
        raw = value.encode("utf-8")
        self._parts.append(struct.pack("<I", len(raw)))
        self._parts.append(raw)
        return self

    def build(self) -> bytes:
        return b"".join(self._parts)


@dataclass(frozen=True)
class DecodeResult(Generic[T]):
    """Tagged decode outcome: exactly one of value / error is set."""

    address: str
    value: T | None = None
    error: IncompatibleLayout | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _check_discriminator(data: bytes, expected: bytes, name: str) -> None:
    if data[:DISCRIMINATOR_LEN] != expected:
        raise IncompatibleLayout(f"not a {name} account (discriminator mismatch)")


def _decode_market(address: str, data: bytes) -> Market:
    _check_discriminator(data, MARKET_DISCRIMINATOR, "Market")
    r = BorshReader(data, DISCRIMINATOR_LEN)
    fields = {
        "address": address,
        "admin": r.pubkey(),
        "question": r.string(),
        "asset_symbol": r.string(),
        "feed_id": r.fixed(32),
        "target_price": r.i64(),
        "start_price": r.i64(),
        "end_price": r.i64(),
        "price_conf": r.u64(),
        "start_time": r.i64(),
        "end_time": r.i64(),
        "total_up_pool": r.u64(),
        "total_down_pool": r.u64(),
        "resolved": r.boolean(),
        "outcome": r.option_bool(),
        "vault_bump": r.u8(),
        "inverted": r.boolean(),
    }
    return Market(**fields)


def _decode_bet(address: str, data: bytes) -> Bet:
    _check_discriminator(data, BET_DISCRIMINATOR, "Bet")
    r = BorshReader(data, DISCRIMINATOR_LEN)
    return Bet(
        address=address,
        user=r.pubkey(),
        market=r.pubkey(),
        amount=r.u64(),
        direction=r.boolean(),
        claimed=r.boolean(),
    )


def decode_market(address: str, data: bytes) -> DecodeResult[Market]:
    try:
        return DecodeResult(address=address, value=_decode_market(address, data))
    except IncompatibleLayout as e:
        return DecodeResult(address=address, error=e)
    except ValidationError as e:
        return DecodeResult(address=address, error=IncompatibleLayout(f"market invariants violated: {e}"))


def decode_bet(address: str, data: bytes) -> DecodeResult[Bet]:
    try:
        return DecodeResult(address=address, value=_decode_bet(address, data))
    except IncompatibleLayout as e:
        return DecodeResult(address=address, error=e)
    except ValidationError as e:
        return DecodeResult(address=address, error=IncompatibleLayout(f"bet invariants violated: {e}"))


def encode_market(market: Market) -> bytes:
    """Serialize a Market in the ledger's account layout (fixtures, local tooling)."""
    w = BorshWriter(MARKET_DISCRIMINATOR)
    w.fixed(bytes(Pubkey.from_string(market.admin))).string(market.question).string(market.asset_symbol)
    w.fixed(market.feed_id).i64(market.target_price).i64(market.start_price).i64(market.end_price)
    w.u64(market.price_conf).i64(market.start_time).i64(market.end_time)
    w.u64(market.total_up_pool).u64(market.total_down_pool).boolean(market.resolved)
    if market.outcome is None:
        w.u8(0)
    else:
        w.u8(1).boolean(market.outcome)
    w.u8(market.vault_bump).boolean(market.inverted)
    return w.build()


def encode_bet(bet: Bet) -> bytes:
    w = BorshWriter(BET_DISCRIMINATOR)
    w.fixed(bytes(Pubkey.from_string(bet.user))).fixed(bytes(Pubkey.from_string(bet.market)))
    w.u64(bet.amount).boolean(bet.direction).boolean(bet.claimed)
    return w.build()


# --- instruction data ---

def initialize_market_data(
    question: str,
    asset: str,
    duration: int,
    feed_id: bytes,
    initial_price: int,
    price_conf: int,
    target_price: int,
    inverted: bool,
) -> bytes:
    if len(feed_id) != 32:
        raise ValueError("feed_id must be 32 bytes")
    if len(question.encode("utf-8")) > MAX_QUESTION_BYTES:
        raise ValueError(f"question exceeds {MAX_QUESTION_BYTES} bytes")
    if not asset or len(asset.encode("utf-8")) > MAX_ASSET_BYTES:
        raise ValueError(f"asset symbol must be 1..{MAX_ASSET_BYTES} bytes")
    if duration <= 0:
        raise ValueError("duration must be positive")
    w = BorshWriter(instruction_discriminator("initialize_market"))
    w.string(question).string(asset).i64(duration).fixed(feed_id)
    w.i64(initial_price).u64(price_conf).i64(target_price).boolean(inverted)
    return w.build()


def place_bet_data(direction: bool, amount: int) -> bytes:
    return BorshWriter(instruction_discriminator("place_bet")).boolean(direction).u64(amount).build()


def resolve_market_data(final_price: int) -> bytes:
    return BorshWriter(instruction_discriminator("resolve_market")).i64(final_price).build()


def claim_data() -> bytes:
    return instruction_discriminator("claim")
