"""Ledger program client - typed reads and signed writes."""

from __future__ import annotations

import base64
from typing import Any

import structlog
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import Transaction

from predsettle.errors import LedgerRejected, StartupError
from predsettle.ledger import layout
from predsettle.ledger.addresses import derive_vault_address
from predsettle.ledger.rpc import RpcClient
from predsettle.models import Bet, Market

log = structlog.get_logger(__name__)


def _pk(value: str | Pubkey) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


def _memcmp(offset: int, raw: bytes) -> dict[str, Any]:
    return {"memcmp": {"offset": offset, "bytes": base64.b64encode(raw).decode("ascii"), "encoding": "base64"}}


def build_initialize_market_ix(
    program_id: Pubkey,
    market: Pubkey,
    price_update: Pubkey,
    user: Pubkey,
    *,
    question: str,
    asset: str,
    duration: int,
    feed_id: bytes,
    initial_price: int,
    price_conf: int,
    target_price: int,
    inverted: bool,
) -> Instruction:
    vault, _ = derive_vault_address(market, program_id)
    data = layout.initialize_market_data(
        question, asset, duration, feed_id, initial_price, price_conf, target_price, inverted
    )
    return Instruction(
        program_id,
        data,
        [
            AccountMeta(market, is_signer=True, is_writable=True),
            AccountMeta(price_update, is_signer=False, is_writable=False),
            AccountMeta(vault, is_signer=False, is_writable=True),
            AccountMeta(user, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def build_place_bet_ix(
    program_id: Pubkey, bet: Pubkey, market: Pubkey, user: Pubkey, direction: bool, amount: int
) -> Instruction:
    vault, _ = derive_vault_address(market, program_id)
    return Instruction(
        program_id,
        layout.place_bet_data(direction, amount),
        [
            AccountMeta(bet, is_signer=True, is_writable=True),
            AccountMeta(market, is_signer=False, is_writable=True),
            AccountMeta(vault, is_signer=False, is_writable=True),
            AccountMeta(user, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def build_resolve_market_ix(
    program_id: Pubkey, market: Pubkey, price_update: Pubkey, vault: Pubkey, final_price: int
) -> Instruction:
    # vault rides along as a read-only trailing account
    return Instruction(
        program_id,
        layout.resolve_market_data(final_price),
        [
            AccountMeta(market, is_signer=False, is_writable=True),
            AccountMeta(price_update, is_signer=False, is_writable=False),
            AccountMeta(vault, is_signer=False, is_writable=False),
        ],
    )


def build_claim_ix(program_id: Pubkey, bet: Pubkey, market: Pubkey, user: Pubkey) -> Instruction:
    vault, _ = derive_vault_address(market, program_id)
    return Instruction(
        program_id,
        layout.claim_data(),
        [
            AccountMeta(bet, is_signer=False, is_writable=True),
            AccountMeta(market, is_signer=False, is_writable=True),
            AccountMeta(vault, is_signer=False, is_writable=True),
            AccountMeta(user, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


class LedgerClient:
    """Reads Market/Bet accounts and submits signed program instructions."""

    def __init__(
        self,
        rpc: RpcClient,
        program_id: str | Pubkey,
        signer: Keypair | None = None,
        confirm_timeout_sec: float = 30.0,
    ) -> None:
        self.rpc = rpc
        self.program_id = _pk(program_id)
        self.signer = signer
        self.confirm_timeout_sec = confirm_timeout_sec

    # --- reads ---

    async def health(self) -> str:
        """Node version; raises LedgerUnavailable when the endpoint is unreachable."""
        version = await self.rpc.get_version()
        if not isinstance(version, dict):
            return "unknown"
        return str(version.get("solana-core", "unknown"))

    async def list_markets(self) -> list[Market]:
        """All decodable markets. Accounts with an incompatible layout are skipped."""
        raw = await self.rpc.get_program_accounts(
            str(self.program_id), filters=[_memcmp(0, layout.MARKET_DISCRIMINATOR)]
        )
        markets = []
        for address, data in raw:
            result = layout.decode_market(address, data)
            if result.ok:
                markets.append(result.value)
            else:
                log.warning("skip_account", kind="market", address=address, error=str(result.error))
        return markets

    async def list_bets(self, owner: str | None = None) -> list[Bet]:
        filters = [_memcmp(0, layout.BET_DISCRIMINATOR)]
        if owner:
            filters.append(_memcmp(layout.BET_USER_OFFSET, bytes(_pk(owner))))
        raw = await self.rpc.get_program_accounts(str(self.program_id), filters=filters)
        bets = []
        for address, data in raw:
            result = layout.decode_bet(address, data)
            if result.ok:
                bets.append(result.value)
            else:
                log.warning("skip_account", kind="bet", address=address, error=str(result.error))
        return bets

    async def fetch_market(self, address: str) -> Market | None:
        data = await self.rpc.get_account_data(address)
        if data is None:
            return None
        result = layout.decode_market(address, data)
        if not result.ok:
            log.warning("skip_account", kind="market", address=address, error=str(result.error))
            return None
        return result.value

    async def fetch_bet(self, address: str) -> Bet | None:
        data = await self.rpc.get_account_data(address)
        if data is None:
            return None
        result = layout.decode_bet(address, data)
        if not result.ok:
            log.warning("skip_account", kind="bet", address=address, error=str(result.error))
            return None
        return result.value

    # --- writes ---

    def _require_signer(self) -> Keypair:
        if self.signer is None:
            raise StartupError("No signer configured; cannot submit transactions")
        return self.signer

    async def _submit(self, instructions: list[Instruction], extra_signers: list[Keypair] | None = None) -> str:
        payer = self._require_signer()
        blockhash = Hash.from_string(await self.rpc.get_latest_blockhash())
        message = Message.new_with_blockhash(instructions, payer.pubkey(), blockhash)
        tx = Transaction([payer, *(extra_signers or [])], message, blockhash)
        signature = await self.rpc.send_transaction(bytes(tx))
        if not isinstance(signature, str):
            raise LedgerRejected(f"unexpected sendTransaction result: {signature!r}")
        await self.rpc.confirm_transaction(signature, timeout=self.confirm_timeout_sec)
        return signature

    async def create_market(
        self,
        *,
        question: str,
        asset_symbol: str,
        duration_sec: int,
        feed_id: bytes,
        start_price: int,
        confidence: int,
        target_price: int,
        inverted: bool,
        price_update: str | Pubkey,
    ) -> str:
        """Create a market account; returns its address."""
        payer = self._require_signer()
        market_kp = Keypair()
        ix = build_initialize_market_ix(
            self.program_id,
            market_kp.pubkey(),
            _pk(price_update),
            payer.pubkey(),
            question=question,
            asset=asset_symbol,
            duration=duration_sec,
            feed_id=feed_id,
            initial_price=start_price,
            price_conf=confidence,
            target_price=target_price,
            inverted=inverted,
        )
        signature = await self._submit([ix], [market_kp])
        log.info("market_created", market=str(market_kp.pubkey()), signature=signature)
        return str(market_kp.pubkey())

    async def place_bet(self, market: str, direction: bool, amount: int) -> str:
        """Stake `amount` native units on one side; returns the bet address."""
        if amount <= 0:
            raise ValueError("bet amount must be positive")
        payer = self._require_signer()
        bet_kp = Keypair()
        ix = build_place_bet_ix(self.program_id, bet_kp.pubkey(), _pk(market), payer.pubkey(), direction, amount)
        signature = await self._submit([ix], [bet_kp])
        log.info("bet_placed", market=market, bet=str(bet_kp.pubkey()), signature=signature)
        return str(bet_kp.pubkey())

    async def resolve_market(
        self, market: str, final_price: int, price_update: str | Pubkey, vault: str | Pubkey
    ) -> str:
        ix = build_resolve_market_ix(self.program_id, _pk(market), _pk(price_update), _pk(vault), final_price)
        return await self._submit([ix])

    async def claim(self, bet: str, market: str) -> str:
        payer = self._require_signer()
        ix = build_claim_ix(self.program_id, _pk(bet), _pk(market), payer.pubkey())
        return await self._submit([ix])

    async def aclose(self) -> None:
        await self.rpc.aclose()
