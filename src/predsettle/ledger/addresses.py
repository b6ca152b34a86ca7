"""Deterministic auxiliary addresses (program-derived, no RPC round-trip).

Seeds must match what the ledger and oracle-receiver programs use when they
validate a transaction; a mismatch is rejected on-chain.
"""

from __future__ import annotations

from solders.pubkey import Pubkey

from predsettle.feeds import feed_id_to_bytes

VAULT_SEED = b"vault"
PRICE_UPDATE_SEED = b"PriceUpdate"


def _pubkey(value: str | Pubkey) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


def derive_vault_address(market: str | Pubkey, program_id: str | Pubkey) -> tuple[Pubkey, int]:
    """Vault PDA holding a market's stakes: seeds [b"vault", market]."""
    return Pubkey.find_program_address([VAULT_SEED, bytes(_pubkey(market))], _pubkey(program_id))


def derive_oracle_update_address(
    feed_id: str | bytes,
    receiver_program_id: str | Pubkey,
    shard_id: int = 0,
) -> tuple[Pubkey, int]:
    """Price-update account for a feed: seeds [b"PriceUpdate", shard u16 LE, feed_id]."""
    raw = feed_id if isinstance(feed_id, bytes) else feed_id_to_bytes(feed_id)
    if len(raw) != 32:
        raise ValueError(f"feed id must be 32 bytes, got {len(raw)}")
    shard = shard_id.to_bytes(2, "little")
    return Pubkey.find_program_address(
        [PRICE_UPDATE_SEED, shard, raw], _pubkey(receiver_program_id)
    )
