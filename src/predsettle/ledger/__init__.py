"""Ledger program access: address derivation, account codec, RPC client."""

from predsettle.ledger.addresses import derive_oracle_update_address, derive_vault_address
from predsettle.ledger.client import LedgerClient
from predsettle.ledger.rpc import RpcClient
from predsettle.ledger.wallet import load_keypair

__all__ = [
    "LedgerClient",
    "RpcClient",
    "derive_oracle_update_address",
    "derive_vault_address",
    "load_keypair",
]
