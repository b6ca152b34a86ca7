"""Construct clients from Settings for CLI commands."""

from __future__ import annotations

from predsettle.config import Settings
from predsettle.ledger import LedgerClient, RpcClient, load_keypair
from predsettle.oracle import HermesClient


def build_ledger(settings: Settings, with_signer: bool = False) -> LedgerClient:
    """LedgerClient for the configured endpoint. with_signer loads the keypair (StartupError if missing)."""
    signer = load_keypair(settings.wallet_path) if with_signer else None
    rpc = RpcClient(settings.rpc_url, timeout=settings.ledger_timeout_sec, commitment=settings.commitment)
    return LedgerClient(
        rpc,
        settings.program_id,
        signer=signer,
        confirm_timeout_sec=settings.confirm_timeout_sec,
    )


def build_oracle(settings: Settings) -> HermesClient:
    return HermesClient(settings.hermes_url, timeout=settings.oracle_timeout_sec)
