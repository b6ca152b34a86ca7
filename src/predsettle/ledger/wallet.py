"""Signer loading from a keypair file (JSON array of 64 secret-key bytes)."""

from __future__ import annotations

import json
from pathlib import Path

from solders.keypair import Keypair

from predsettle.errors import StartupError


def load_keypair(path: str | Path) -> Keypair:
    p = Path(path).expanduser()
    if not p.exists():
        raise StartupError(f"Signer keypair not found: {p}")
    try:
        raw = json.loads(p.read_text())
        return Keypair.from_bytes(bytes(raw))
    except (OSError, ValueError, TypeError) as e:
        raise StartupError(f"Signer keypair at {p} is unreadable: {e}") from e
