"""Feed identifier helpers - 0x hex <-> 32 raw bytes, symbol lookup."""

from __future__ import annotations

FEED_ID_LEN = 32


def feed_id_to_bytes(feed_id: str) -> bytes:
    """Convert a hex feed id (0x prefix optional) to exactly 32 bytes."""
    hex_str = feed_id[2:] if feed_id.startswith(("0x", "0X")) else feed_id
    try:
        raw = bytes.fromhex(hex_str)
    except ValueError as e:
        raise ValueError(f"feed id is not valid hex: {feed_id!r}") from e
    if len(raw) != FEED_ID_LEN:
        raise ValueError(f"feed id must be {FEED_ID_LEN} bytes, got {len(raw)}")
    return raw


def bytes_to_feed_id(raw: bytes) -> str:
    """Convert 32 feed id bytes back to canonical 0x-prefixed lowercase hex."""
    if len(raw) != FEED_ID_LEN:
        raise ValueError(f"feed id must be {FEED_ID_LEN} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def normalize_feed_id(feed_id: str) -> str:
    """Canonicalize a feed id for comparison and lookup."""
    return bytes_to_feed_id(feed_id_to_bytes(feed_id))


def symbol_for_feed(feed_table: dict[str, str], feed_id: str) -> str:
    """Reverse lookup: asset symbol for a feed id, 'Unknown' when not configured."""
    wanted = normalize_feed_id(feed_id)
    for symbol, fid in feed_table.items():
        if normalize_feed_id(fid) == wanted:
            return symbol
    return "Unknown"
