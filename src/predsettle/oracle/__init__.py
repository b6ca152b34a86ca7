"""Price oracle access (Pyth Hermes) and fixed-point price conversion."""

from predsettle.feeds import bytes_to_feed_id, feed_id_to_bytes, normalize_feed_id, symbol_for_feed
from predsettle.oracle.hermes import HermesClient
from predsettle.oracle.pricing import (
    format_display_value,
    format_fixed,
    parse_fixed,
    to_settlement_confidence,
    to_settlement_price,
)

__all__ = [
    "HermesClient",
    "bytes_to_feed_id",
    "feed_id_to_bytes",
    "format_display_value",
    "format_fixed",
    "normalize_feed_id",
    "parse_fixed",
    "symbol_for_feed",
    "to_settlement_confidence",
    "to_settlement_price",
]
