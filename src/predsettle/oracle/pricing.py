"""Fixed-point price conversion.

Two paths, never mixed: settlement conversion is integer-only and exact;
display formatting uses Decimal rounding for humans.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from predsettle.errors import PriceScaleError
from predsettle.models.market import PRICE_DECIMALS
from predsettle.models.price import PriceQuote

SETTLEMENT_EXPONENT = -PRICE_DECIMALS


def _rescale(value: int, exponent: int, scale_exponent: int) -> int:
    shift = exponent - scale_exponent
    if shift >= 0:
        return value * 10**shift
    divisor = 10**-shift
    if value % divisor:
        raise PriceScaleError(f"{value}e{exponent} not representable at 1e{scale_exponent}")
    return value // divisor


def to_settlement_price(quote: PriceQuote, scale_exponent: int = SETTLEMENT_EXPONENT) -> int:
    """Express quote.price at 10**scale_exponent using integer arithmetic only.

    Raises PriceScaleError when the quote carries more precision than the
    target scale can hold exactly.
    """
    return _rescale(quote.price, quote.exponent, scale_exponent)


def to_settlement_confidence(quote: PriceQuote, scale_exponent: int = SETTLEMENT_EXPONENT) -> int:
    return _rescale(quote.confidence, quote.exponent, scale_exponent)


def parse_fixed(text: str, decimals: int) -> int:
    """Exact fixed-point integer for a decimal string, e.g. ("90000", 8) -> 9_000_000_000_000.

    Raises ValueError for non-numbers and for more fractional digits than `decimals`.
    """
    try:
        amount = Decimal(text.replace(",", "").strip())
    except InvalidOperation as e:
        raise ValueError(f"not a decimal number: {text!r}") from e
    if not amount.is_finite():
        raise ValueError(f"not a finite number: {text!r}")
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"{text} has more than {decimals} decimal places")
    return int(scaled)


def format_display_value(quote: PriceQuote) -> str:
    """price * 10**exponent rounded half-up to 2 decimals. Display only."""
    value = Decimal(quote.price).scaleb(quote.exponent)
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_fixed(value: int, decimals: int, places: int = 2) -> str:
    """Render a fixed-point integer (e.g. 1e8 price, 1e9 stake) for display."""
    amount = Decimal(value).scaleb(-decimals)
    return str(amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))
