"""Binary outcome evaluation on integer fixed-point prices."""

from __future__ import annotations


def evaluate(start_price: int, target_price: int, final_price: int, inverted: bool) -> bool:
    """Outcome of a market at final_price.

    Standard markets win at or above target (final >= target); inverted
    markets win strictly below it (final < target). A final price equal to
    the target is YES for standard and NO for inverted. start_price does not
    affect the outcome.
    """
    for name, value in (("start_price", start_price), ("target_price", target_price), ("final_price", final_price)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{name} must be an integer fixed-point value, got {type(value).__name__}")
    if inverted:
        return final_price < target_price
    return final_price >= target_price
