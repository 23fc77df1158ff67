"""Pure fixed-point arithmetic for the valuation engine.

Every function is stateless and operates on plain Python ints.

Division truncates toward zero (``div_trunc``), which is what the vault
contract and big-integer client code do. Python's ``//`` floors toward -inf
and would disagree on negative intermediates (negative available amounts,
under-water collateral), so it is never used on signed values here.
"""

from __future__ import annotations

# Protocol constants (deployed platform values)
USD_DECIMALS: int = 30
BASIS_POINTS_DIVISOR: int = 10_000
PRECISION: int = 10**30
FUNDING_RATE_PRECISION: int = 1_000_000
MARGIN_FEE_BASIS_POINTS: int = 10
MAX_PRICE_DEVIATION_BASIS_POINTS: int = 750
DEFAULT_MAX_USDG_AMOUNT: int = 200_000_000 * 10**18

# Divergent-feed threshold is this far below the max allowed deviation.
DEVIATION_MARGIN_BPS: int = 50

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"


def abs_val(x: int) -> int:
    """Absolute value of *x*."""
    return x if x >= 0 else -x


def expand_decimals(n: int, decimals: int) -> int:
    """``n * 10**decimals``."""
    return n * 10**decimals


def div_trunc(a: int, b: int) -> int:
    """Integer division truncating toward zero. *b* must be non-zero."""
    q = abs_val(a) // abs_val(b)
    return q if (a >= 0) == (b >= 0) else -q


def mul_div(a: int, b: int, d: int) -> int | None:
    """``a * b / d`` truncated toward zero, or None when *d* is zero."""
    if d == 0:
        return None
    return div_trunc(a * b, d)


def is_set(value: int | None) -> bool:
    """True for a present, non-zero ledger value."""
    return value is not None and value != 0


def get_spread(min_price: int, max_price: int, precision: int = PRECISION) -> int | None:
    """Relative spread ``(max - min) * precision / midpoint``.

    None when the midpoint is zero.
    """
    midpoint = div_trunc(max_price + min_price, 2)
    return mul_div(max_price - min_price, precision, midpoint)


def apply_bps(amount: int, bps: int, divisor: int = BASIS_POINTS_DIVISOR) -> int:
    """``amount * bps / divisor`` truncated toward zero."""
    return div_trunc(amount * bps, divisor)
