"""
Human-readable rendering of fixed-point results.

The valuation core only produces scaled integers; this module is the one place
that turns them into strings for the reporting layer. Amounts are truncated,
never rounded, to the requested number of decimals.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from ..core.valuation import Position
from ..core.valuation.math import USD_DECIMALS

DEFAULT_DISPLAY_DECIMALS = 4
LEVERAGE_DECIMALS = 4
PERCENTAGE_DECIMALS = 2


def _with_commas(whole: str) -> str:
    return f"{int(whole):,}"


def format_amount(
    amount: Optional[int],
    token_decimals: int,
    display_decimals: int = DEFAULT_DISPLAY_DECIMALS,
    use_commas: bool = False,
    default: str = "...",
) -> str:
    """Render ``amount / 10**token_decimals`` with exactly *display_decimals* places."""
    if amount is None:
        return default
    sign = "-" if amount < 0 else ""
    magnitude = -amount if amount < 0 else amount
    unit = 10**token_decimals
    whole = str(magnitude // unit)
    frac = str(magnitude % unit).zfill(token_decimals) if token_decimals > 0 else ""
    if use_commas:
        whole = _with_commas(whole)
    if display_decimals == 0:
        return sign + whole
    frac = frac[:display_decimals].ljust(display_decimals, "0")
    return f"{sign}{whole}.{frac}"


def delta_strings(delta: int, delta_percentage: int, has_profit: bool) -> Tuple[str, str]:
    """(``"+$1,234.56"``, ``"+12.34%"``); no sign when the delta is zero."""
    prefix = ("+" if has_profit else "-") if delta > 0 else ""
    delta_str = f"{prefix}${format_amount(delta, USD_DECIMALS, 2, True)}"
    percentage_str = f"{prefix}{format_amount(delta_percentage, PERCENTAGE_DECIMALS, 2)}%"
    return delta_str, percentage_str


def leverage_str(leverage: Optional[int]) -> Optional[str]:
    """``"10.00x"``; negative leverage is past what can be displayed."""
    if not leverage:
        return None
    if leverage < 0:
        return "> 100x"
    return f"{format_amount(leverage, LEVERAGE_DECIMALS, 2, True)}x"


def position_display(position: Position, show_pnl_after_fees: bool = False) -> Dict[str, Optional[str]]:
    out: Dict[str, Optional[str]] = {"leverageStr": leverage_str(position.leverage)}
    if position.delta_percentage is None or position.delta_percentage_after_fees is None:
        return out

    delta_str, percentage_str = delta_strings(
        position.pending_delta, position.delta_percentage, position.has_profit
    )
    after_str, after_percentage_str = delta_strings(
        position.pending_delta_after_fees or 0,
        position.delta_percentage_after_fees,
        bool(position.has_profit_after_fees),
    )
    out.update(
        deltaBeforeFeesStr=delta_str,
        deltaAfterFeesStr=after_str,
        deltaAfterFeesPercentageStr=after_percentage_str,
    )
    if show_pnl_after_fees:
        out.update(deltaStr=after_str, deltaPercentageStr=after_percentage_str)
    else:
        out.update(deltaStr=delta_str, deltaPercentageStr=percentage_str)
    return out
