"""Position valuation engine.

``derive_positions(positions, account, ...)`` is the single entry point. For
each `RawPosition`, in order, it computes:

1. identity keys,
2. funding fee and collateral after funding,
3. closing / position / total fees,
4. price delta, profit flag and delta percentage (collateral > 0 only),
5. the fee-adjusted delta and the caller-selected displayed delta,
6. net value and leverage,

and builds one frozen `Position`. Later steps read the outputs of earlier ones,
so the order above is load-bearing.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Sequence

from .config import EngineConfig, default_config
from .errors import InvalidPositionStateError
from .keys import position_key, position_key_with_adapter
from .math import abs_val, apply_bps, div_trunc, is_set, mul_div
from .types import DerivationResult, LeverageRequest, Position, RawPosition

logger = logging.getLogger(__name__)


def get_funding_fee(
    size: int,
    entry_funding_rate: int | None,
    cumulative_funding_rate: int | None,
    config: EngineConfig | None = None,
) -> int | None:
    """``size * (cumulative - entry) / funding_rate_precision``.

    None unless both rates are known and non-zero.
    """
    if not (is_set(entry_funding_rate) and is_set(cumulative_funding_rate)):
        return None
    cfg = config or default_config()
    return mul_div(size, cumulative_funding_rate - entry_funding_rate, cfg.funding_rate_precision)


# -- Leverage ----------------------------------------------------------------

def _leverage(req: LeverageRequest, cfg: EngineConfig) -> tuple[int | None, str | None]:
    """Leverage in basis points, or ``(None, reason)`` when undefined."""
    if not req.size and not req.size_delta:
        return None, "no_size"
    if not req.collateral and not req.collateral_delta:
        return None, "no_collateral"

    next_size = req.size
    if req.size_delta:
        if req.increase_size:
            next_size = req.size + req.size_delta
        else:
            if req.size_delta >= req.size:
                return None, "size_decrease_exceeds_size"
            next_size = req.size - req.size_delta

    remaining_collateral = req.collateral
    if req.collateral_delta:
        if req.increase_collateral:
            remaining_collateral = req.collateral + req.collateral_delta
        else:
            if req.collateral_delta >= req.collateral:
                return None, "collateral_decrease_exceeds_collateral"
            remaining_collateral = req.collateral - req.collateral_delta

    if req.delta and req.include_delta:
        if req.has_profit:
            remaining_collateral += req.delta
        else:
            if req.delta > remaining_collateral:
                return None, "loss_exceeds_collateral"
            remaining_collateral -= req.delta

    if remaining_collateral == 0:
        return None, "zero_collateral"

    divisor = cfg.basis_points_divisor
    if req.size_delta:
        remaining_collateral = div_trunc(
            remaining_collateral * (divisor - cfg.margin_fee_basis_points), divisor
        )

    funding_fee = get_funding_fee(req.size, req.entry_funding_rate, req.cumulative_funding_rate, cfg)
    if funding_fee is not None:
        remaining_collateral -= funding_fee

    leverage = mul_div(next_size, divisor, remaining_collateral)
    if leverage is None:
        return None, "zero_remaining_collateral"
    return leverage, None


def get_leverage(req: LeverageRequest, config: EngineConfig | None = None) -> int | None:
    """Leverage in basis points (10_000 == 1x), or None when undefined.

    A negative result means funding has eaten past the collateral; callers
    render it as beyond the maximum displayable leverage.
    """
    leverage, reason = _leverage(req, config or default_config())
    if reason is not None:
        logger.debug("leverage undefined: %s", reason)
    return leverage


def get_leverage_or_raise(req: LeverageRequest, config: EngineConfig | None = None) -> int:
    """Like ``get_leverage()`` but raises instead of returning None.

    Raises:
        InvalidPositionStateError: The request leaves leverage undefined.
    """
    leverage, reason = _leverage(req, config or default_config())
    if leverage is None:
        raise InvalidPositionStateError(reason or "undefined")
    return leverage


# -- Per-position derivation -------------------------------------------------

def _fees_after_delta(has_profit: bool, pending_delta: int, total_fees: int) -> tuple[bool, int]:
    """(has_profit_after_fees, pending_delta_after_fees)."""
    if has_profit:
        if pending_delta > total_fees:
            return True, pending_delta - total_fees
        return False, total_fees - pending_delta
    return False, pending_delta + total_fees


def derive_position(
    raw: RawPosition,
    account: str,
    show_pnl_after_fees: bool = False,
    include_delta: bool = False,
    config: EngineConfig | None = None,
) -> Position:
    """Compute every derived field of *raw* and return the frozen `Position`."""
    cfg = config or default_config()
    divisor = cfg.basis_points_divisor
    native = cfg.native_token_address
    collateral_address = raw.collateral_token.address
    index_address = raw.index_token.address

    key = position_key(account, collateral_address, index_address, raw.is_long, native)
    adapter_key = position_key_with_adapter(
        account, collateral_address, index_address, raw.adapter, raw.is_long, native
    )

    funding_fee = get_funding_fee(raw.size, raw.entry_funding_rate, raw.cumulative_funding_rate, cfg) or 0
    collateral_after_fee = raw.collateral - funding_fee

    closing_fee = apply_bps(raw.size, cfg.margin_fee_basis_points, divisor)
    # Opening plus closing fee.
    position_fee = 2 * closing_fee
    total_fees = position_fee + funding_fee

    pending_delta = raw.delta
    delta = raw.delta
    has_profit = raw.has_profit

    has_low_collateral = None
    delta_percentage = None
    pending_delta_after_fees = None
    has_profit_after_fees = None
    delta_percentage_after_fees = None
    net_value = None
    display_delta = None
    display_delta_percentage = None
    display_has_profit = None

    if raw.collateral > 0:
        if collateral_after_fee < 0:
            has_low_collateral = True
        elif collateral_after_fee > 0:
            has_low_collateral = div_trunc(raw.size, collateral_after_fee) > cfg.low_collateral_size_ratio

        if is_set(raw.average_price) and is_set(raw.mark_price):
            price_delta = abs_val(raw.average_price - raw.mark_price)
            pending_delta = div_trunc(raw.size * price_delta, raw.average_price)
            delta = pending_delta
            if raw.is_long:
                has_profit = raw.mark_price >= raw.average_price
            else:
                has_profit = raw.mark_price <= raw.average_price

        delta_percentage = mul_div(pending_delta, divisor, raw.collateral)

        has_profit_after_fees, pending_delta_after_fees = _fees_after_delta(
            has_profit, pending_delta, total_fees
        )
        # Percentage is taken over collateral plus the closing fee.
        delta_percentage_after_fees = mul_div(
            pending_delta_after_fees, divisor, raw.collateral + closing_fee
        )

        if show_pnl_after_fees:
            display_delta = pending_delta_after_fees
            display_delta_percentage = delta_percentage_after_fees
            display_has_profit = has_profit_after_fees
        else:
            display_delta = pending_delta
            display_delta_percentage = delta_percentage
            display_has_profit = has_profit

        net_value = raw.collateral + pending_delta if has_profit else raw.collateral - pending_delta
        if funding_fee:
            net_value -= funding_fee + closing_fee

    leverage = get_leverage(
        LeverageRequest(
            size=raw.size,
            collateral=raw.collateral,
            has_profit=has_profit,
            delta=delta,
            include_delta=include_delta,
            entry_funding_rate=raw.entry_funding_rate,
            cumulative_funding_rate=raw.cumulative_funding_rate,
        ),
        cfg,
    )

    return Position(
        raw=raw,
        key=key,
        adapter_key=adapter_key,
        funding_fee=funding_fee,
        collateral_after_fee=collateral_after_fee,
        closing_fee=closing_fee,
        position_fee=position_fee,
        total_fees=total_fees,
        delta=delta,
        pending_delta=pending_delta,
        has_profit=has_profit,
        has_low_collateral=has_low_collateral,
        delta_percentage=delta_percentage,
        pending_delta_after_fees=pending_delta_after_fees,
        has_profit_after_fees=has_profit_after_fees,
        delta_percentage_after_fees=delta_percentage_after_fees,
        net_value=net_value,
        leverage=leverage,
        display_delta=display_delta,
        display_delta_percentage=display_delta_percentage,
        display_has_profit=display_has_profit,
    )


def derive_positions(
    positions: Sequence[RawPosition],
    account: str,
    show_pnl_after_fees: bool = False,
    include_delta: bool = False,
    config: EngineConfig | None = None,
) -> DerivationResult:
    """Derive every position, preserving input order.

    The lookup map is keyed by adapter-qualified key; a repeated key keeps the
    last position seen.
    """
    cfg = config or default_config()
    derived: list[Position] = []
    positions_map: dict[str, Position] = {}
    for raw in positions:
        position = derive_position(raw, account, show_pnl_after_fees, include_delta, cfg)
        if position.adapter_key in positions_map:
            logger.debug("duplicate adapter key %s, keeping the later position", position.adapter_key)
        derived.append(position)
        positions_map[position.adapter_key] = position
    return DerivationResult(positions=tuple(derived), positions_map=MappingProxyType(positions_map))
