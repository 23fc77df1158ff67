"""Token pricing normalizer.

Turns the vault reader's flat per-token field arrays, the funding-rate array,
per-token wallet balances and an external index-price map into one
`TokenInfo` per tracked token.

The flat arrays are decoded into named records first (`decode_vault_records`,
`decode_funding_records`); a short array is a `MalformedSnapshotError`, never
a silently missing field.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping, Sequence

from .config import FUNDING_RECORD_FIELDS, VAULT_RECORD_FIELDS, EngineConfig, IndexBlendMode, default_config
from .errors import MalformedSnapshotError
from .math import DEVIATION_MARGIN_BPS, ZERO_ADDRESS, div_trunc, expand_decimals, get_spread, mul_div
from .types import FundingRateRecord, InfoTokens, Token, TokenInfo, VaultTokenRecord

logger = logging.getLogger(__name__)


def _require_length(values: Sequence[int], *, count: int, stride: int, name: str) -> None:
    needed = count * stride
    if len(values) < needed:
        raise MalformedSnapshotError(
            f"{name}: need {needed} fields for {count} tokens (stride {stride}), got {len(values)}"
        )


def decode_vault_records(
    values: Sequence[int],
    count: int,
    stride: int = VAULT_RECORD_FIELDS,
) -> tuple[VaultTokenRecord, ...]:
    """Split the vault reader's flat array into *count* named records."""
    if stride < VAULT_RECORD_FIELDS:
        raise MalformedSnapshotError(f"vault record stride {stride} < {VAULT_RECORD_FIELDS} fields")
    _require_length(values, count=count, stride=stride, name="vault_token_info")
    out = []
    for i in range(count):
        base = i * stride
        out.append(VaultTokenRecord(*(int(v) for v in values[base : base + VAULT_RECORD_FIELDS])))
    return tuple(out)


def decode_funding_records(
    values: Sequence[int],
    count: int,
    stride: int = FUNDING_RECORD_FIELDS,
) -> tuple[FundingRateRecord, ...]:
    """Split the funding-rate array into *count* (rate, cumulative rate) records."""
    if stride < FUNDING_RECORD_FIELDS:
        raise MalformedSnapshotError(f"funding record stride {stride} < {FUNDING_RECORD_FIELDS} fields")
    _require_length(values, count=count, stride=stride, name="funding_rate_info")
    return tuple(
        FundingRateRecord(int(values[i * stride]), int(values[i * stride + 1])) for i in range(count)
    )


# -- Index-price blending ----------------------------------------------------

def blend_index_price(
    min_price: int,
    max_price: int,
    min_primary_price: int,
    index_price: int,
    config: EngineConfig,
) -> tuple[int, int]:
    """Return ``(min_price, max_price)`` after folding in a non-zero index price.

    When the current spread exceeds the deviation threshold the feed is taken
    to diverge from the primary price and only one bound moves. Otherwise both
    bounds are centered on the index price.
    """
    divisor = config.basis_points_divisor
    spread = max_price - min_price

    if config.index_blend_mode is IndexBlendMode.RAW:
        spread_bps: int | None = spread
    else:
        spread_bps = mul_div(spread, divisor, div_trunc(max_price + min_price, 2))
        if spread_bps is None:
            logger.debug("zero midpoint price, index price %s not blended", index_price)
            return min_price, max_price

    if spread_bps > config.max_price_deviation_basis_points - DEVIATION_MARGIN_BPS:
        if index_price > min_primary_price:
            return min_price, index_price
        return index_price, max_price

    if config.index_blend_mode is IndexBlendMode.RAW:
        return index_price, index_price

    half_spread_bps = div_trunc(spread_bps, 2)
    return (
        div_trunc(index_price * (divisor - half_spread_bps), divisor),
        div_trunc(index_price * (divisor + half_spread_bps), divisor),
    )


def _lookup_index_price(token: Token, index_prices: Mapping[str, int] | None, native_token_address: str) -> int | None:
    if not index_prices:
        return None
    lookup = native_token_address if token.is_native else token.address
    price = index_prices.get(lookup)
    if not price:
        logger.debug("no index price for %s (%s)", token.symbol, lookup)
        return None
    return int(price)


def apply_index_price(
    info: TokenInfo,
    index_prices: Mapping[str, int] | None,
    native_token_address: str | None = None,
    config: EngineConfig | None = None,
) -> TokenInfo:
    """Return *info* with its working min/max prices blended with the index feed.

    Tokens without an index price (absent or zero) or without vault prices are
    returned unchanged. Contract prices are never touched.
    """
    cfg = config or default_config()
    native = native_token_address or cfg.native_token_address
    price = _lookup_index_price(info.token, index_prices, native)
    if price is None or info.min_price is None or info.max_price is None:
        return info
    min_price, max_price = blend_index_price(
        info.min_price, info.max_price, info.min_primary_price or 0, price, cfg
    )
    return replace(info, min_price=min_price, max_price=max_price)


# -- Vault-derived market state ----------------------------------------------

def _vault_fields(token: Token, rec: VaultTokenRecord, config: EngineConfig) -> dict:
    """Market-state fields derived from one vault record, before index blending."""
    unit = expand_decimals(1, token.decimals)
    available_amount = rec.pool_amount - rec.reserved_amount

    max_available_short = 0
    has_max_available_short = False
    if rec.max_global_short_size > 0:
        has_max_available_short = True
        if rec.max_global_short_size > rec.global_short_size:
            max_available_short = rec.max_global_short_size - rec.global_short_size

    max_usdg_amount = rec.max_usdg_amount or config.default_max_usdg_amount

    # Stable tokens back the whole pool; others only the unreserved part.
    valued_amount = rec.pool_amount if token.is_stable else available_amount
    available_usd = div_trunc(valued_amount * rec.min_price, unit)

    max_available_long = 0
    has_max_available_long = False
    if rec.max_global_long_size > 0:
        has_max_available_long = True
        if rec.max_global_long_size > rec.guaranteed_usd:
            remaining_long_size = rec.max_global_long_size - rec.guaranteed_usd
            max_available_long = max(0, min(remaining_long_size, available_usd))
    else:
        max_available_long = available_usd

    managed_usd = available_usd + rec.guaranteed_usd
    if 0 < rec.max_global_long_size < managed_usd:
        max_long_capacity = rec.max_global_long_size
    else:
        max_long_capacity = managed_usd

    return dict(
        pool_amount=rec.pool_amount,
        reserved_amount=rec.reserved_amount,
        available_amount=available_amount,
        usdg_amount=rec.usdg_amount,
        redemption_amount=rec.redemption_amount,
        weight=rec.weight,
        buffer_amount=rec.buffer_amount,
        max_usdg_amount=max_usdg_amount,
        global_short_size=rec.global_short_size,
        max_global_short_size=rec.max_global_short_size,
        max_available_short=max_available_short,
        has_max_available_short=has_max_available_short,
        guaranteed_usd=rec.guaranteed_usd,
        max_global_long_size=rec.max_global_long_size,
        max_available_long=max_available_long,
        has_max_available_long=has_max_available_long,
        max_long_capacity=max_long_capacity,
        min_price=rec.min_price,
        max_price=rec.max_price,
        contract_min_price=rec.min_price,
        contract_max_price=rec.max_price,
        max_primary_price=rec.max_primary_price,
        min_primary_price=rec.min_primary_price,
        spread=get_spread(rec.min_price, rec.max_price, config.precision),
        available_usd=available_usd,
        managed_usd=managed_usd,
        managed_amount=mul_div(managed_usd, unit, rec.min_price),
    )


def normalize_tokens(
    tokens: Sequence[Token],
    whitelisted_tokens: Sequence[Token],
    vault_token_info: Sequence[int] | None,
    funding_rate_info: Sequence[int] | None,
    index_prices: Mapping[str, int] | None,
    token_balances: Sequence[int] | None = None,
    native_token_address: str | None = None,
    config: EngineConfig | None = None,
) -> dict[str, TokenInfo]:
    """Build the address -> `TokenInfo` map for one computation cycle.

    *tokens* get their wallet balance (aligned by index) and the USDG price
    override; every token in *whitelisted_tokens* is then rebuilt from its
    vault and funding records, keeping any balance attached in the first pass.
    """
    cfg = config or default_config()
    native = native_token_address or cfg.native_token_address

    if token_balances is not None and len(token_balances) < len(tokens):
        raise MalformedSnapshotError(
            f"token_balances: need {len(tokens)} entries, got {len(token_balances)}"
        )

    info_tokens: dict[str, TokenInfo] = {}
    for i, token in enumerate(tokens):
        balance = int(token_balances[i]) if token_balances is not None else None
        if token.address == cfg.usdg_address:
            info = TokenInfo(token=token, balance=balance, min_price=cfg.usd_unit, max_price=cfg.usd_unit)
        else:
            info = TokenInfo(token=token, balance=balance)
        info_tokens[token.address] = info

    count = len(whitelisted_tokens)
    vault_records = (
        decode_vault_records(vault_token_info, count, cfg.vault_record_stride)
        if vault_token_info is not None
        else None
    )
    funding_records = (
        decode_funding_records(funding_rate_info, count, cfg.funding_record_stride)
        if funding_rate_info is not None
        else None
    )

    for i, token in enumerate(whitelisted_tokens):
        kwargs: dict = {}
        if vault_records is not None:
            kwargs.update(_vault_fields(token, vault_records[i], cfg))
        if funding_records is not None:
            kwargs["funding_rate"] = funding_records[i].funding_rate
            kwargs["cumulative_funding_rate"] = funding_records[i].cumulative_funding_rate

        existing = info_tokens.get(token.address)
        if existing is not None:
            kwargs["balance"] = existing.balance
        info = TokenInfo(token=token, **kwargs)
        if vault_records is not None:
            info = apply_index_price(info, index_prices, native, cfg)
        info_tokens[token.address] = info

    return info_tokens


def get_token_info(
    info_tokens: InfoTokens,
    token_address: str,
    replace_native: bool = False,
    native_token_address: str | None = None,
) -> TokenInfo | None:
    """Look up a token, mapping the wrapped-native address to the native entry."""
    if replace_native and token_address == native_token_address:
        return info_tokens.get(ZERO_ADDRESS)
    return info_tokens.get(token_address)
