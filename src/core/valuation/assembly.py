"""Position assembly: ledger records -> `RawPosition`.

The position factory reports each position as a nine-field tuple plus the
adapter's (collateral token, index token, side). Assembly resolves both tokens
against the normalized token map, picks the mark price for the side and
drops repeated position ids. Each position also gets its keccak contract key.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .config import EngineConfig, default_config
from .errors import MalformedSnapshotError
from .keys import position_contract_key
from .tokens import get_token_info
from .types import InfoTokens, LedgerPosition, RawPosition, TokenInfo

logger = logging.getLogger(__name__)

# size, collateral, averagePrice, entryFundingRate, hasRealisedProfit,
# realisedPnl, lastIncreasedTime, hasProfit, delta
POSITION_RECORD_FIELDS: int = 9


def decode_position_fields(
    position_id: str,
    adapter: str,
    collateral_token: str,
    index_token: str,
    is_long: bool,
    fields: Sequence[int],
) -> LedgerPosition:
    """Unpack the factory's nine position fields into a `LedgerPosition`."""
    if len(fields) < POSITION_RECORD_FIELDS:
        raise MalformedSnapshotError(
            f"position {position_id}: need {POSITION_RECORD_FIELDS} fields, got {len(fields)}"
        )
    (
        size,
        collateral,
        average_price,
        entry_funding_rate,
        has_realised_profit,
        realised_pnl,
        last_increased_time,
        has_profit,
        delta,
    ) = fields[:POSITION_RECORD_FIELDS]
    return LedgerPosition(
        position_id=position_id,
        adapter=adapter,
        collateral_token=collateral_token,
        index_token=index_token,
        is_long=bool(is_long),
        size=int(size),
        collateral=int(collateral),
        average_price=int(average_price),
        entry_funding_rate=int(entry_funding_rate),
        has_realised_profit=bool(has_realised_profit),
        realised_pnl=int(realised_pnl),
        last_increased_time=int(last_increased_time),
        has_profit=bool(has_profit),
        delta=int(delta),
    )


def select_mark_price(index_token: TokenInfo, is_long: bool) -> int | None:
    """Longs are marked at the index token's min price, shorts at its max.

    Note the pairing: long -> min, short -> max. Each side is marked at the
    price the vault would close it at, never the favorable one.
    """
    return index_token.min_price if is_long else index_token.max_price


def _resolve(info_tokens: InfoTokens, address: str, native: str, position_id: str) -> TokenInfo:
    info = get_token_info(info_tokens, address, replace_native=True, native_token_address=native)
    if info is None:
        raise MalformedSnapshotError(f"position {position_id}: unknown token {address}")
    return info


def assemble_positions(
    records: Sequence[LedgerPosition],
    info_tokens: InfoTokens,
    account: str,
    config: EngineConfig | None = None,
) -> list[RawPosition]:
    """Build `RawPosition`s in record order, keeping the first of any repeated id."""
    cfg = config or default_config()
    native = cfg.native_token_address
    seen: set[str] = set()
    out: list[RawPosition] = []
    for rec in records:
        if rec.position_id in seen:
            logger.debug("skipping repeated position id %s", rec.position_id)
            continue
        seen.add(rec.position_id)

        collateral_token = _resolve(info_tokens, rec.collateral_token, native, rec.position_id)
        index_token = _resolve(info_tokens, rec.index_token, native, rec.position_id)

        out.append(
            RawPosition(
                account=account,
                adapter=rec.adapter,
                collateral_token=collateral_token,
                index_token=index_token,
                is_long=rec.is_long,
                size=rec.size,
                collateral=rec.collateral,
                average_price=rec.average_price,
                entry_funding_rate=rec.entry_funding_rate,
                cumulative_funding_rate=collateral_token.cumulative_funding_rate,
                realised_pnl=rec.realised_pnl,
                has_realised_profit=rec.has_realised_profit,
                last_increased_time=rec.last_increased_time,
                has_profit=rec.has_profit,
                delta=rec.delta,
                mark_price=select_mark_price(index_token, rec.is_long),
                position_id=rec.position_id,
                contract_key=position_contract_key(
                    rec.adapter, rec.collateral_token, rec.index_token, rec.is_long
                ),
            )
        )
    return out
