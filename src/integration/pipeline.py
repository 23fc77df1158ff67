"""
Valuation pipeline over a fetched snapshot.

Functional core / imperative shell: the caller fetches (or loads) a
`MarketSnapshot`; this module runs the pure stages in order

    normalize_tokens -> assemble_positions -> derive_positions

and returns every intermediate the reporting layer needs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..core.valuation import (
    DerivationResult,
    EngineConfig,
    TokenInfo,
    assemble_positions,
    default_config,
    derive_positions,
    normalize_tokens,
)
from .display import position_display
from .snapshot import MarketSnapshot, encode_position, encode_token_info

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    info_tokens: Mapping[str, TokenInfo]
    derivation: DerivationResult
    account: str
    show_pnl_after_fees: bool = False


def build_info_tokens(snapshot: MarketSnapshot, config: Optional[EngineConfig] = None) -> Dict[str, TokenInfo]:
    cfg = config or default_config()
    return normalize_tokens(
        snapshot.tokens,
        snapshot.whitelisted_tokens,
        snapshot.vault_token_info,
        snapshot.funding_rate_info,
        snapshot.index_prices,
        token_balances=snapshot.token_balances,
        native_token_address=snapshot.native_token_address or cfg.native_token_address,
        config=cfg,
    )


def run_pipeline(
    snapshot: MarketSnapshot,
    account: Optional[str] = None,
    show_pnl_after_fees: bool = False,
    include_delta: bool = False,
    config: Optional[EngineConfig] = None,
) -> PipelineResult:
    """Run all valuation stages for *account* (defaults to the snapshot's account)."""
    cfg = config or default_config()
    acct = account or snapshot.account or ""

    info_tokens = build_info_tokens(snapshot, cfg)
    raw_positions = assemble_positions(snapshot.positions, info_tokens, acct, cfg)
    derivation = derive_positions(raw_positions, acct, show_pnl_after_fees, include_delta, cfg)

    logger.info(
        "valued %d tokens, %d positions (%d records) for %s",
        len(info_tokens),
        len(derivation.positions),
        len(snapshot.positions),
        acct or "<no account>",
    )
    return PipelineResult(
        info_tokens=info_tokens,
        derivation=derivation,
        account=acct,
        show_pnl_after_fees=show_pnl_after_fees,
    )


def positions_payload(result: PipelineResult) -> List[Dict[str, Any]]:
    """JSON-ready positions with their display strings attached."""
    out = []
    for position in result.derivation.positions:
        obj = encode_position(position)
        obj.update(position_display(position, result.show_pnl_after_fees))
        out.append(obj)
    return out


def tokens_payload(result: PipelineResult) -> Dict[str, Dict[str, Any]]:
    return {addr: encode_token_info(info) for addr, info in result.info_tokens.items()}
