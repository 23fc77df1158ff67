"""`valuation`: pure-Python perp position valuation engine.

Derives per-token market state and per-position PnL, fees and leverage from
raw vault and position snapshots:
- deterministic, integer-only arithmetic (division truncates toward zero),
- immutable inputs and outputs (frozen dataclasses),
- ``None`` for every value that is not applicable.

Public API:
- `normalize_tokens(...) -> dict[str, TokenInfo]`
- `assemble_positions(records, info_tokens, account) -> list[RawPosition]`
- `derive_positions(positions, account, ...) -> DerivationResult`
- `get_leverage(req) -> int | None` / `get_leverage_or_raise(req) -> int`
"""

from .assembly import POSITION_RECORD_FIELDS, assemble_positions, decode_position_fields, select_mark_price
from .config import EngineConfig, IndexBlendMode, config_from_mapping, default_config, load_config
from .errors import ConfigError, InvalidPositionStateError, MalformedSnapshotError, ValuationError
from .keys import pack_contract_key, position_contract_key, position_key, position_key_with_adapter
from .math import ZERO_ADDRESS, get_spread
from .positions import derive_position, derive_positions, get_funding_fee, get_leverage, get_leverage_or_raise
from .tokens import (
    apply_index_price,
    blend_index_price,
    decode_funding_records,
    decode_vault_records,
    get_token_info,
    normalize_tokens,
)
from .types import (
    DerivationResult,
    FundingRateRecord,
    InfoTokens,
    LedgerPosition,
    LeverageRequest,
    Position,
    RawPosition,
    Token,
    TokenInfo,
    VaultTokenRecord,
)

__all__ = [
    "normalize_tokens",
    "decode_vault_records",
    "decode_funding_records",
    "apply_index_price",
    "blend_index_price",
    "get_token_info",
    "get_spread",
    "position_key",
    "position_key_with_adapter",
    "position_contract_key",
    "pack_contract_key",
    "get_funding_fee",
    "get_leverage",
    "get_leverage_or_raise",
    "derive_position",
    "derive_positions",
    "assemble_positions",
    "decode_position_fields",
    "select_mark_price",
    "POSITION_RECORD_FIELDS",
    "ZERO_ADDRESS",
    "EngineConfig",
    "IndexBlendMode",
    "config_from_mapping",
    "default_config",
    "load_config",
    "DerivationResult",
    "FundingRateRecord",
    "InfoTokens",
    "LedgerPosition",
    "LeverageRequest",
    "Position",
    "RawPosition",
    "Token",
    "TokenInfo",
    "VaultTokenRecord",
    "ValuationError",
    "MalformedSnapshotError",
    "InvalidPositionStateError",
    "ConfigError",
]
