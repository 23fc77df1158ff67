"""
Market snapshot decoding and result encoding.

Goals:
- Strict decoding of a fetched ledger/vault/index-price snapshot into the
  valuation core's typed inputs (no floats, no bools posing as ints).
- JSON-safe encoding of derived tokens and positions: every fixed-point
  integer is emitted as a decimal string, every absent value as null.
- A canonical byte encoding for determinism checks.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..core.valuation import (
    LedgerPosition,
    MalformedSnapshotError,
    Position,
    RawPosition,
    Token,
    TokenInfo,
    decode_position_fields,
)


def _require_mapping(value: Any, *, name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise MalformedSnapshotError(f"{name} must be an object")
    return value


def _require_list(value: Any, *, name: str) -> Sequence[Any]:
    if not isinstance(value, list):
        raise MalformedSnapshotError(f"{name} must be a list")
    return value


def _require_str(value: Any, *, name: str, non_empty: bool = True, max_len: int = 256) -> str:
    if not isinstance(value, str):
        raise MalformedSnapshotError(f"{name} must be a string")
    if non_empty and not value:
        raise MalformedSnapshotError(f"{name} must be non-empty")
    if max_len > 0 and len(value) > max_len:
        raise MalformedSnapshotError(f"{name} too large")
    return value


def _require_int(value: Any, *, name: str) -> int:
    """Accept a JSON int or a base-10 integer string (large fixed-point values)."""
    if isinstance(value, bool):
        raise MalformedSnapshotError(f"{name} must be an int, got bool")
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str):
        s = value.strip()
        digits = s[1:] if s[:1] in ("-", "+") else s
        if not (digits.isascii() and digits.isdigit()) or len(digits) > 96:
            raise MalformedSnapshotError(f"{name} must be a base-10 integer string")
        return int(s)
    raise MalformedSnapshotError(f"{name} must be an int, got {type(value).__name__}")


def _require_bool(value: Any, *, name: str) -> bool:
    if not isinstance(value, bool):
        raise MalformedSnapshotError(f"{name} must be a bool")
    return value


def _int_list(value: Any, *, name: str) -> Tuple[int, ...]:
    return tuple(_require_int(v, name=f"{name}[{i}]") for i, v in enumerate(_require_list(value, name=name)))


def token_from_dict(obj: Any, *, name: str = "token") -> Token:
    m = _require_mapping(obj, name=name)
    decimals = _require_int(m.get("decimals"), name=f"{name}.decimals")
    if not 0 <= decimals <= 77:
        raise MalformedSnapshotError(f"{name}.decimals out of range")
    return Token(
        address=_require_str(m.get("address"), name=f"{name}.address"),
        symbol=_require_str(m.get("symbol", ""), name=f"{name}.symbol", non_empty=False),
        decimals=decimals,
        is_stable=_require_bool(m.get("isStable", False), name=f"{name}.isStable"),
        is_native=_require_bool(m.get("isNative", False), name=f"{name}.isNative"),
    )


# hasRealisedProfit, hasProfit
_FLAG_FIELD_INDICES = frozenset((4, 7))


def ledger_position_from_dict(obj: Any, *, name: str = "position") -> LedgerPosition:
    m = _require_mapping(obj, name=name)
    raw_fields = _require_list(m.get("fields"), name=f"{name}.fields")
    values: list = []
    for i, v in enumerate(raw_fields):
        if i in _FLAG_FIELD_INDICES and isinstance(v, bool):
            values.append(v)
        else:
            values.append(_require_int(v, name=f"{name}.fields[{i}]"))
    return decode_position_fields(
        position_id=_require_str(m.get("positionId"), name=f"{name}.positionId"),
        adapter=_require_str(m.get("adapter"), name=f"{name}.adapter"),
        collateral_token=_require_str(m.get("collateralToken"), name=f"{name}.collateralToken"),
        index_token=_require_str(m.get("indexToken"), name=f"{name}.indexToken"),
        is_long=_require_bool(m.get("isLong"), name=f"{name}.isLong"),
        fields=values,
    )


@dataclass(frozen=True)
class MarketSnapshot:
    """Everything the valuation core needs, fully fetched."""

    tokens: Tuple[Token, ...]
    whitelisted_tokens: Tuple[Token, ...]
    vault_token_info: Optional[Tuple[int, ...]]
    funding_rate_info: Optional[Tuple[int, ...]]
    index_prices: Dict[str, int]
    token_balances: Optional[Tuple[int, ...]] = None
    positions: Tuple[LedgerPosition, ...] = ()
    account: Optional[str] = None
    native_token_address: Optional[str] = None


def snapshot_from_dict(obj: Any) -> MarketSnapshot:
    m = _require_mapping(obj, name="snapshot")

    tokens = tuple(
        token_from_dict(t, name=f"tokens[{i}]") for i, t in enumerate(_require_list(m.get("tokens"), name="tokens"))
    )
    if "whitelistedTokens" in m:
        whitelisted = tuple(
            token_from_dict(t, name=f"whitelistedTokens[{i}]")
            for i, t in enumerate(_require_list(m["whitelistedTokens"], name="whitelistedTokens"))
        )
    else:
        whitelisted = tokens

    def optional_ints(key: str) -> Optional[Tuple[int, ...]]:
        if m.get(key) is None:
            return None
        return _int_list(m[key], name=key)

    index_prices: Dict[str, int] = {}
    raw_prices = m.get("indexPrices")
    if raw_prices is not None:
        for addr, price in _require_mapping(raw_prices, name="indexPrices").items():
            index_prices[_require_str(addr, name="indexPrices key")] = _require_int(price, name=f"indexPrices[{addr}]")

    positions = tuple(
        ledger_position_from_dict(p, name=f"positions[{i}]")
        for i, p in enumerate(_require_list(m.get("positions", []), name="positions"))
    )

    account = m.get("account")
    native = m.get("nativeTokenAddress")
    return MarketSnapshot(
        tokens=tokens,
        whitelisted_tokens=whitelisted,
        vault_token_info=optional_ints("vaultTokenInfo"),
        funding_rate_info=optional_ints("fundingRateInfo"),
        index_prices=index_prices,
        token_balances=optional_ints("tokenBalances"),
        positions=positions,
        account=_require_str(account, name="account") if account is not None else None,
        native_token_address=_require_str(native, name="nativeTokenAddress") if native is not None else None,
    )


def load_snapshot(path: str | Path) -> MarketSnapshot:
    try:
        obj = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MalformedSnapshotError(f"snapshot is not valid JSON: {e}") from e
    return snapshot_from_dict(obj)


# -- Encoding ----------------------------------------------------------------

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return str(value)
    raise TypeError(f"unexpected value type {type(value).__name__}")


def encode_token(token: Token) -> Dict[str, Any]:
    return {
        "address": token.address,
        "symbol": token.symbol,
        "decimals": token.decimals,
        "isStable": token.is_stable,
        "isNative": token.is_native,
    }


def encode_token_info(info: TokenInfo) -> Dict[str, Any]:
    out = encode_token(info.token)
    for f in fields(TokenInfo):
        if f.name == "token":
            continue
        out[_camel(f.name)] = _json_value(getattr(info, f.name))
    return out


def _encode_raw(raw: RawPosition) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in fields(RawPosition):
        value = getattr(raw, f.name)
        if isinstance(value, TokenInfo):
            out[_camel(f.name)] = encode_token_info(value)
        else:
            out[_camel(f.name)] = _json_value(value)
    return out


def encode_position(position: Position) -> Dict[str, Any]:
    """Flat JSON object: raw ledger fields, then every derived field."""
    out = _encode_raw(position.raw)
    for f in fields(Position):
        if f.name == "raw":
            continue
        out[_camel(f.name)] = _json_value(getattr(position, f.name))
    return out


def _reject_floats(value: Any) -> None:
    if isinstance(value, float):
        raise TypeError("floats are not allowed in canonical encoding")
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError("dict keys must be str for canonical encoding")
            _reject_floats(v)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _reject_floats(item)


def canonical_json_bytes(value: Any) -> bytes:
    """
    Canonical JSON encoding: UTF-8, sorted keys, no whitespace, floats rejected.
    """
    _reject_floats(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode(
        "utf-8"
    )


def digest_hex(value: Any) -> str:
    return hashlib.sha256(canonical_json_bytes(value)).hexdigest()
