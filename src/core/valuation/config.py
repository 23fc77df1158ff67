"""Engine configuration.

`EngineConfig` holds every protocol constant the valuation engine consults.
Defaults equal the deployed platform values, so ``EngineConfig()`` is the
production configuration; YAML files override individual fields.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum, unique
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError
from .math import (
    BASIS_POINTS_DIVISOR,
    DEFAULT_MAX_USDG_AMOUNT,
    FUNDING_RATE_PRECISION,
    MARGIN_FEE_BASIS_POINTS,
    MAX_PRICE_DEVIATION_BASIS_POINTS,
    PRECISION,
    USD_DECIMALS,
    expand_decimals,
)

# Number of named fields in one vault record / funding-rate record.
VAULT_RECORD_FIELDS: int = 15
FUNDING_RECORD_FIELDS: int = 2


@unique
class IndexBlendMode(Enum):
    """How an external index price is folded into a token's min/max prices."""
    BLENDED = "blended"
    RAW = "raw"


@dataclass(frozen=True)
class EngineConfig:
    usd_decimals: int = USD_DECIMALS
    basis_points_divisor: int = BASIS_POINTS_DIVISOR
    precision: int = PRECISION
    funding_rate_precision: int = FUNDING_RATE_PRECISION
    margin_fee_basis_points: int = MARGIN_FEE_BASIS_POINTS
    max_price_deviation_basis_points: int = MAX_PRICE_DEVIATION_BASIS_POINTS
    default_max_usdg_amount: int = DEFAULT_MAX_USDG_AMOUNT
    vault_record_stride: int = VAULT_RECORD_FIELDS
    funding_record_stride: int = FUNDING_RECORD_FIELDS
    low_collateral_size_ratio: int = 50
    usdg_address: str = "0x45096e7aA921f27590f8F19e457794EB09678141"
    native_token_address: str = "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"
    index_blend_mode: IndexBlendMode = IndexBlendMode.BLENDED

    def __post_init__(self) -> None:
        for name in ("basis_points_divisor", "precision", "funding_rate_precision"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.usd_decimals < 0:
            raise ConfigError("usd_decimals must be non-negative")
        if not 0 <= self.margin_fee_basis_points < self.basis_points_divisor:
            raise ConfigError("margin_fee_basis_points must be in [0, basis_points_divisor)")
        if self.max_price_deviation_basis_points < 0:
            raise ConfigError("max_price_deviation_basis_points must be non-negative")
        if self.vault_record_stride < VAULT_RECORD_FIELDS:
            raise ConfigError(f"vault_record_stride must be >= {VAULT_RECORD_FIELDS}")
        if self.funding_record_stride < FUNDING_RECORD_FIELDS:
            raise ConfigError(f"funding_record_stride must be >= {FUNDING_RECORD_FIELDS}")
        if self.low_collateral_size_ratio <= 0:
            raise ConfigError("low_collateral_size_ratio must be positive")
        if not self.usdg_address or not self.native_token_address:
            raise ConfigError("token addresses must be non-empty")

    @property
    def usd_unit(self) -> int:
        """One USD at fixed-decimal precision."""
        return expand_decimals(1, self.usd_decimals)


_FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(EngineConfig))


def default_config() -> EngineConfig:
    return EngineConfig()


def config_from_mapping(obj: Mapping[str, Any]) -> EngineConfig:
    """Build an `EngineConfig` from a plain mapping, rejecting unknown keys."""
    if not isinstance(obj, Mapping):
        raise ConfigError("config must be a mapping")
    unknown = sorted(set(obj) - set(_FIELD_NAMES))
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

    kwargs: dict[str, Any] = {}
    for name, raw in obj.items():
        if name == "index_blend_mode":
            try:
                kwargs[name] = IndexBlendMode(raw)
            except ValueError:
                raise ConfigError(f"index_blend_mode must be one of {[m.value for m in IndexBlendMode]}") from None
        elif name in ("usdg_address", "native_token_address"):
            if not isinstance(raw, str):
                raise ConfigError(f"{name} must be a string")
            kwargs[name] = raw
        else:
            if not isinstance(raw, int) or isinstance(raw, bool):
                raise ConfigError(f"{name} must be an int, got {type(raw).__name__}")
            kwargs[name] = int(raw)
    return EngineConfig(**kwargs)


def load_config(path: str | Path) -> EngineConfig:
    """Load an `EngineConfig` from a YAML file. An empty file yields the defaults."""
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if obj is None:
        return default_config()
    return config_from_mapping(obj)
