"""Data types for the valuation engine.

All types are frozen dataclasses (immutable). Derived records are built in one
step from their raw inputs; nothing is filled in after construction.

Units/conventions:
- prices and ``*_usd`` values are USD scaled by ``10**usd_decimals`` (1e30).
- ``*_amount`` values are token units scaled by ``10**token.decimals``.
- ``*_percentage`` values are basis points (1/10_000).
- ``None`` means "not applicable / not computable", never zero.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass(frozen=True)
class Token:
    """Static token metadata."""

    address: str
    symbol: str
    decimals: int
    is_stable: bool = False
    is_native: bool = False


@dataclass(frozen=True)
class VaultTokenRecord:
    """One token's vault fields, in vault-reader order."""

    pool_amount: int
    reserved_amount: int
    usdg_amount: int
    redemption_amount: int
    weight: int
    buffer_amount: int
    max_usdg_amount: int
    global_short_size: int
    max_global_short_size: int
    max_global_long_size: int
    min_price: int
    max_price: int
    guaranteed_usd: int
    max_primary_price: int
    min_primary_price: int


@dataclass(frozen=True)
class FundingRateRecord:
    funding_rate: int
    cumulative_funding_rate: int


@dataclass(frozen=True)
class TokenInfo:
    """Token metadata plus the market state derived for one computation."""

    token: Token
    balance: int | None = None

    pool_amount: int | None = None
    reserved_amount: int | None = None
    available_amount: int | None = None
    usdg_amount: int | None = None
    redemption_amount: int | None = None
    weight: int | None = None
    buffer_amount: int | None = None
    max_usdg_amount: int | None = None

    global_short_size: int | None = None
    max_global_short_size: int | None = None
    max_available_short: int | None = None
    has_max_available_short: bool | None = None

    guaranteed_usd: int | None = None
    max_global_long_size: int | None = None
    max_available_long: int | None = None
    has_max_available_long: bool | None = None
    max_long_capacity: int | None = None

    min_price: int | None = None
    max_price: int | None = None
    contract_min_price: int | None = None
    contract_max_price: int | None = None
    max_primary_price: int | None = None
    min_primary_price: int | None = None
    spread: int | None = None

    available_usd: int | None = None
    managed_usd: int | None = None
    managed_amount: int | None = None

    funding_rate: int | None = None
    cumulative_funding_rate: int | None = None

    @property
    def address(self) -> str:
        return self.token.address

    @property
    def decimals(self) -> int:
        return self.token.decimals

    @property
    def is_stable(self) -> bool:
        return self.token.is_stable

    @property
    def is_native(self) -> bool:
        return self.token.is_native


InfoTokens = Mapping[str, TokenInfo]


@dataclass(frozen=True)
class LedgerPosition:
    """A position as read from the position factory and its adapter."""

    position_id: str
    adapter: str
    collateral_token: str
    index_token: str
    is_long: bool
    size: int
    collateral: int
    average_price: int
    entry_funding_rate: int
    has_realised_profit: bool
    realised_pnl: int
    last_increased_time: int
    has_profit: bool
    delta: int


@dataclass(frozen=True)
class RawPosition:
    """Raw ledger fields with resolved tokens and a mark price."""

    account: str
    adapter: str
    collateral_token: TokenInfo
    index_token: TokenInfo
    is_long: bool
    size: int
    collateral: int
    average_price: int | None = None
    entry_funding_rate: int | None = None
    cumulative_funding_rate: int | None = None
    realised_pnl: int = 0
    has_realised_profit: bool = False
    last_increased_time: int = 0
    has_profit: bool = False
    delta: int = 0
    mark_price: int | None = None
    position_id: str | None = None
    contract_key: str | None = None


@dataclass(frozen=True)
class Position:
    """A `RawPosition` with every derived field attached."""

    raw: RawPosition
    key: str
    adapter_key: str

    funding_fee: int
    collateral_after_fee: int
    closing_fee: int
    position_fee: int
    total_fees: int

    delta: int
    pending_delta: int
    has_profit: bool

    has_low_collateral: bool | None = None
    delta_percentage: int | None = None
    pending_delta_after_fees: int | None = None
    has_profit_after_fees: bool | None = None
    delta_percentage_after_fees: int | None = None
    net_value: int | None = None
    leverage: int | None = None

    display_delta: int | None = None
    display_delta_percentage: int | None = None
    display_has_profit: bool | None = None

    @property
    def account(self) -> str:
        return self.raw.account

    @property
    def is_long(self) -> bool:
        return self.raw.is_long

    @property
    def size(self) -> int:
        return self.raw.size

    @property
    def collateral(self) -> int:
        return self.raw.collateral

    @property
    def mark_price(self) -> int | None:
        return self.raw.mark_price


@dataclass(frozen=True)
class LeverageRequest:
    """Inputs to a leverage computation, optionally with a pending change."""

    size: int
    collateral: int
    has_profit: bool = False
    delta: int = 0
    include_delta: bool = False
    size_delta: int = 0
    increase_size: bool = False
    collateral_delta: int = 0
    increase_collateral: bool = False
    entry_funding_rate: int | None = None
    cumulative_funding_rate: int | None = None


@dataclass(frozen=True)
class DerivationResult:
    """Derived positions in input order plus the adapter-key lookup map."""

    positions: tuple[Position, ...] = ()
    positions_map: Mapping[str, Position] = field(default_factory=dict)
