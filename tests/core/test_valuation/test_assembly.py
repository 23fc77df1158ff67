"""Tests for src/core/valuation/assembly.py: ledger records to raw positions."""

from __future__ import annotations

import pytest

from src.core.valuation import (
    ZERO_ADDRESS,
    EngineConfig,
    MalformedSnapshotError,
    Token,
    assemble_positions,
    decode_position_fields,
    normalize_tokens,
    position_contract_key,
    select_mark_price,
)

USD = 10**30
CFG = EngineConfig()
NATIVE = CFG.native_token_address
ACCOUNT = "0xAccount"
USDC_ADDRESS = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"
ADAPTER = "0x" + "ad" * 20
ADAPTER_A = "0x" + "a1" * 20
ADAPTER_B = "0x" + "b2" * 20

ETH = Token(address=ZERO_ADDRESS, symbol="ETH", decimals=18, is_native=True)
USDC = Token(address=USDC_ADDRESS, symbol="USDC", decimals=6, is_stable=True)


def _vault(min_price: int, max_price: int) -> list[int]:
    return [0, 0, 0, 0, 0, 0, 1, 0, 0, 0, min_price, max_price, 0, 0, 0]


def _info_tokens():
    return normalize_tokens(
        [ETH, USDC],
        [ETH, USDC],
        _vault(1990 * USD, 2010 * USD) + _vault(USD, USD),
        [5, 100, 7, 200],
        {},
    )


def _record(position_id: str = "1", is_long: bool = True, collateral_token: str = USDC_ADDRESS, **kwargs):
    fields = kwargs.pop("fields", [1000 * USD, 100 * USD, 2000 * USD, 150, False, 0, 1700000000, True, 0])
    return decode_position_fields(
        position_id=position_id,
        adapter=kwargs.pop("adapter", ADAPTER),
        collateral_token=collateral_token,
        index_token=kwargs.pop("index_token", NATIVE),
        is_long=is_long,
        fields=fields,
    )


class TestDecodePositionFields:
    def test_field_order(self):
        rec = _record()
        assert rec.size == 1000 * USD
        assert rec.collateral == 100 * USD
        assert rec.average_price == 2000 * USD
        assert rec.entry_funding_rate == 150
        assert rec.has_realised_profit is False
        assert rec.last_increased_time == 1700000000
        assert rec.has_profit is True
        assert rec.delta == 0

    def test_short_record(self):
        with pytest.raises(MalformedSnapshotError):
            _record(fields=[1, 2, 3])


class TestMarkPrice:
    def test_long_uses_min(self):
        info = _info_tokens()[ZERO_ADDRESS]
        assert select_mark_price(info, True) == 1990 * USD

    def test_short_uses_max(self):
        info = _info_tokens()[ZERO_ADDRESS]
        assert select_mark_price(info, False) == 2010 * USD


class TestAssemble:
    def test_resolves_native_and_funding(self):
        (raw,) = assemble_positions([_record()], _info_tokens(), ACCOUNT)
        assert raw.index_token.address == ZERO_ADDRESS
        assert raw.collateral_token.address == USDC_ADDRESS
        assert raw.cumulative_funding_rate == 200
        assert raw.mark_price == 1990 * USD
        assert raw.account == ACCOUNT
        assert raw.position_id == "1"

    def test_short_mark(self):
        (raw,) = assemble_positions([_record(is_long=False)], _info_tokens(), ACCOUNT)
        assert raw.mark_price == 2010 * USD

    def test_native_collateral(self):
        (raw,) = assemble_positions([_record(collateral_token=NATIVE)], _info_tokens(), ACCOUNT)
        assert raw.collateral_token.address == ZERO_ADDRESS
        assert raw.cumulative_funding_rate == 100

    def test_repeated_id_first_wins(self):
        recs = [_record("1", adapter=ADAPTER_A), _record("2"), _record("1", adapter=ADAPTER_B)]
        out = assemble_positions(recs, _info_tokens(), ACCOUNT)
        assert [r.position_id for r in out] == ["1", "2"]
        assert out[0].adapter == ADAPTER_A

    def test_unknown_token(self):
        with pytest.raises(MalformedSnapshotError):
            assemble_positions([_record(collateral_token="0x" + "ee" * 20)], _info_tokens(), ACCOUNT)

    def test_contract_key_from_ledger_addresses(self):
        (raw,) = assemble_positions([_record()], _info_tokens(), ACCOUNT)
        # Keyed on the adapter and the addresses as reported, before native resolution.
        assert raw.contract_key == position_contract_key(ADAPTER, USDC_ADDRESS, NATIVE, True)

    def test_contract_key_differs_by_side(self):
        long_raw, short_raw = assemble_positions(
            [_record("1"), _record("2", is_long=False)], _info_tokens(), ACCOUNT
        )
        assert long_raw.contract_key != short_raw.contract_key

    def test_malformed_adapter_address(self):
        with pytest.raises(MalformedSnapshotError):
            assemble_positions([_record(adapter="0xAdapter")], _info_tokens(), ACCOUNT)
