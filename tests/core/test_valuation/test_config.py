"""Tests for src/core/valuation/config.py."""

from __future__ import annotations

import pytest

from src.core.valuation import ConfigError, EngineConfig, IndexBlendMode, config_from_mapping, load_config


class TestDefaults:
    def test_platform_constants(self):
        cfg = EngineConfig()
        assert cfg.usd_decimals == 30
        assert cfg.usd_unit == 10**30
        assert cfg.funding_rate_precision == 1_000_000
        assert cfg.margin_fee_basis_points == 10
        assert cfg.max_price_deviation_basis_points == 750
        assert cfg.vault_record_stride == 15
        assert cfg.index_blend_mode is IndexBlendMode.BLENDED


class TestFromMapping:
    def test_override(self):
        cfg = config_from_mapping({"margin_fee_basis_points": 8, "index_blend_mode": "raw"})
        assert cfg.margin_fee_basis_points == 8
        assert cfg.index_blend_mode is IndexBlendMode.RAW

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="unknown config keys"):
            config_from_mapping({"margin_fee": 8})

    def test_bool_rejected(self):
        with pytest.raises(ConfigError):
            config_from_mapping({"usd_decimals": True})

    def test_bad_mode(self):
        with pytest.raises(ConfigError):
            config_from_mapping({"index_blend_mode": "median"})

    def test_short_stride(self):
        with pytest.raises(ConfigError):
            config_from_mapping({"vault_record_stride": 14})

    def test_fee_not_below_divisor(self):
        with pytest.raises(ConfigError):
            config_from_mapping({"margin_fee_basis_points": 10_000})

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            config_from_mapping({"funding_rate_precision": 0})


class TestLoadConfig:
    def test_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "margin_fee_basis_points: 5\n"
            "default_max_usdg_amount: 1000000000000000000000000000\n"
            "native_token_address: '0xWeth'\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.margin_fee_basis_points == 5
        assert cfg.default_max_usdg_amount == 10**27
        assert cfg.native_token_address == "0xWeth"

    def test_empty_file_is_default(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == EngineConfig()

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)
