from __future__ import annotations

import json

import pytest

from src.core.valuation import ZERO_ADDRESS, EngineConfig

USD = 10**30
NATIVE = EngineConfig().native_token_address
ACCOUNT = "0x00000000000000000000000000000000000000aa"
USDC = "0xaf88d065e77c8cC2239327C5EDb3A432268e5831"


def _vault(pool, reserved, min_price, max_price, *, max_long=0, guaranteed=0):
    return [
        pool, reserved, 0, 0, 10_000, 0, 0,
        0, 0, max_long,
        min_price, max_price, guaranteed, max_price, min_price,
    ]


def sample_snapshot_dict() -> dict:
    """ETH (native) and USDC market with one long ETH position on USDC collateral."""
    tokens = [
        {"address": ZERO_ADDRESS, "symbol": "ETH", "decimals": 18, "isNative": True},
        {"address": USDC, "symbol": "USDC", "decimals": 6, "isStable": True},
    ]
    vault = _vault(100 * 10**18, 10 * 10**18, 1990 * USD, 2010 * USD) + _vault(
        1_000_000 * 10**6, 0, USD, USD
    )
    return {
        "account": ACCOUNT,
        "nativeTokenAddress": NATIVE,
        "tokens": tokens,
        "whitelistedTokens": tokens,
        "vaultTokenInfo": [str(v) for v in vault],
        "fundingRateInfo": [5, 100, 7, 200],
        "tokenBalances": [str(2 * 10**18), "500000000"],
        "indexPrices": {NATIVE: str(2000 * USD)},
        "positions": [
            {
                "positionId": "1",
                "adapter": "0x00000000000000000000000000000000000000ad",
                "collateralToken": USDC,
                "indexToken": NATIVE,
                "isLong": True,
                "fields": [str(1000 * USD), str(100 * USD), str(1990 * USD), "150", False, "0", 1700000000, True, "0"],
            }
        ],
    }


@pytest.fixture
def snapshot_dict() -> dict:
    return sample_snapshot_dict()


@pytest.fixture
def snapshot_file(tmp_path, snapshot_dict):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(snapshot_dict), encoding="utf-8")
    return path
