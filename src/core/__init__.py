"""
Core valuation algorithms
"""

from .valuation import (
    derive_position,
    derive_positions,
    get_leverage,
    normalize_tokens,
    assemble_positions,
)

__all__ = [
    "derive_position",
    "derive_positions",
    "get_leverage",
    "normalize_tokens",
    "assemble_positions",
]
