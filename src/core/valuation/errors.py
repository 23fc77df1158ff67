"""Exception types for the valuation engine.

``get_leverage()`` reports an undefined leverage as ``None``;
``get_leverage_or_raise()`` raises ``InvalidPositionStateError`` instead,
for callers that prefer exceptions.
"""

from __future__ import annotations


class ValuationError(Exception):
    """Base class for all valuation-engine errors."""


class MalformedSnapshotError(ValuationError):
    """Raised when snapshot input cannot be unpacked into typed records."""


class InvalidPositionStateError(ValuationError):
    """Raised when a position's requested change leaves leverage undefined."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"leverage undefined: {reason}")


class ConfigError(ValuationError, ValueError):
    """Raised when an engine configuration is invalid."""
