"""Position identity keys.

The two string keys are colon-joined consumed by the reporting layer, so the
joining scheme is fixed: ``account[:adapter]:collateral:index:side`` with the
side rendered ``true``/``false`` and the zero address replaced by the native
token address.

The contract key is the vault's own position id: keccak-256 over the
solidity-packed ``(adapter, collateral, index, isLong)`` tuple, i.e. three
20-byte addresses and one flag byte.
"""

from __future__ import annotations

from eth_hash.auto import keccak

from .errors import MalformedSnapshotError
from .math import ZERO_ADDRESS

ADDRESS_BYTES: int = 20


def _substitute_native(token_address: str, native_token_address: str) -> str:
    return native_token_address if token_address == ZERO_ADDRESS else token_address


def _side(is_long: bool) -> str:
    return "true" if is_long else "false"


def position_key(
    account: str,
    collateral_token_address: str,
    index_token_address: str,
    is_long: bool,
    native_token_address: str,
) -> str:
    """Plain key, shared by every adapter holding the same position."""
    return ":".join(
        (
            account,
            _substitute_native(collateral_token_address, native_token_address),
            _substitute_native(index_token_address, native_token_address),
            _side(is_long),
        )
    )


def position_key_with_adapter(
    account: str,
    collateral_token_address: str,
    index_token_address: str,
    adapter: str,
    is_long: bool,
    native_token_address: str,
) -> str:
    """Adapter-qualified key, unique per position."""
    return ":".join(
        (
            account,
            adapter,
            _substitute_native(collateral_token_address, native_token_address),
            _substitute_native(index_token_address, native_token_address),
            _side(is_long),
        )
    )


def _address_bytes(address: str) -> bytes:
    body = address[2:] if address[:2] in ("0x", "0X") else ""
    if len(body) != 2 * ADDRESS_BYTES:
        raise MalformedSnapshotError(f"not a 20-byte hex address: {address!r}")
    try:
        raw = bytes.fromhex(body)
    except ValueError:
        raise MalformedSnapshotError(f"not a 20-byte hex address: {address!r}") from None
    if len(raw) != ADDRESS_BYTES:
        raise MalformedSnapshotError(f"not a 20-byte hex address: {address!r}")
    return raw


def pack_contract_key(adapter: str, collateral_token_address: str, index_token_address: str, is_long: bool) -> bytes:
    """Solidity ``abi.encodePacked(address, address, address, bool)``; 61 bytes."""
    return (
        _address_bytes(adapter)
        + _address_bytes(collateral_token_address)
        + _address_bytes(index_token_address)
        + (b"\x01" if is_long else b"\x00")
    )


def position_contract_key(
    adapter: str,
    collateral_token_address: str,
    index_token_address: str,
    is_long: bool,
) -> str:
    """``0x``-prefixed keccak-256 of the packed tuple, keyed by adapter (not account)."""
    packed = pack_contract_key(adapter, collateral_token_address, index_token_address, is_long)
    return "0x" + keccak(packed).hex()
