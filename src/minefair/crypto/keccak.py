"""Keccak-256 hash primitive and fixed-width encodings.

All outcome determinism flows through these helpers. Hashing is delegated
to ``web3`` so that digests are byte-identical to ``keccak256`` as computed
by Solidity and ethers.js; no hashing is reimplemented here.

Packed encoding follows Solidity's ``abi.encodePacked`` rules: integers
are big-endian at their declared width, ``bytes32`` values are copied
as-is, and there is no length prefix or padding between fields.
"""

from __future__ import annotations

from typing import Sequence

from web3 import Web3


SEED_LENGTH = 32


def keccak256(data: bytes) -> bytes:
    """Return the 32-byte Keccak-256 digest of ``data``."""
    return bytes(Web3.keccak(data))


def keccak_packed(abi_types: Sequence[str], values: Sequence[object]) -> bytes:
    """Keccak-256 over the Solidity packed encoding of ``values``."""
    if len(abi_types) != len(values):
        raise ValueError(
            f"Type/value count mismatch: {len(abi_types)} types, {len(values)} values"
        )
    return bytes(Web3.solidity_keccak(list(abi_types), list(values)))


def require_seed(value: bytes, name: str = "seed") -> bytes:
    """Validate that ``value`` is exactly 32 raw bytes."""
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"{name} must be bytes, got {type(value).__name__}")
    if len(value) != SEED_LENGTH:
        raise ValueError(f"{name} must be {SEED_LENGTH} bytes, got {len(value)}")
    return bytes(value)


def seed_from_hex(text: str, name: str = "seed") -> bytes:
    """Parse a 0x-prefixed (or bare) 64-char hex string into 32 bytes."""
    cleaned = text.removeprefix("0x").removeprefix("0X")
    try:
        raw = bytes.fromhex(cleaned)
    except ValueError as exc:
        raise ValueError(f"{name} is not valid hex: {text!r}") from exc
    return require_seed(raw, name)


def to_hex(value: bytes) -> str:
    """Render bytes as a 0x-prefixed lowercase hex string."""
    return "0x" + value.hex()
