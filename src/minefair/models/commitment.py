"""Seed commitment and combined-seed models.

A Commitment binds the player to a secret seed before any wagering: the
hash is published, the seed stays private until the session resolves.
The CombinedSeed is the sole determinant of bomb placement and records
which published byte layout produced it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from minefair.crypto.keccak import require_seed, to_hex


@dataclass(frozen=True)
class Commitment:
    """A player seed and its public commitment hash.

    Immutable. ``player_seed`` is excluded from repr so it never lands in
    logs or tracebacks by accident.
    """
    player_seed: bytes = field(repr=False)
    commitment_hash: bytes

    def __post_init__(self) -> None:
        require_seed(self.player_seed, "player_seed")
        require_seed(self.commitment_hash, "commitment_hash")

    @property
    def commitment_hex(self) -> str:
        return to_hex(self.commitment_hash)


@dataclass(frozen=True)
class SeedEntropy:
    """Auxiliary entropy folded into layout v2.

    Supplied by the session host from its environment (chain nonce, block
    number, a future block hash). All fields default to zero.
    """
    nonce: int = 0
    block_number: int = 0
    future_block_hash: bytes = b"\x00" * 32

    def __post_init__(self) -> None:
        if self.nonce < 0 or self.block_number < 0:
            raise ValueError("Entropy integers must be non-negative")
        if self.nonce >= 2**256 or self.block_number >= 2**256:
            raise ValueError("Entropy integers must fit in uint256")
        require_seed(self.future_block_hash, "future_block_hash")


@dataclass(frozen=True)
class CombinedSeed:
    """Hash of both parties' seed contributions under a versioned layout."""
    value: bytes
    layout_version: str

    def __post_init__(self) -> None:
        require_seed(self.value, "combined_seed")

    @property
    def hex(self) -> str:
        return to_hex(self.value)
