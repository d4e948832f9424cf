"""Seed combiner — merges both parties' seeds into the combined seed.

Published byte layouts (Solidity packed encoding, big-endian):

    v1:  keccak256( bytes32 player_seed
                  ‖ bytes32 counterparty_seed )

    v2:  keccak256( uint8   layout_tag (= 2)
                  ‖ uint8   difficulty_tag
                  ‖ bytes32 player_seed
                  ‖ bytes32 counterparty_seed
                  ‖ uint256 nonce
                  ‖ uint256 block_number
                  ‖ bytes32 future_block_hash )

A layout is never edited in place. Adding or reordering a field means
publishing a new version; existing sessions keep verifying under the
version recorded on their CombinedSeed.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional

from minefair.crypto.keccak import keccak_packed, require_seed
from minefair.models.commitment import CombinedSeed, SeedEntropy
from minefair.models.session import Difficulty


_LayoutFn = Callable[[bytes, bytes, Difficulty, SeedEntropy], bytes]


def _layout_v1(
    player_seed: bytes,
    counterparty_seed: bytes,
    difficulty: Difficulty,
    entropy: SeedEntropy,
) -> bytes:
    return keccak_packed(["bytes32", "bytes32"], [player_seed, counterparty_seed])


def _layout_v2(
    player_seed: bytes,
    counterparty_seed: bytes,
    difficulty: Difficulty,
    entropy: SeedEntropy,
) -> bytes:
    return keccak_packed(
        ["uint8", "uint8", "bytes32", "bytes32", "uint256", "uint256", "bytes32"],
        [
            2,
            difficulty.tag,
            player_seed,
            counterparty_seed,
            entropy.nonce,
            entropy.block_number,
            entropy.future_block_hash,
        ],
    )


LAYOUTS: Dict[str, _LayoutFn] = {
    "v1": _layout_v1,
    "v2": _layout_v2,
}


class SeedCombiner:
    """Pure combination of seed halves under a fixed layout version."""

    def __init__(self, layout: str = "v2") -> None:
        if layout not in LAYOUTS:
            raise ValueError(f"Unknown seed layout: {layout}")
        self._layout = layout

    @property
    def layout(self) -> str:
        return self._layout

    def combine(
        self,
        player_seed: bytes,
        counterparty_seed: bytes,
        difficulty: Difficulty = Difficulty.NORMAL,
        entropy: Optional[SeedEntropy] = None,
        layout: Optional[str] = None,
    ) -> CombinedSeed:
        """Compute the combined seed. Deterministic in all inputs."""
        version = layout or self._layout
        fn = LAYOUTS.get(version)
        if fn is None:
            raise ValueError(f"Unknown seed layout: {version}")
        value = fn(
            require_seed(player_seed, "player_seed"),
            require_seed(counterparty_seed, "counterparty_seed"),
            difficulty,
            entropy or SeedEntropy(),
        )
        return CombinedSeed(value=value, layout_version=version)
