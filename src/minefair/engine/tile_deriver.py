"""Tile deriver — maps a combined seed to the bomb set.

Rejection sampling over a Keccak hash chain:

    state_0 = combined_seed
    for attempt i = 0, 1, 2, ...:
        candidate = uint256(keccak256(state_i ‖ uint256(i))) mod grid_size
        if candidate not already chosen: add it
        state_{i+1} = keccak256(state_i)
    until bomb_count positions are chosen

The attempt index is encoded as a fixed-width uint256 so the hash input is
always 64 bytes. The loop is bounded; hitting the bound raises
DerivationExhaustedError rather than returning a partial set.

Determinism is the load-bearing property: identical inputs always yield an
identical set, so a verifier can recompute the board from disclosed seeds.
"""

from __future__ import annotations

from typing import Iterator, Optional

from minefair.crypto.keccak import keccak256, keccak_packed, require_seed
from minefair.errors import DerivationExhaustedError


DEFAULT_ATTEMPT_FACTOR = 10


def candidate_positions(combined_seed: bytes, grid_size: int) -> Iterator[tuple[int, int]]:
    """Yield ``(attempt_index, candidate_position)`` pairs indefinitely."""
    state = require_seed(combined_seed, "combined_seed")
    attempt = 0
    while True:
        digest = keccak_packed(["bytes32", "uint256"], [state, attempt])
        yield attempt, int.from_bytes(digest, "big") % grid_size
        state = keccak256(state)
        attempt += 1


def derive_bombs(
    combined_seed: bytes,
    bomb_count: int,
    grid_size: int,
    max_attempts: Optional[int] = None,
) -> frozenset:
    """Derive exactly ``bomb_count`` distinct positions in [0, grid_size).

    Args:
        combined_seed: 32-byte combined seed.
        bomb_count: Number of bombs to place.
        grid_size: Number of tiles on the board.
        max_attempts: Hash attempts allowed before failing
            (default: DEFAULT_ATTEMPT_FACTOR × grid_size).

    Raises:
        ValueError: bomb_count outside [0, grid_size].
        DerivationExhaustedError: attempt cap reached first.
    """
    require_seed(combined_seed, "combined_seed")
    if grid_size < 1:
        raise ValueError(f"grid_size must be positive, got {grid_size}")
    if not 0 <= bomb_count <= grid_size:
        raise ValueError(f"bomb_count must be in [0, {grid_size}], got {bomb_count}")
    if bomb_count == 0:
        return frozenset()
    # Full board is the only possible answer; no need to sample for it.
    if bomb_count == grid_size:
        return frozenset(range(grid_size))

    if max_attempts is None:
        max_attempts = DEFAULT_ATTEMPT_FACTOR * grid_size
    if max_attempts < bomb_count:
        raise ValueError(
            f"max_attempts ({max_attempts}) cannot be below bomb_count ({bomb_count})"
        )

    chosen: set[int] = set()
    candidates = candidate_positions(combined_seed, grid_size)
    for _, (_, position) in zip(range(max_attempts), candidates):
        chosen.add(position)
        if len(chosen) == bomb_count:
            return frozenset(chosen)
    raise DerivationExhaustedError(
        f"Placed {len(chosen)}/{bomb_count} bombs after {max_attempts} attempts"
    )


def bomb_mask(bombs: frozenset, grid_size: int) -> list[bool]:
    """Render a bomb set as a per-tile boolean board."""
    return [position in bombs for position in range(grid_size)]
