"""Tests for bomb derivation — proves the bomb set is exact, bounded and reproducible."""

import pytest
from web3 import Web3

from minefair.engine.tile_deriver import bomb_mask, candidate_positions, derive_bombs
from minefair.errors import DerivationExhaustedError


ZERO_SEED = b"\x00" * 32
SEED = bytes(Web3.keccak(text="minefair-test-seed"))


def _reference_bombs(seed: bytes, bomb_count: int, grid_size: int) -> frozenset:
    """Independent rendition of the hash chain, built only on Web3.keccak."""
    state = seed
    chosen: set[int] = set()
    index = 0
    while len(chosen) < bomb_count:
        digest = Web3.keccak(state + index.to_bytes(32, "big"))
        chosen.add(int.from_bytes(digest, "big") % grid_size)
        state = bytes(Web3.keccak(state))
        index += 1
    return frozenset(chosen)


class TestDerivation:
    @pytest.mark.parametrize("bomb_count", [1, 9, 12, 20])
    def test_exact_count_in_range(self, bomb_count: int) -> None:
        bombs = derive_bombs(SEED, bomb_count, 36)
        assert len(bombs) == bomb_count
        assert all(0 <= position < 36 for position in bombs)

    def test_deterministic(self) -> None:
        assert derive_bombs(SEED, 9, 36) == derive_bombs(SEED, 9, 36)

    def test_different_seeds_differ(self) -> None:
        other = bytes(Web3.keccak(text="another-seed"))
        assert derive_bombs(SEED, 9, 36) != derive_bombs(other, 9, 36)

    def test_zero_seed_matches_reference(self) -> None:
        assert derive_bombs(ZERO_SEED, 9, 36) == _reference_bombs(ZERO_SEED, 9, 36)

    def test_zero_seed_published_vector(self) -> None:
        assert sorted(derive_bombs(ZERO_SEED, 9, 36)) == [1, 9, 10, 12, 13, 20, 22, 29, 31]

    def test_zero_seed_god_of_war_published_vector(self) -> None:
        assert sorted(derive_bombs(ZERO_SEED, 12, 36)) == [
            1, 9, 10, 12, 13, 16, 18, 20, 22, 29, 31, 34,
        ]

    def test_god_of_war_matches_reference(self) -> None:
        assert derive_bombs(SEED, 12, 36) == _reference_bombs(SEED, 12, 36)

    def test_candidate_stream_starts_at_attempt_zero(self) -> None:
        stream = candidate_positions(ZERO_SEED, 36)
        attempt, position = next(stream)
        digest = Web3.keccak(ZERO_SEED + (0).to_bytes(32, "big"))
        assert attempt == 0
        assert position == int.from_bytes(digest, "big") % 36


class TestEdgeCases:
    def test_full_board(self) -> None:
        assert derive_bombs(SEED, 36, 36) == frozenset(range(36))

    def test_no_bombs(self) -> None:
        assert derive_bombs(SEED, 0, 36) == frozenset()

    def test_bomb_count_above_grid_rejected(self) -> None:
        with pytest.raises(ValueError):
            derive_bombs(SEED, 37, 36)

    def test_negative_bomb_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            derive_bombs(SEED, -1, 36)

    def test_attempt_cap_below_bomb_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            derive_bombs(SEED, 9, 36, max_attempts=8)

    def test_exhausted_cap_raises_not_partial(self) -> None:
        # 30 distinct picks out of 36 in exactly 30 draws cannot realistically happen.
        with pytest.raises(DerivationExhaustedError):
            derive_bombs(SEED, 30, 36, max_attempts=30)

    def test_short_seed_rejected(self) -> None:
        with pytest.raises(ValueError):
            derive_bombs(b"\x00" * 16, 9, 36)


class TestBombMask:
    def test_mask_marks_bombs(self) -> None:
        mask = bomb_mask(frozenset({0, 5}), 6)
        assert mask == [True, False, False, False, False, True]
