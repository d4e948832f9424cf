"""Tests for the commit/reveal protocol — proves commitments bind the player seed."""

import pytest
from web3 import Web3

from minefair.crypto.commitment import CommitmentManager
from minefair.crypto.keccak import keccak256, require_seed, seed_from_hex, to_hex
from minefair.errors import InvalidCommitmentError
from minefair.models.commitment import Commitment, SeedEntropy


SEED = bytes(range(32))


def _flip_bit(value: bytes, index: int = 0) -> bytes:
    flipped = bytearray(value)
    flipped[index] ^= 0x01
    return bytes(flipped)


class TestKeccak:
    def test_matches_web3_keccak(self) -> None:
        assert keccak256(SEED) == bytes(Web3.keccak(SEED))

    def test_digest_is_32_bytes(self) -> None:
        assert len(keccak256(b"")) == 32

    def test_empty_input_known_vector(self) -> None:
        assert to_hex(keccak256(b"")) == (
            "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_require_seed_rejects_wrong_length(self) -> None:
        with pytest.raises(ValueError):
            require_seed(b"\x00" * 31)

    def test_require_seed_rejects_non_bytes(self) -> None:
        with pytest.raises(TypeError):
            require_seed("00" * 32)  # type: ignore[arg-type]

    def test_seed_from_hex_accepts_prefix(self) -> None:
        assert seed_from_hex(to_hex(SEED)) == SEED
        assert seed_from_hex(SEED.hex()) == SEED

    def test_seed_from_hex_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            seed_from_hex("0xnothex")


class TestCommitmentCreation:
    def test_hash_is_keccak_of_raw_seed(self) -> None:
        commitment = CommitmentManager().create_commitment(SEED)
        assert commitment.commitment_hash == bytes(Web3.keccak(SEED))
        assert commitment.player_seed == SEED

    def test_random_seed_generated(self) -> None:
        manager = CommitmentManager()
        a = manager.create_commitment()
        b = manager.create_commitment()
        assert len(a.player_seed) == 32
        assert a.player_seed != b.player_seed

    def test_seed_not_in_repr(self) -> None:
        commitment = CommitmentManager().create_commitment(SEED)
        assert SEED.hex() not in repr(commitment)
        assert repr(SEED) not in repr(commitment)

    def test_commitment_rejects_short_hash(self) -> None:
        with pytest.raises(ValueError):
            Commitment(player_seed=SEED, commitment_hash=b"\x01")


class TestRevealVerification:
    def test_correct_reveal_accepted(self) -> None:
        manager = CommitmentManager()
        commitment = manager.create_commitment(SEED)
        assert manager.verify_reveal(commitment.commitment_hash, SEED)

    def test_single_bit_flip_in_seed_rejected(self) -> None:
        manager = CommitmentManager()
        commitment = manager.create_commitment(SEED)
        for index in (0, 15, 31):
            assert not manager.verify_reveal(commitment.commitment_hash, _flip_bit(SEED, index))

    def test_single_bit_flip_in_hash_rejected(self) -> None:
        manager = CommitmentManager()
        commitment = manager.create_commitment(SEED)
        assert not manager.verify_reveal(_flip_bit(commitment.commitment_hash), SEED)

    def test_malformed_input_fails_closed(self) -> None:
        manager = CommitmentManager()
        commitment = manager.create_commitment(SEED)
        assert not manager.verify_reveal(commitment.commitment_hash, SEED[:16])
        assert not manager.verify_reveal(b"", SEED)
        assert not manager.verify_reveal(commitment.commitment_hash, None)  # type: ignore[arg-type]

    def test_require_valid_reveal_raises(self) -> None:
        manager = CommitmentManager()
        commitment = manager.create_commitment(SEED)
        with pytest.raises(InvalidCommitmentError):
            manager.require_valid_reveal(commitment.commitment_hash, _flip_bit(SEED))

    def test_require_valid_reveal_returns_commitment(self) -> None:
        manager = CommitmentManager()
        commitment = manager.create_commitment(SEED)
        assert manager.require_valid_reveal(commitment.commitment_hash, SEED) == commitment


class TestSeedEntropy:
    def test_defaults_are_zero(self) -> None:
        entropy = SeedEntropy()
        assert entropy.nonce == 0
        assert entropy.block_number == 0
        assert entropy.future_block_hash == b"\x00" * 32

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            SeedEntropy(nonce=-1)

    def test_rejects_oversized(self) -> None:
        with pytest.raises(ValueError):
            SeedEntropy(block_number=2**256)
