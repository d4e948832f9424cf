"""Commitment manager — player-side commit/reveal.

    commitment_hash = keccak256(player_seed)

``player_seed`` is exactly 32 bytes and hashed with no framing, so any
independent verifier can recompute the hash from the raw seed alone.

Verification fails closed: malformed input is treated as a mismatch and
never partially trusted.
"""

from __future__ import annotations

import hmac
import secrets

from minefair.crypto.keccak import SEED_LENGTH, keccak256, require_seed
from minefair.errors import InvalidCommitmentError
from minefair.models.commitment import Commitment


class CommitmentManager:
    """Creates and verifies seed commitments.

    Usage:
        manager = CommitmentManager()
        commitment = manager.create_commitment()
        # publish commitment.commitment_hash, keep player_seed private
        ...
        manager.verify_reveal(commitment.commitment_hash, revealed_seed)
    """

    @staticmethod
    def generate_seed() -> bytes:
        """Fresh cryptographically random 32-byte seed."""
        return secrets.token_bytes(SEED_LENGTH)

    @staticmethod
    def hash_seed(player_seed: bytes) -> bytes:
        return keccak256(require_seed(player_seed, "player_seed"))

    def create_commitment(self, player_seed: bytes | None = None) -> Commitment:
        """Create a commitment over a fresh (or supplied) player seed.

        The caller must persist ``commitment_hash`` before any wagering
        action is considered valid.
        """
        if player_seed is None:
            player_seed = self.generate_seed()
        return Commitment(
            player_seed=require_seed(player_seed, "player_seed"),
            commitment_hash=self.hash_seed(player_seed),
        )

    def verify_reveal(self, commitment_hash: bytes, revealed_seed: bytes) -> bool:
        """True iff ``revealed_seed`` hashes to ``commitment_hash``."""
        try:
            expected = require_seed(commitment_hash, "commitment_hash")
            actual = self.hash_seed(revealed_seed)
        except (TypeError, ValueError):
            return False
        return hmac.compare_digest(expected, actual)

    def require_valid_reveal(self, commitment_hash: bytes, revealed_seed: bytes) -> Commitment:
        """Verify a reveal and return the reconstructed Commitment.

        Raises InvalidCommitmentError on any mismatch.
        """
        if not self.verify_reveal(commitment_hash, revealed_seed):
            raise InvalidCommitmentError(
                "Revealed seed does not hash to the posted commitment"
            )
        return Commitment(player_seed=bytes(revealed_seed), commitment_hash=bytes(commitment_hash))
