"""Cryptographic primitives — Keccak hashing, seed commitments, seed combination."""

from minefair.crypto.commitment import CommitmentManager

__all__ = ["CommitmentManager"]
