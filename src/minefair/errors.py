"""Error taxonomy for the outcome engine.

Fatal conditions (commitment mismatch, exhausted derivation) end the
session in a refundable terminal state. Non-fatal conditions (duplicate or
out-of-range reveals) are rejected and leave the session untouched.

Overflow is not represented here: multipliers saturate at the policy cap
and carry a ``capped`` flag instead. A bankroll trip is a mandated forced
cash-out, not an error.
"""

from __future__ import annotations


class GameError(Exception):
    """Base class for all engine errors.

    ``code`` is the stable machine-readable identifier surfaced to the
    session host in service results.
    """
    code = "game_error"
    fatal = False


class InvalidCommitmentError(GameError):
    """Revealed seed does not hash to the posted commitment."""
    code = "invalid_commitment"
    fatal = True


class DuplicateRevealError(GameError):
    """Position has already been revealed in this session."""
    code = "duplicate_reveal"


class OutOfRangePositionError(GameError):
    """Position lies outside [0, grid_size)."""
    code = "out_of_range_position"


class NoSafeTilesRemainingError(GameError):
    """Requested reveal count exceeds grid_size - bomb_count."""
    code = "no_safe_tiles_remaining"


class DerivationExhaustedError(GameError):
    """Bomb derivation hit its attempt cap before completing the set."""
    code = "derivation_exhausted"
    fatal = True


class SessionTransitionError(GameError):
    """Requested lifecycle transition is not allowed from the current status."""
    code = "illegal_transition"


class SessionNotFoundError(GameError):
    """No session with the given id is known to the host."""
    code = "session_not_found"


class DisclosureError(GameError):
    """Secret material requested before the disclosure policy allows it."""
    code = "not_disclosed"
