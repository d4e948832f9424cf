"""Game session model — one player's wager from escrow to settlement.

State machine:
    CREATED → AWAITING_REVEAL       (commitment hash posted)
    AWAITING_REVEAL → ACTIVE        (both seeds known, bomb set derived)
    ACTIVE → ACTIVE                 (safe reveal; status unchanged)
    ACTIVE → LOST_ON_BOMB           (bomb revealed)
    ACTIVE → WON_CASHED_OUT         (player cashes out)
    ACTIVE → FORCED_CASHOUT         (risk guard trips)
    ACTIVE → FORFEITED              (player abandons)
    CREATED | AWAITING_REVEAL → FORFEITED
                                    (cancel, invalid commitment,
                                     derivation exhausted)

LOST_ON_BOMB, WON_CASHED_OUT, FORCED_CASHOUT and FORFEITED are terminal.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from minefair.crypto.keccak import to_hex
from minefair.errors import DisclosureError, SessionTransitionError
from minefair.models.commitment import CombinedSeed, Commitment, SeedEntropy


class Difficulty(str, enum.Enum):
    """Difficulty tiers. Bomb counts come from the policy."""
    NORMAL = "normal"
    GOD_OF_WAR = "god_of_war"

    @property
    def tag(self) -> int:
        """Stable uint8 tag hashed into seed layout v2."""
        return _DIFFICULTY_TAGS[self]


_DIFFICULTY_TAGS: Dict[Difficulty, int] = {
    Difficulty.NORMAL: 0,
    Difficulty.GOD_OF_WAR: 1,
}


class SessionStatus(str, enum.Enum):
    CREATED = "created"
    AWAITING_REVEAL = "awaiting_reveal"
    ACTIVE = "active"
    WON_CASHED_OUT = "won_cashed_out"
    LOST_ON_BOMB = "lost_on_bomb"
    FORFEITED = "forfeited"
    FORCED_CASHOUT = "forced_cashout"


class DisclosurePolicy(str, enum.Enum):
    """When a finished session's seeds become visible to queries.

    No policy discloses seeds before the session is terminal.
    ``on_release`` additionally withholds them until the host calls
    ``release_seeds``.
    """
    AFTER_RESOLUTION = "after_resolution"
    ON_RELEASE = "on_release"


TERMINAL_STATUSES = frozenset({
    SessionStatus.WON_CASHED_OUT,
    SessionStatus.LOST_ON_BOMB,
    SessionStatus.FORFEITED,
    SessionStatus.FORCED_CASHOUT,
})

SESSION_TRANSITIONS: Dict[SessionStatus, frozenset] = {
    SessionStatus.CREATED: frozenset({
        SessionStatus.AWAITING_REVEAL,
        SessionStatus.FORFEITED,
    }),
    SessionStatus.AWAITING_REVEAL: frozenset({
        SessionStatus.ACTIVE,
        SessionStatus.FORFEITED,
    }),
    SessionStatus.ACTIVE: frozenset({
        SessionStatus.LOST_ON_BOMB,
        SessionStatus.WON_CASHED_OUT,
        SessionStatus.FORCED_CASHOUT,
        SessionStatus.FORFEITED,
    }),
    SessionStatus.WON_CASHED_OUT: frozenset(),
    SessionStatus.LOST_ON_BOMB: frozenset(),
    SessionStatus.FORFEITED: frozenset(),
    SessionStatus.FORCED_CASHOUT: frozenset(),
}


@dataclass(frozen=True)
class BankrollSnapshot:
    """Bankroll balance as read by the host at decision time.

    Owned and mutated by the external bankroll collaborator only.
    """
    available_balance: int

    def __post_init__(self) -> None:
        if isinstance(self.available_balance, bool) or not isinstance(self.available_balance, int):
            raise ValueError(
                f"Bankroll balance must be an integer, got {self.available_balance!r}"
            )
        if self.available_balance < 0:
            raise ValueError("Bankroll balance cannot be negative")


@dataclass
class GameSession:
    """A single game's mutable lifecycle record.

    All status changes go through ``transition_to`` and are validated
    against SESSION_TRANSITIONS. The bomb set is attached once and cached
    for the session's lifetime.
    """
    session_id: str
    player: str
    bet: int
    difficulty: Difficulty
    bomb_count: int
    grid_size: int
    created_utc: datetime
    status: SessionStatus = SessionStatus.CREATED
    disclosure: DisclosurePolicy = DisclosurePolicy.AFTER_RESOLUTION
    commitment_hash: Optional[bytes] = None
    commitment: Optional[Commitment] = field(default=None, repr=False)
    counterparty_seed: Optional[bytes] = field(default=None, repr=False)
    entropy: Optional[SeedEntropy] = None
    combined_seed: Optional[CombinedSeed] = field(default=None, repr=False)
    revealed_positions: list[int] = field(default_factory=list)
    bomb_position: Optional[int] = None
    payout: Optional[int] = None
    refundable: bool = False
    seeds_released: bool = False
    end_reason: Optional[str] = None
    activated_utc: Optional[datetime] = None
    ended_utc: Optional[datetime] = None
    _bombs: Optional[frozenset] = field(default=None, init=False, repr=False, compare=False)

    def transition_to(self, new_status: SessionStatus) -> None:
        """Transition to a new status, validating the transition is legal."""
        allowed = SESSION_TRANSITIONS.get(self.status, frozenset())
        if new_status not in allowed:
            raise SessionTransitionError(
                f"Invalid session transition: {self.status.value} → {new_status.value}. "
                f"Allowed: {', '.join(sorted(s.value for s in allowed)) or 'none'}"
            )
        self.status = new_status

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def safe_reveals(self) -> int:
        return len(self.revealed_positions)

    @property
    def seeds_disclosed(self) -> bool:
        if not self.is_terminal or self.counterparty_seed is None:
            return False
        if self.disclosure == DisclosurePolicy.ON_RELEASE:
            return self.seeds_released
        return True

    def release_seeds(self) -> bool:
        """Mark a finished session's seeds as published.

        Returns False if they were already visible. Raises DisclosureError
        while the session is live or if it never received both seeds.
        """
        if not self.is_terminal:
            raise DisclosureError(
                f"Seeds for {self.session_id} are withheld while status is {self.status.value}"
            )
        if self.counterparty_seed is None:
            raise DisclosureError(f"Session {self.session_id} never received both seeds")
        if self.seeds_disclosed:
            return False
        self.seeds_released = True
        return True

    # ------------------------------------------------------------------
    # Bomb set cache
    # ------------------------------------------------------------------

    def attach_bombs(self, bombs: frozenset) -> None:
        """Cache the derived bomb set. May only be called once."""
        if self._bombs is not None:
            raise RuntimeError(f"Bomb set already attached to {self.session_id}")
        if len(bombs) != self.bomb_count:
            raise ValueError(
                f"Bomb set has {len(bombs)} positions, expected {self.bomb_count}"
            )
        self._bombs = frozenset(bombs)

    @property
    def has_bombs(self) -> bool:
        return self._bombs is not None

    def is_bomb(self, position: int) -> bool:
        if self._bombs is None:
            raise RuntimeError(f"No bomb set derived yet for {self.session_id}")
        return position in self._bombs

    def reveal_all(self) -> frozenset:
        """Return the full bomb set. Only available once the session has ended."""
        if not self.is_terminal:
            raise DisclosureError(
                f"Bomb set for {self.session_id} is hidden while status is {self.status.value}"
            )
        if self._bombs is None:
            raise DisclosureError(f"Session {self.session_id} ended before bombs were derived")
        return self._bombs

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def info(self) -> Dict[str, Any]:
        """Host-facing snapshot. Never leaks seeds before disclosure."""
        disclosed = self.seeds_disclosed
        return {
            "session_id": self.session_id,
            "player": self.player,
            "bet": self.bet,
            "active": self.is_active,
            "status": self.status.value,
            "commitment_hash": to_hex(self.commitment_hash) if self.commitment_hash else None,
            "difficulty": self.difficulty.value,
            "bomb_count": self.bomb_count,
            "start_time": self.created_utc.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "counterparty_seed": (
                to_hex(self.counterparty_seed) if disclosed else None
            ),
            "player_seed": (
                to_hex(self.commitment.player_seed)
                if disclosed and self.commitment is not None else None
            ),
            "seeds_revealed": disclosed,
            "layout_version": (
                self.combined_seed.layout_version if self.combined_seed else None
            ),
            "revealed_positions": list(self.revealed_positions),
            "bomb_position": self.bomb_position if self.is_terminal else None,
            "payout": self.payout,
            "refundable": self.refundable,
            "end_reason": self.end_reason,
        }
