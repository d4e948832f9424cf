"""Game session state machine — orchestrates one game's lifecycle.

Pure computation over a GameSession: commitment checks, seed combination,
bomb derivation, reveal validation, risk checks and settlement. Side
effects beyond the session object (event logging, session registry) are
handled by the service layer.

Rejections are fail-closed and non-mutating: every check runs before the
session is touched. Fatal conditions (invalid commitment, exhausted
derivation) end the session as FORFEITED with ``refundable=True`` and then
re-raise, so a caller can never retry the same session with different
seeds.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from minefair.crypto.commitment import CommitmentManager
from minefair.crypto.keccak import require_seed
from minefair.crypto.seed_combiner import SeedCombiner
from minefair.engine.multiplier import MultiplierEngine, MultiplierQuote
from minefair.engine.risk_guard import RiskDecision, RiskGuard
from minefair.engine.tile_deriver import derive_bombs
from minefair.errors import (
    DerivationExhaustedError,
    DuplicateRevealError,
    InvalidCommitmentError,
    OutOfRangePositionError,
    SessionTransitionError,
)
from minefair.models.commitment import SeedEntropy
from minefair.models.session import (
    BankrollSnapshot,
    Difficulty,
    GameSession,
    SessionStatus,
)
from minefair.policy.resolver import GamePolicy


class RevealResult(str, enum.Enum):
    SAFE = "safe"
    BOMB = "bomb"
    FORCED_CASHOUT = "forced_cashout"


class EndReason(str, enum.Enum):
    CASHED_OUT = "cashed_out"
    HIT_BOMB = "hit_bomb"
    PLAYER_FORFEIT = "player_forfeit"
    HOST_CANCELLED = "host_cancelled"
    INVALID_COMMITMENT = "invalid_commitment"
    DERIVATION_EXHAUSTED = "derivation_exhausted"
    BANKROLL_LIMIT = "bankroll_limit"
    BANKROLL_CHANGED = "bankroll_changed"


@dataclass(frozen=True)
class RevealOutcome:
    """What happened when a tile reveal was requested."""
    position: int
    result: RevealResult
    quote: Optional[MultiplierQuote]
    decision: RiskDecision

    @property
    def ended(self) -> bool:
        return self.result != RevealResult.SAFE


@dataclass(frozen=True)
class Settlement:
    """Final payout of a session."""
    status: SessionStatus
    payout: int
    safe_reveals: int
    quote: Optional[MultiplierQuote]
    decision: Optional[RiskDecision]


class GameSessionStateMachine:
    """Drives GameSession objects through their lifecycle.

    Usage:
        sm = GameSessionStateMachine(policy)
        session = sm.create_session("alice", 1_000, Difficulty.NORMAL)
        sm.post_commitment(session, commitment.commitment_hash)
        sm.supply_seeds(session, commitment.player_seed, operator_seed)
        outcome = sm.reveal(session, 7, bankroll)
        settlement = sm.cash_out(session, bankroll)
    """

    def __init__(self, policy: GamePolicy) -> None:
        self._policy = policy
        self._commitments = CommitmentManager()
        self._combiner = SeedCombiner(policy.seed_layout)
        self._multipliers = MultiplierEngine(policy)
        self._risk = RiskGuard(policy.bankroll_cap_ratio)

    @property
    def policy(self) -> GamePolicy:
        return self._policy

    @property
    def multipliers(self) -> MultiplierEngine:
        return self._multipliers

    @property
    def risk_guard(self) -> RiskGuard:
        return self._risk

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def create_session(
        self,
        player: str,
        bet: int,
        difficulty: Difficulty,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> GameSession:
        """Create a session in CREATED state. The bet is assumed escrowed."""
        if not player:
            raise ValueError("Player id is required")
        if isinstance(bet, bool) or not isinstance(bet, int):
            raise TypeError("Bet must be an integer amount in the smallest currency unit")
        if bet < self._policy.min_bet:
            raise ValueError(f"Bet must be at least {self._policy.min_bet}, got {bet}")
        if now is None:
            now = datetime.now(timezone.utc)
        if session_id is None:
            session_id = f"game_{uuid4().hex[:12]}"
        return GameSession(
            session_id=session_id,
            player=player,
            bet=bet,
            difficulty=difficulty,
            bomb_count=self._policy.bomb_count(difficulty),
            grid_size=self._policy.grid_size,
            created_utc=now,
            disclosure=self._policy.disclosure,
        )

    def post_commitment(self, session: GameSession, commitment_hash: bytes) -> None:
        """CREATED → AWAITING_REVEAL."""
        commitment_hash = require_seed(commitment_hash, "commitment_hash")
        session.transition_to(SessionStatus.AWAITING_REVEAL)
        session.commitment_hash = commitment_hash

    def supply_seeds(
        self,
        session: GameSession,
        player_seed: bytes,
        counterparty_seed: bytes,
        entropy: Optional[SeedEntropy] = None,
        now: Optional[datetime] = None,
    ) -> frozenset:
        """AWAITING_REVEAL → ACTIVE once both seed halves are known.

        Verifies the player seed against the posted commitment, combines
        the seeds, derives and caches the bomb set. Returns the bomb set
        for the caller's own bookkeeping; it is not exposed to players.
        """
        if session.status != SessionStatus.AWAITING_REVEAL:
            raise SessionTransitionError(
                f"Seeds can only be supplied while awaiting reveal, "
                f"session {session.session_id} is {session.status.value}"
            )
        counterparty_seed = require_seed(counterparty_seed, "counterparty_seed")
        if now is None:
            now = datetime.now(timezone.utc)

        try:
            commitment = self._commitments.require_valid_reveal(
                session.commitment_hash, player_seed,
            )
        except InvalidCommitmentError:
            self._abort(session, EndReason.INVALID_COMMITMENT, now)
            raise

        combined = self._combiner.combine(
            commitment.player_seed,
            counterparty_seed,
            difficulty=session.difficulty,
            entropy=entropy,
        )
        try:
            bombs = derive_bombs(
                combined.value,
                session.bomb_count,
                session.grid_size,
                max_attempts=self._policy.max_derivation_attempts,
            )
        except DerivationExhaustedError:
            session.commitment = commitment
            session.counterparty_seed = counterparty_seed
            session.entropy = entropy
            session.combined_seed = combined
            self._abort(session, EndReason.DERIVATION_EXHAUSTED, now)
            raise

        session.transition_to(SessionStatus.ACTIVE)
        session.commitment = commitment
        session.counterparty_seed = counterparty_seed
        session.entropy = entropy
        session.combined_seed = combined
        session.attach_bombs(bombs)
        session.activated_utc = now
        return bombs

    # ------------------------------------------------------------------
    # Play
    # ------------------------------------------------------------------

    def current_quote(self, session: GameSession) -> MultiplierQuote:
        return self._multipliers.quote(session.safe_reveals, session.bomb_count)

    def validate_reveal(self, session: GameSession, position: int) -> MultiplierQuote:
        """Check a reveal request without mutating anything.

        Returns the quote the reveal would produce if the tile is safe.
        """
        if not session.is_active:
            raise SessionTransitionError(
                f"Reveals require an active session, "
                f"{session.session_id} is {session.status.value}"
            )
        if isinstance(position, bool) or not isinstance(position, int):
            raise OutOfRangePositionError(f"Position must be an integer, got {position!r}")
        if not 0 <= position < session.grid_size:
            raise OutOfRangePositionError(
                f"Position {position} outside [0, {session.grid_size})"
            )
        if position in session.revealed_positions:
            raise DuplicateRevealError(f"Position {position} already revealed")
        return self._multipliers.quote(session.safe_reveals + 1, session.bomb_count)

    def check_risk(
        self,
        session: GameSession,
        bankroll: BankrollSnapshot,
        additional_reveals: int = 1,
    ) -> RiskDecision:
        """Risk decision for advancing ``additional_reveals`` more tiles."""
        quote = self._multipliers.quote(
            session.safe_reveals + additional_reveals, session.bomb_count,
        )
        return self._risk.check(bankroll, session.bet, quote.payout(session.bet))

    def reveal(
        self,
        session: GameSession,
        position: int,
        bankroll: BankrollSnapshot,
        now: Optional[datetime] = None,
    ) -> RevealOutcome:
        """Reveal a tile.

        Order of checks: status, range, duplicate, remaining safe tiles,
        risk guard, bomb. A risk trip refuses the reveal and settles the
        session at the last safely-payable multiplier.
        """
        next_quote = self.validate_reveal(session, position)
        decision = self._risk.check(bankroll, session.bet, next_quote.payout(session.bet))
        if now is None:
            now = datetime.now(timezone.utc)

        if decision.force_cashout:
            settlement = self._settle_forced(session, bankroll, EndReason.BANKROLL_LIMIT, now)
            return RevealOutcome(
                position=position,
                result=RevealResult.FORCED_CASHOUT,
                quote=settlement.quote,
                decision=decision,
            )

        if session.is_bomb(position):
            session.transition_to(SessionStatus.LOST_ON_BOMB)
            session.bomb_position = position
            session.payout = 0
            session.end_reason = EndReason.HIT_BOMB.value
            session.ended_utc = now
            return RevealOutcome(
                position=position,
                result=RevealResult.BOMB,
                quote=self.current_quote(session),
                decision=decision,
            )

        session.revealed_positions.append(position)
        return RevealOutcome(
            position=position,
            result=RevealResult.SAFE,
            quote=next_quote,
            decision=decision,
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def cash_out(
        self,
        session: GameSession,
        bankroll: Optional[BankrollSnapshot] = None,
        now: Optional[datetime] = None,
    ) -> Settlement:
        """ACTIVE → WON_CASHED_OUT at the current multiplier.

        When a bankroll snapshot is supplied the payout is re-validated
        against it; if the bankroll moved adversely since the last reveal
        the session settles as FORCED_CASHOUT instead.
        """
        if not session.is_active:
            raise SessionTransitionError(
                f"Cannot cash out session {session.session_id} in status {session.status.value}"
            )
        if session.safe_reveals == 0:
            raise SessionTransitionError(
                f"Cannot cash out session {session.session_id} before any safe reveal"
            )
        if now is None:
            now = datetime.now(timezone.utc)

        quote = self.current_quote(session)
        payout = quote.payout(session.bet)
        decision = None
        if bankroll is not None:
            decision = self._risk.check(bankroll, session.bet, payout)
            if decision.force_cashout:
                return self._settle_forced(session, bankroll, EndReason.BANKROLL_CHANGED, now)

        session.transition_to(SessionStatus.WON_CASHED_OUT)
        session.payout = payout
        session.end_reason = EndReason.CASHED_OUT.value
        session.ended_utc = now
        return Settlement(
            status=session.status,
            payout=payout,
            safe_reveals=session.safe_reveals,
            quote=quote,
            decision=decision,
        )

    def forfeit(
        self,
        session: GameSession,
        reason: EndReason = EndReason.PLAYER_FORFEIT,
        refundable: bool = False,
        now: Optional[datetime] = None,
    ) -> Settlement:
        """Any live status → FORFEITED with zero payout.

        Forfeiting an already-terminal session raises and changes nothing.
        """
        if session.is_terminal:
            raise SessionTransitionError(
                f"Session {session.session_id} already ended as {session.status.value}"
            )
        if now is None:
            now = datetime.now(timezone.utc)
        session.transition_to(SessionStatus.FORFEITED)
        session.payout = 0
        session.refundable = refundable
        session.end_reason = reason.value
        session.ended_utc = now
        return Settlement(
            status=session.status,
            payout=0,
            safe_reveals=session.safe_reveals,
            quote=None,
            decision=None,
        )

    def _abort(self, session: GameSession, reason: EndReason, now: datetime) -> None:
        """End a session after a fatal error. The bet is refundable."""
        self.forfeit(session, reason=reason, refundable=True, now=now)

    def _settle_forced(
        self,
        session: GameSession,
        bankroll: BankrollSnapshot,
        reason: EndReason,
        now: datetime,
    ) -> Settlement:
        """Settle at the highest reveal count the bankroll can still pay.

        Normally that is the current count. If the bankroll has shrunk
        since, walk back to the last count whose payout fits. If not even
        the zero-reveal multiplier fits, nothing is paid and the bet is
        refundable.
        """
        limit = self._risk.limit(bankroll, session.bet)
        quote: Optional[MultiplierQuote] = None
        payout = 0
        for count in range(session.safe_reveals, -1, -1):
            candidate = self._multipliers.quote(count, session.bomb_count)
            if candidate.payout(session.bet) <= limit:
                quote = candidate
                payout = candidate.payout(session.bet)
                break
        refundable = quote is None

        decision = self._risk.check(bankroll, session.bet, payout)
        session.transition_to(SessionStatus.FORCED_CASHOUT)
        session.payout = payout
        session.refundable = refundable
        session.end_reason = reason.value
        session.ended_utc = now
        return Settlement(
            status=session.status,
            payout=payout,
            safe_reveals=session.safe_reveals,
            quote=quote,
            decision=decision,
        )
