"""Fairness verifier — replays a finished game from its disclosed inputs.

Given the seeds, difficulty, layout version, bet and the recorded reveal
sequence, recompute:
1. The commitment hash from the player seed.
2. The combined seed under the recorded layout.
3. The bomb set.
4. The outcome of each recorded reveal.
5. The payout.

Every mismatch is reported; the verifier never stops at the first one.
A forced cash-out cannot be fully replayed without the bankroll history,
so its payout is only checked against the multiplier ladder.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from minefair.crypto.commitment import CommitmentManager
from minefair.crypto.keccak import seed_from_hex, to_hex
from minefair.crypto.seed_combiner import SeedCombiner
from minefair.engine.multiplier import MultiplierEngine
from minefair.engine.tile_deriver import derive_bombs
from minefair.errors import DisclosureError, GameError
from minefair.models.commitment import SeedEntropy
from minefair.models.session import Difficulty, GameSession, SessionStatus
from minefair.policy.resolver import GamePolicy


@dataclass(frozen=True)
class GameRecord:
    """Everything an outside party needs to audit one game."""
    player_seed: bytes
    commitment_hash: bytes
    counterparty_seed: bytes
    difficulty: Difficulty
    layout_version: str
    bet: int
    revealed_positions: tuple[int, ...]
    status: SessionStatus
    payout: int
    bomb_position: Optional[int] = None
    entropy: SeedEntropy = field(default_factory=SeedEntropy)
    combined_seed: Optional[bytes] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_seed": to_hex(self.player_seed),
            "commitment_hash": to_hex(self.commitment_hash),
            "counterparty_seed": to_hex(self.counterparty_seed),
            "difficulty": self.difficulty.value,
            "layout_version": self.layout_version,
            "bet": self.bet,
            "revealed_positions": list(self.revealed_positions),
            "status": self.status.value,
            "payout": self.payout,
            "bomb_position": self.bomb_position,
            "entropy": {
                "nonce": self.entropy.nonce,
                "block_number": self.entropy.block_number,
                "future_block_hash": to_hex(self.entropy.future_block_hash),
            },
            "combined_seed": to_hex(self.combined_seed) if self.combined_seed else None,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> GameRecord:
        entropy_data = data.get("entropy") or {}
        entropy = SeedEntropy(
            nonce=int(entropy_data.get("nonce", 0)),
            block_number=int(entropy_data.get("block_number", 0)),
            future_block_hash=seed_from_hex(
                entropy_data.get("future_block_hash", "0x" + "00" * 32),
                "future_block_hash",
            ),
        )
        combined = data.get("combined_seed")
        return GameRecord(
            player_seed=seed_from_hex(data["player_seed"], "player_seed"),
            commitment_hash=seed_from_hex(data["commitment_hash"], "commitment_hash"),
            counterparty_seed=seed_from_hex(data["counterparty_seed"], "counterparty_seed"),
            difficulty=Difficulty(data["difficulty"]),
            layout_version=data["layout_version"],
            bet=int(data["bet"]),
            revealed_positions=tuple(int(p) for p in data["revealed_positions"]),
            status=SessionStatus(data["status"]),
            payout=int(data["payout"]),
            bomb_position=data.get("bomb_position"),
            entropy=entropy,
            combined_seed=seed_from_hex(combined, "combined_seed") if combined else None,
        )


@dataclass(frozen=True)
class VerificationReport:
    """Result of replaying a GameRecord."""
    valid: bool
    errors: list[str]
    combined_seed: Optional[bytes]
    bombs: frozenset
    expected_payout: Optional[int]


def record_from_session(session: GameSession) -> GameRecord:
    """Build an audit record from a finished session.

    Raises DisclosureError unless the session has ended with both seeds
    known and its disclosure policy lets them be published.
    """
    if not session.is_terminal:
        raise DisclosureError(f"Session {session.session_id} has not ended")
    if session.commitment is None or session.counterparty_seed is None:
        raise DisclosureError(f"Session {session.session_id} never received both seeds")
    if not session.seeds_disclosed:
        raise DisclosureError(f"Seeds for {session.session_id} have not been released")
    return GameRecord(
        player_seed=session.commitment.player_seed,
        commitment_hash=session.commitment.commitment_hash,
        counterparty_seed=session.counterparty_seed,
        difficulty=session.difficulty,
        layout_version=session.combined_seed.layout_version if session.combined_seed else "v2",
        bet=session.bet,
        revealed_positions=tuple(session.revealed_positions),
        status=session.status,
        payout=session.payout or 0,
        bomb_position=session.bomb_position,
        entropy=session.entropy or SeedEntropy(),
        combined_seed=session.combined_seed.value if session.combined_seed else None,
    )


def verify_game(record: GameRecord, policy: GamePolicy) -> VerificationReport:
    """Replay ``record`` under ``policy`` and report every discrepancy."""
    errors: list[str] = []

    if not CommitmentManager().verify_reveal(record.commitment_hash, record.player_seed):
        errors.append("player seed does not match the commitment hash")

    try:
        combined = SeedCombiner(record.layout_version).combine(
            record.player_seed,
            record.counterparty_seed,
            difficulty=record.difficulty,
            entropy=record.entropy,
        ).value
    except ValueError as exc:
        errors.append(str(exc))
        return VerificationReport(False, errors, None, frozenset(), None)
    if record.combined_seed is not None and record.combined_seed != combined:
        errors.append(
            f"combined seed mismatch: recorded {to_hex(record.combined_seed)}, "
            f"recomputed {to_hex(combined)}"
        )

    bomb_count = policy.bomb_count(record.difficulty)
    try:
        bombs = derive_bombs(
            combined, bomb_count, policy.grid_size,
            max_attempts=policy.max_derivation_attempts,
        )
    except GameError as exc:
        errors.append(f"bomb derivation failed: {exc}")
        return VerificationReport(False, errors, combined, frozenset(), None)

    positions = record.revealed_positions
    if len(set(positions)) != len(positions):
        errors.append("revealed positions contain duplicates")
    for position in positions:
        if not 0 <= position < policy.grid_size:
            errors.append(f"revealed position {position} is off the board")
        elif position in bombs:
            errors.append(f"revealed position {position} is a bomb but was recorded as safe")

    engine = MultiplierEngine(policy)
    expected: Optional[int]
    try:
        ladder_top = engine.payout_for(record.bet, len(positions), bomb_count)
    except GameError as exc:
        errors.append(f"multiplier failed: {exc}")
        ladder_top = None

    if record.status == SessionStatus.LOST_ON_BOMB:
        expected = 0
        if record.bomb_position is None:
            errors.append("lost game does not record the bomb position")
        elif record.bomb_position not in bombs:
            errors.append(f"bomb position {record.bomb_position} is not a bomb")
    elif record.status == SessionStatus.WON_CASHED_OUT:
        expected = ladder_top
        if not positions:
            errors.append("cashed out without any safe reveal")
    elif record.status == SessionStatus.FORFEITED:
        expected = 0
    elif record.status == SessionStatus.FORCED_CASHOUT:
        expected = None
        if ladder_top is not None and record.payout > ladder_top:
            errors.append(
                f"forced cash-out paid {record.payout}, above the multiplier "
                f"ladder value {ladder_top}"
            )
    else:
        expected = None
        errors.append(f"game is not finished: {record.status.value}")

    if expected is not None and record.payout != expected:
        errors.append(f"payout mismatch: recorded {record.payout}, expected {expected}")

    return VerificationReport(
        valid=not errors,
        errors=errors,
        combined_seed=combined,
        bombs=bombs,
        expected_payout=expected,
    )
