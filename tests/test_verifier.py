"""Tests for the fairness verifier — proves finished games can be audited."""

import dataclasses
import json

import pytest

from minefair.crypto.commitment import CommitmentManager
from minefair.engine.state_machine import GameSessionStateMachine
from minefair.engine.verifier import GameRecord, record_from_session, verify_game
from minefair.errors import DisclosureError
from minefair.models.commitment import SeedEntropy
from minefair.models.session import BankrollSnapshot, Difficulty, GameSession, SessionStatus
from minefair.policy.resolver import GamePolicy


PLAYER_SEED = b"\x0a" * 32
COUNTERPARTY_SEED = b"\x0b" * 32
RICH = BankrollSnapshot(10**15)
POLICY = GamePolicy()


def _played_session(
    reveals: int = 2,
    hit_bomb: bool = False,
    entropy: SeedEntropy | None = None,
) -> tuple[GameSession, frozenset]:
    sm = GameSessionStateMachine(POLICY)
    session = sm.create_session("alice", 2_000, Difficulty.GOD_OF_WAR)
    sm.post_commitment(session, CommitmentManager.hash_seed(PLAYER_SEED))
    bombs = sm.supply_seeds(session, PLAYER_SEED, COUNTERPARTY_SEED, entropy=entropy)
    safe = [p for p in range(36) if p not in bombs]
    for position in safe[:reveals]:
        sm.reveal(session, position, RICH)
    if hit_bomb:
        sm.reveal(session, min(bombs), RICH)
    else:
        sm.cash_out(session, RICH)
    return session, bombs


class TestHonestGames:
    def test_won_game_verifies(self) -> None:
        session, bombs = _played_session()
        report = verify_game(record_from_session(session), POLICY)
        assert report.valid, report.errors
        assert report.bombs == bombs
        assert report.combined_seed == session.combined_seed.value

    def test_lost_game_verifies(self) -> None:
        session, _ = _played_session(hit_bomb=True)
        report = verify_game(record_from_session(session), POLICY)
        assert report.valid, report.errors
        assert report.expected_payout == 0

    def test_entropy_is_carried(self) -> None:
        entropy = SeedEntropy(nonce=3, block_number=42, future_block_hash=b"\x0c" * 32)
        session, _ = _played_session(entropy=entropy)
        record = record_from_session(session)
        assert record.entropy == entropy
        assert verify_game(record, POLICY).valid

    def test_json_round_trip_still_verifies(self) -> None:
        session, _ = _played_session()
        data = json.loads(json.dumps(record_from_session(session).to_dict()))
        assert verify_game(GameRecord.from_dict(data), POLICY).valid


class TestTamperedGames:
    def test_wrong_player_seed(self) -> None:
        session, _ = _played_session()
        record = dataclasses.replace(record_from_session(session), player_seed=b"\x0d" * 32)
        report = verify_game(record, POLICY)
        assert not report.valid
        assert any("commitment" in error for error in report.errors)

    def test_inflated_payout(self) -> None:
        session, _ = _played_session()
        record = record_from_session(session)
        report = verify_game(dataclasses.replace(record, payout=record.payout + 1), POLICY)
        assert not report.valid
        assert any("payout mismatch" in error for error in report.errors)

    def test_bomb_recorded_as_safe(self) -> None:
        session, bombs = _played_session()
        record = record_from_session(session)
        tampered = dataclasses.replace(
            record, revealed_positions=record.revealed_positions[:-1] + (min(bombs),),
        )
        assert not verify_game(tampered, POLICY).valid

    def test_loss_on_safe_tile(self) -> None:
        session, bombs = _played_session(hit_bomb=True)
        safe = next(p for p in range(36) if p not in bombs)
        record = dataclasses.replace(record_from_session(session), bomb_position=safe)
        assert not verify_game(record, POLICY).valid

    def test_combined_seed_mismatch(self) -> None:
        session, _ = _played_session()
        record = dataclasses.replace(record_from_session(session), combined_seed=b"\x00" * 32)
        report = verify_game(record, POLICY)
        assert any("combined seed mismatch" in error for error in report.errors)

    def test_forced_payout_above_ladder(self) -> None:
        session, _ = _played_session()
        record = dataclasses.replace(
            record_from_session(session),
            status=SessionStatus.FORCED_CASHOUT,
            payout=10**9,
        )
        assert not verify_game(record, POLICY).valid

    def test_unknown_layout(self) -> None:
        session, _ = _played_session()
        record = dataclasses.replace(record_from_session(session), layout_version="v9")
        report = verify_game(record, POLICY)
        assert not report.valid
        assert report.combined_seed is None


class TestRecordExtraction:
    def test_live_session_refused(self) -> None:
        sm = GameSessionStateMachine(POLICY)
        session = sm.create_session("alice", 10, Difficulty.NORMAL)
        with pytest.raises(DisclosureError):
            record_from_session(session)

    def test_session_without_seeds_refused(self) -> None:
        sm = GameSessionStateMachine(POLICY)
        session = sm.create_session("alice", 10, Difficulty.NORMAL)
        sm.forfeit(session)
        with pytest.raises(DisclosureError):
            record_from_session(session)
