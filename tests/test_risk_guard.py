"""Tests for the risk guard — proves exposure is capped without underflow."""

from fractions import Fraction

import pytest

from minefair.engine.risk_guard import (
    RiskGuard,
    RiskReason,
    max_allowed_payout,
    should_force_cashout,
)
from minefair.models.session import BankrollSnapshot


CAP = Fraction(1, 5)


class TestMaxAllowedPayout:
    def test_twenty_percent_of_net_bankroll(self) -> None:
        assert max_allowed_payout(100, 5, CAP) == 19

    def test_floors(self) -> None:
        assert max_allowed_payout(101, 5, CAP) == 19
        assert max_allowed_payout(105, 5, CAP) == 20

    def test_bankroll_equal_to_bet_is_zero(self) -> None:
        assert max_allowed_payout(5, 5, CAP) == 0

    def test_bankroll_below_bet_does_not_underflow(self) -> None:
        assert max_allowed_payout(3, 5, CAP) == 0

    def test_cap_fraction_bounds(self) -> None:
        with pytest.raises(ValueError):
            max_allowed_payout(100, 5, Fraction(0))
        with pytest.raises(ValueError):
            max_allowed_payout(100, 5, Fraction(3, 2))

    def test_negative_inputs_rejected(self) -> None:
        with pytest.raises(ValueError):
            max_allowed_payout(-1, 5, CAP)


class TestShouldForceCashout:
    def test_payout_at_limit_is_allowed(self) -> None:
        decision = should_force_cashout(100, 5, 19, CAP)
        assert not decision.force_cashout
        assert decision.reason == RiskReason.WITHIN_LIMIT

    def test_payout_above_limit_forces(self) -> None:
        decision = should_force_cashout(100, 5, 20, CAP)
        assert decision.force_cashout
        assert decision.reason == RiskReason.BANKROLL_EXCEEDED
        assert decision.max_allowed_payout == 19

    def test_depleted_bankroll_forces_any_positive_payout(self) -> None:
        decision = should_force_cashout(5, 5, 1, CAP)
        assert decision.force_cashout
        assert decision.reason == RiskReason.BANKROLL_DEPLETED
        assert decision.max_allowed_payout == 0

    def test_zero_payout_never_forces(self) -> None:
        assert not should_force_cashout(0, 5, 0, CAP).force_cashout

    def test_as_tuple_carries_message(self) -> None:
        force, message = should_force_cashout(100, 5, 20, CAP).as_tuple()
        assert force is True
        assert "19" in message

    def test_negative_payout_rejected(self) -> None:
        with pytest.raises(ValueError):
            should_force_cashout(100, 5, -1, CAP)


class TestRiskGuard:
    def test_check_uses_snapshot(self) -> None:
        guard = RiskGuard(CAP)
        assert guard.check(BankrollSnapshot(100), 5, 20).force_cashout
        assert guard.limit(BankrollSnapshot(100), 5) == 19

    def test_negative_snapshot_rejected(self) -> None:
        with pytest.raises(ValueError):
            BankrollSnapshot(-1)
