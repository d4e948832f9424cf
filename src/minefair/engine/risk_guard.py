"""Risk guard — caps the operator's exposure per session.

    available   = max(0, bankroll − bet)
    max_allowed = floor(available × cap_fraction)
    force       = hypothetical_payout > max_allowed

Evaluated before every reveal with the payout that reveal would produce,
so a player can never advance past the bankroll's safe exposure. All
values are integers in the smallest currency unit; ``available`` is
clamped at zero instead of going negative.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from fractions import Fraction

from minefair.models.session import BankrollSnapshot


class RiskReason(str, enum.Enum):
    WITHIN_LIMIT = "within_limit"
    BANKROLL_EXCEEDED = "bankroll_exceeded"
    BANKROLL_DEPLETED = "bankroll_depleted"


_MESSAGES = {
    RiskReason.WITHIN_LIMIT: "Payout {payout} is within the limit of {limit}",
    RiskReason.BANKROLL_EXCEEDED: (
        "Payout {payout} would exceed the maximum allowed payout of {limit}; "
        "cash out now to claim your winnings"
    ),
    RiskReason.BANKROLL_DEPLETED: (
        "Bankroll cannot cover any payout beyond the bet; cash out required"
    ),
}


@dataclass(frozen=True)
class RiskDecision:
    """Outcome of a risk check."""
    force_cashout: bool
    reason: RiskReason
    max_allowed_payout: int
    hypothetical_payout: int

    @property
    def message(self) -> str:
        return _MESSAGES[self.reason].format(
            payout=self.hypothetical_payout, limit=self.max_allowed_payout,
        )

    def as_tuple(self) -> tuple[bool, str]:
        return self.force_cashout, self.message


def max_allowed_payout(bankroll: int, bet: int, cap_fraction: Fraction) -> int:
    """floor(max(0, bankroll − bet) × cap_fraction), in integers."""
    if bankroll < 0 or bet < 0:
        raise ValueError("Bankroll and bet must be non-negative")
    if not Fraction(0) < cap_fraction <= Fraction(1):
        raise ValueError(f"cap_fraction must be in (0, 1], got {cap_fraction}")
    available = max(0, bankroll - bet)
    return available * cap_fraction.numerator // cap_fraction.denominator


def should_force_cashout(
    bankroll: int,
    bet: int,
    hypothetical_payout: int,
    cap_fraction: Fraction,
) -> RiskDecision:
    """Decide whether ``hypothetical_payout`` breaches the exposure cap."""
    if hypothetical_payout < 0:
        raise ValueError("Hypothetical payout cannot be negative")
    limit = max_allowed_payout(bankroll, bet, cap_fraction)
    if hypothetical_payout <= limit:
        reason = RiskReason.WITHIN_LIMIT
    elif bankroll <= bet:
        reason = RiskReason.BANKROLL_DEPLETED
    else:
        reason = RiskReason.BANKROLL_EXCEEDED
    return RiskDecision(
        force_cashout=reason != RiskReason.WITHIN_LIMIT,
        reason=reason,
        max_allowed_payout=limit,
        hypothetical_payout=hypothetical_payout,
    )


class RiskGuard:
    """Policy-bound wrapper used by the session state machine."""

    def __init__(self, cap_fraction: Fraction) -> None:
        self._cap_fraction = cap_fraction

    @property
    def cap_fraction(self) -> Fraction:
        return self._cap_fraction

    def check(self, bankroll: BankrollSnapshot, bet: int, hypothetical_payout: int) -> RiskDecision:
        return should_force_cashout(
            bankroll.available_balance, bet, hypothetical_payout, self._cap_fraction,
        )

    def limit(self, bankroll: BankrollSnapshot, bet: int) -> int:
        return max_allowed_payout(bankroll.available_balance, bet, self._cap_fraction)
