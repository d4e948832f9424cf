"""Multiplier engine — fair-odds payout multiplier with edge and cap.

For k safe reveals on an N-tile board with B bombs:

    raw(k)  = ∏_{i<k} factor(i)
    mult(k) = min-saturated raw(k) × house_edge

    fixed_numerator:  factor(i) = N / (N − B − i)
    hypergeometric:   factor(i) = (N − i) / (N − B − i)

The fixed-numerator factor is the formula the deployed contract and its
client preview pay out, and is the default. The hypergeometric factor is
the exact reciprocal of the probability of k consecutive safe reveals and
remains selectable through the policy.

Saturation: once the running raw product exceeds the cap it is clamped to
the cap and no further factors are applied.

All arithmetic is exact (Fraction). The only rounding happens when the
ratio is converted to fixed point, and payouts are computed from that
fixed-point integer, so every consumer derives the same payout bit for bit:

    scaled = floor(ratio × 10^precision)
    payout = bet × scaled // 10^precision
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from typing import Optional

from minefair.errors import NoSafeTilesRemainingError
from minefair.policy.resolver import (
    GamePolicy,
    ODDS_FIXED_NUMERATOR,
    ODDS_HYPERGEOMETRIC,
)


@dataclass(frozen=True)
class MultiplierQuote:
    """A multiplier for a given number of safe reveals.

    ``ratio`` is exact. ``scaled`` is the fixed-point integer every
    payout is derived from.
    """
    safe_reveals: int
    ratio: Fraction
    raw_ratio: Fraction
    scaled: int
    precision: int
    capped: bool

    @property
    def scale(self) -> int:
        return 10 ** self.precision

    def payout(self, bet: int) -> int:
        """Integer payout for ``bet`` in the smallest currency unit."""
        if bet < 0:
            raise ValueError("Bet cannot be negative")
        return bet * self.scaled // self.scale

    def as_decimal(self, places: int = 4) -> Decimal:
        """Display value, truncated (never rounded up) to ``places``."""
        quantum = 10 ** places
        return Decimal(self.scaled * quantum // self.scale) / Decimal(quantum)


def multiplier_for(
    safe_reveals: int,
    bomb_count: int,
    grid_size: int,
    house_edge: Fraction,
    cap: Fraction,
    odds_formula: str = ODDS_FIXED_NUMERATOR,
    precision: int = 18,
) -> MultiplierQuote:
    """Compute the multiplier for ``safe_reveals`` safe tiles.

    Raises:
        ValueError: negative reveal count, bad board or unknown formula.
        NoSafeTilesRemainingError: more reveals than safe tiles exist.
    """
    if safe_reveals < 0:
        raise ValueError(f"safe_reveals cannot be negative, got {safe_reveals}")
    if not 0 <= bomb_count < grid_size:
        raise ValueError(f"bomb_count must be in [0, {grid_size}), got {bomb_count}")
    if odds_formula not in (ODDS_HYPERGEOMETRIC, ODDS_FIXED_NUMERATOR):
        raise ValueError(f"Unknown odds formula: {odds_formula}")
    safe_tiles = grid_size - bomb_count
    if safe_reveals > safe_tiles:
        raise NoSafeTilesRemainingError(
            f"{safe_reveals} reveals requested but only {safe_tiles} safe tiles exist"
        )

    raw = Fraction(1)
    capped = False
    for i in range(safe_reveals):
        denominator = grid_size - bomb_count - i
        if denominator <= 0:
            raise NoSafeTilesRemainingError(
                f"Non-positive odds denominator at reveal {i + 1}"
            )
        numerator = grid_size - i if odds_formula == ODDS_HYPERGEOMETRIC else grid_size
        raw *= Fraction(numerator, denominator)
        if raw > cap:
            raw = cap
            capped = True
            break

    ratio = raw * house_edge
    scale = 10 ** precision
    scaled = ratio.numerator * scale // ratio.denominator
    return MultiplierQuote(
        safe_reveals=safe_reveals,
        ratio=ratio,
        raw_ratio=raw,
        scaled=scaled,
        precision=precision,
        capped=capped,
    )


class MultiplierEngine:
    """Policy-bound multiplier and payout computation.

    Usage:
        engine = MultiplierEngine(policy)
        quote = engine.quote(3, bomb_count=9)
        payout = engine.payout_for(bet, 3, bomb_count=9)
    """

    def __init__(self, policy: GamePolicy) -> None:
        self._policy = policy

    def quote(self, safe_reveals: int, bomb_count: int) -> MultiplierQuote:
        p = self._policy
        return multiplier_for(
            safe_reveals,
            bomb_count,
            p.grid_size,
            p.house_edge_ratio,
            p.multiplier_cap_ratio,
            odds_formula=p.odds_formula,
            precision=p.multiplier_precision,
        )

    def payout_for(self, bet: int, safe_reveals: int, bomb_count: int) -> int:
        return self.quote(safe_reveals, bomb_count).payout(bet)

    def table(self, bomb_count: int, limit: Optional[int] = None) -> list[MultiplierQuote]:
        """Quotes for every reachable reveal count, 0 through the last safe tile."""
        last = self._policy.grid_size - bomb_count
        if limit is not None:
            last = min(last, limit)
        return [self.quote(k, bomb_count) for k in range(last + 1)]
