"""Policy resolver — loads the canonical game policy from config.

Earlier deployments of the game used several incompatible constant sets
(9 vs 12 bombs, a 500k vs 1M multiplier cap, a house edge applied in
different places). They are reconciled into one GamePolicy object.
Alternative constants are expressed in ``game_policy.json``, never in code.

Exact quantities (house edge, cap fraction) are stored as JSON strings and
parsed as Decimal so that no float ever enters the payout path.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from pathlib import Path
from typing import Any, Mapping

from minefair.models.session import Difficulty, DisclosurePolicy


POLICY_FILENAME = "game_policy.json"

ODDS_HYPERGEOMETRIC = "hypergeometric"
ODDS_FIXED_NUMERATOR = "fixed_numerator"
ODDS_FORMULAS = frozenset({ODDS_HYPERGEOMETRIC, ODDS_FIXED_NUMERATOR})

SEED_LAYOUTS = frozenset({"v1", "v2"})


@dataclass(frozen=True)
class GamePolicy:
    """The single canonical set of game constants."""
    grid_size: int = 36
    bomb_counts: Mapping[Difficulty, int] = field(
        default_factory=lambda: {Difficulty.NORMAL: 9, Difficulty.GOD_OF_WAR: 12}
    )
    house_edge: Decimal = Decimal("0.95")
    multiplier_cap: Decimal = Decimal("500000")
    bankroll_cap_fraction: Decimal = Decimal("0.20")
    odds_formula: str = ODDS_FIXED_NUMERATOR
    multiplier_precision: int = 18
    derivation_attempt_factor: int = 10
    seed_layout: str = "v2"
    disclosure: DisclosurePolicy = DisclosurePolicy.AFTER_RESOLUTION
    min_bet: int = 1

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ValueError("Invalid game policy: " + "; ".join(errors))

    def validate(self) -> list[str]:
        """Return policy violations (empty = OK)."""
        errors: list[str] = []
        if self.grid_size < 1:
            errors.append(f"grid_size must be positive, got {self.grid_size}")
        for difficulty, bombs in self.bomb_counts.items():
            if not 0 < bombs < self.grid_size:
                errors.append(
                    f"bomb count for {difficulty.value} must be in "
                    f"(0, {self.grid_size}), got {bombs}"
                )
        if not Decimal("0") < self.house_edge <= Decimal("1"):
            errors.append(f"house_edge must be in (0, 1], got {self.house_edge}")
        if self.multiplier_cap < Decimal("1"):
            errors.append(f"multiplier_cap must be >= 1, got {self.multiplier_cap}")
        if not Decimal("0") < self.bankroll_cap_fraction <= Decimal("1"):
            errors.append(
                f"bankroll_cap_fraction must be in (0, 1], got {self.bankroll_cap_fraction}"
            )
        if self.odds_formula not in ODDS_FORMULAS:
            errors.append(f"unknown odds_formula: {self.odds_formula}")
        if self.multiplier_precision < 0:
            errors.append("multiplier_precision must be non-negative")
        if self.derivation_attempt_factor < 1:
            errors.append("derivation_attempt_factor must be >= 1")
        if self.seed_layout not in SEED_LAYOUTS:
            errors.append(f"unknown seed_layout: {self.seed_layout}")
        if self.min_bet < 1:
            errors.append("min_bet must be >= 1")
        return errors

    def bomb_count(self, difficulty: Difficulty) -> int:
        try:
            return self.bomb_counts[difficulty]
        except KeyError:
            raise ValueError(f"No bomb count configured for {difficulty.value}") from None

    @property
    def house_edge_ratio(self) -> Fraction:
        return Fraction(self.house_edge)

    @property
    def multiplier_cap_ratio(self) -> Fraction:
        return Fraction(self.multiplier_cap)

    @property
    def bankroll_cap_ratio(self) -> Fraction:
        return Fraction(self.bankroll_cap_fraction)

    @property
    def max_derivation_attempts(self) -> int:
        return self.derivation_attempt_factor * self.grid_size


class PolicyResolver:
    """Resolves the active GamePolicy.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        policy = resolver.policy()
    """

    def __init__(self, policy: GamePolicy) -> None:
        self._policy = policy

    @classmethod
    def from_defaults(cls) -> PolicyResolver:
        return cls(GamePolicy())

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load ``game_policy.json`` from ``config_dir``.

        Fails closed: a missing file or malformed value raises rather
        than silently falling back to defaults.
        """
        path = Path(config_dir) / POLICY_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Policy file not found: {path}")
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return cls(parse_policy(data))

    def policy(self) -> GamePolicy:
        return self._policy

    def payout_params(self) -> dict[str, Any]:
        """Flat view of the payout-relevant constants, for publishing."""
        p = self._policy
        return {
            "grid_size": p.grid_size,
            "bomb_counts": {d.value: n for d, n in p.bomb_counts.items()},
            "house_edge": str(p.house_edge),
            "multiplier_cap": str(p.multiplier_cap),
            "bankroll_cap_fraction": str(p.bankroll_cap_fraction),
            "odds_formula": p.odds_formula,
            "multiplier_precision": p.multiplier_precision,
            "seed_layout": p.seed_layout,
        }


def parse_policy(data: Mapping[str, Any]) -> GamePolicy:
    """Build a GamePolicy from a decoded JSON mapping."""
    known = {
        "grid_size", "bomb_counts", "house_edge", "multiplier_cap",
        "bankroll_cap_fraction", "odds_formula", "multiplier_precision",
        "derivation_attempt_factor", "seed_layout", "disclosure", "min_bet",
    }
    unknown = set(data) - known - {"_comment"}
    if unknown:
        raise ValueError(f"Unknown policy keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key in ("grid_size", "multiplier_precision", "derivation_attempt_factor", "min_bet"):
        if key in data:
            kwargs[key] = int(data[key])
    for key in ("house_edge", "multiplier_cap", "bankroll_cap_fraction"):
        if key in data:
            kwargs[key] = _parse_decimal(key, data[key])
    for key in ("odds_formula", "seed_layout"):
        if key in data:
            kwargs[key] = str(data[key])
    if "bomb_counts" in data:
        kwargs["bomb_counts"] = {
            Difficulty(name): int(count) for name, count in data["bomb_counts"].items()
        }
    if "disclosure" in data:
        kwargs["disclosure"] = DisclosurePolicy(data["disclosure"])
    return GamePolicy(**kwargs)


def _parse_decimal(key: str, raw: Any) -> Decimal:
    if isinstance(raw, float):
        raise ValueError(f"{key} must be a string or integer, not a float")
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"{key} is not a valid decimal: {raw!r}") from exc
