"""Outcome engine — bomb derivation, multipliers, risk guard, session lifecycle."""

from minefair.engine.multiplier import MultiplierEngine
from minefair.engine.risk_guard import RiskGuard
from minefair.engine.state_machine import GameSessionStateMachine
from minefair.engine.verifier import verify_game

__all__ = ["MultiplierEngine", "RiskGuard", "GameSessionStateMachine", "verify_game"]
