"""Minefair service — session host facade for the outcome engine.

This is the primary interface for programmatic access to Minefair.
It orchestrates:
- Session lifecycle (start, commit, supply seeds, reveal, cash out, forfeit)
- Risk checks against the host's bankroll snapshot
- Query surface (game info, bomb set after resolution, current payout)
- Audit trail (event log) and post-game fairness verification

All operations produce typed results. Engine exceptions are converted to
failed ServiceResults carrying the error's stable code in
``data["code"]``. A player may hold at most one live session at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from minefair.engine.risk_guard import RiskDecision
from minefair.engine.state_machine import (
    EndReason,
    GameSessionStateMachine,
    RevealResult,
    Settlement,
)
from minefair.engine.verifier import record_from_session, verify_game
from minefair.errors import GameError, SessionNotFoundError
from minefair.models.commitment import SeedEntropy
from minefair.models.session import (
    BankrollSnapshot,
    Difficulty,
    GameSession,
    SessionStatus,
)
from minefair.persistence.event_log import EventKind, EventLog, EventRecord
from minefair.policy.resolver import GamePolicy, PolicyResolver


@dataclass
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


def _failure(exc: GameError, **data: Any) -> ServiceResult:
    return ServiceResult(
        success=False,
        errors=[str(exc)],
        data={"code": exc.code, "fatal": exc.fatal, **data},
    )


class MinefairService:
    """Session host facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = MinefairService(resolver, event_log=EventLog(path))

        result = service.start_game("alice", 1_000, "normal")
        sid = result.data["session_id"]
        service.post_commitment(sid, commitment.commitment_hash)
        service.supply_seeds(sid, commitment.player_seed, operator_seed)
        service.reveal_tile(sid, 7, bankroll=50_000)
        service.cash_out(sid, bankroll=50_000)
        report = service.verify_session(sid)
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._state_machine = GameSessionStateMachine(resolver.policy())
        self._sessions: dict[str, GameSession] = {}
        self._live_by_player: dict[str, str] = {}

        # Persistence layer (optional — in-memory if not provided)
        self._event_log = event_log
        self._event_counter = event_log.count if event_log is not None else 0

    @property
    def policy(self) -> GamePolicy:
        return self._state_machine.policy

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_game(
        self,
        player: str,
        bet: int,
        difficulty: Union[str, Difficulty] = Difficulty.NORMAL,
        session_id: Optional[str] = None,
    ) -> ServiceResult:
        """Open a session in CREATED state. The bet is assumed escrowed."""
        live = self._live_by_player.get(player)
        if live is not None:
            return ServiceResult(
                success=False,
                errors=[f"Player {player} already has a live session: {live}"],
                data={"code": "session_in_progress", "session_id": live},
            )
        if session_id is not None and session_id in self._sessions:
            return ServiceResult(
                success=False,
                errors=[f"Session already exists: {session_id}"],
            )
        try:
            session = self._state_machine.create_session(
                player, bet, Difficulty(difficulty), session_id=session_id,
            )
        except (TypeError, ValueError) as e:
            return ServiceResult(success=False, errors=[str(e)])

        err = self._record_event(session, EventKind.GAME_STARTED, {
            "player": session.player,
            "bet": session.bet,
            "difficulty": session.difficulty.value,
            "bomb_count": session.bomb_count,
            "grid_size": session.grid_size,
        })
        if err:
            return ServiceResult(success=False, errors=[err])

        self._sessions[session.session_id] = session
        self._live_by_player[player] = session.session_id
        return ServiceResult(success=True, data=session.info())

    def post_commitment(self, session_id: str, commitment_hash: bytes) -> ServiceResult:
        try:
            session = self._get(session_id)
            self._state_machine.post_commitment(session, commitment_hash)
        except GameError as e:
            return _failure(e, session_id=session_id)
        except (TypeError, ValueError) as e:
            return ServiceResult(success=False, errors=[str(e)])

        err = self._record_event(session, EventKind.COMMITMENT_POSTED, {
            "commitment_hash": session.info()["commitment_hash"],
        })
        return self._result(session, err)

    def supply_seeds(
        self,
        session_id: str,
        player_seed: bytes,
        counterparty_seed: bytes,
        entropy: Optional[SeedEntropy] = None,
    ) -> ServiceResult:
        """Verify the player's reveal against the commitment and go live.

        An invalid reveal or an exhausted derivation ends the session as a
        refundable forfeit; the failure is logged and returned.
        """
        try:
            session = self._get(session_id)
        except GameError as e:
            return _failure(e, session_id=session_id)
        was_live = not session.is_terminal
        try:
            self._state_machine.supply_seeds(
                session, player_seed, counterparty_seed, entropy=entropy,
            )
        except GameError as e:
            if was_live and session.is_terminal:
                kind = (
                    EventKind.DERIVATION_FAILED
                    if session.end_reason == EndReason.DERIVATION_EXHAUSTED.value
                    else EventKind.COMMITMENT_REJECTED
                )
                self._record_event(session, kind, {"code": e.code, "refundable": True})
                self._release(session)
            return _failure(e, **session.info())
        except (TypeError, ValueError) as e:
            return ServiceResult(success=False, errors=[str(e)])

        err = self._record_event(session, EventKind.SEEDS_COMBINED, {
            "layout_version": session.combined_seed.layout_version,
            "commitment_hash": session.info()["commitment_hash"],
        })
        return self._result(session, err)

    def reveal_tile(self, session_id: str, position: int, bankroll: int) -> ServiceResult:
        """Reveal one tile, consulting the risk guard first.

        ``data["result"]`` is ``safe``, ``bomb`` or ``forced_cashout``.
        Rejected reveals leave the session unchanged.
        """
        try:
            session = self._get(session_id)
            snapshot = BankrollSnapshot(bankroll)
            outcome = self._state_machine.reveal(session, position, snapshot)
        except GameError as e:
            if session_id in self._sessions and not isinstance(e, SessionNotFoundError):
                self._record_event(self._sessions[session_id], EventKind.REVEAL_REJECTED, {
                    "position": position if isinstance(position, int) else repr(position),
                    "code": e.code,
                })
            return _failure(e, session_id=session_id)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        data: dict[str, Any] = {
            "result": outcome.result.value,
            "position": position,
            "risk": _risk_data(outcome.decision),
        }
        if outcome.quote is not None:
            data["multiplier"] = str(outcome.quote.as_decimal())
        if outcome.result == RevealResult.SAFE:
            err = self._record_event(session, EventKind.TILE_REVEALED, {
                "position": position,
                "safe_reveals": session.safe_reveals,
                "multiplier": data["multiplier"],
            })
        elif outcome.result == RevealResult.BOMB:
            err = self._record_terminal(session, EventKind.GAME_LOST)
        else:
            err = self._record_terminal(session, EventKind.FORCED_CASHOUT)
        data.update(session.info())
        return self._result(session, err, data)

    def cash_out(self, session_id: str, bankroll: Optional[int] = None) -> ServiceResult:
        """Settle at the current multiplier, re-validated against ``bankroll``."""
        try:
            session = self._get(session_id)
            snapshot = BankrollSnapshot(bankroll) if bankroll is not None else None
            settlement = self._state_machine.cash_out(session, snapshot)
        except GameError as e:
            return _failure(e, session_id=session_id)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])

        kind = (
            EventKind.GAME_WON
            if settlement.status == SessionStatus.WON_CASHED_OUT
            else EventKind.FORCED_CASHOUT
        )
        err = self._record_terminal(session, kind)
        return self._result(session, err, _settlement_data(settlement))

    def forfeit(
        self,
        session_id: str,
        reason: EndReason = EndReason.PLAYER_FORFEIT,
        refundable: bool = False,
    ) -> ServiceResult:
        """Abandon or cancel a live session. Forfeiting twice is rejected."""
        try:
            session = self._get(session_id)
            settlement = self._state_machine.forfeit(session, reason=reason, refundable=refundable)
        except GameError as e:
            return _failure(e, session_id=session_id)

        err = self._record_terminal(session, EventKind.GAME_FORFEITED)
        return self._result(session, err, _settlement_data(settlement))

    def release_seeds(self, session_id: str) -> ServiceResult:
        """Publish a finished session's seeds under the ``on_release`` policy.

        Logs the audit record the first time the seeds become visible.
        """
        try:
            session = self._get(session_id)
            released = session.release_seeds()
            record = record_from_session(session)
        except GameError as e:
            return _failure(e, session_id=session_id)

        err = None
        if released:
            err = self._record_event(
                session, EventKind.SEEDS_DISCLOSED, {"record": record.to_dict()},
            )
        if err:
            return ServiceResult(success=False, errors=[err], data=session.info())
        return ServiceResult(success=True, data=session.info())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_game_info(self, session_id: str) -> ServiceResult:
        try:
            session = self._get(session_id)
        except GameError as e:
            return _failure(e, session_id=session_id)
        return ServiceResult(success=True, data=session.info())

    def get_live_session(self, player: str) -> Optional[str]:
        """The player's live session id, if any."""
        return self._live_by_player.get(player)

    def get_bomb_set(self, session_id: str) -> ServiceResult:
        """Bomb positions, available only after the session has ended."""
        try:
            bombs = self._get(session_id).reveal_all()
        except GameError as e:
            return _failure(e, session_id=session_id)
        return ServiceResult(success=True, data={"bombs": sorted(bombs)})

    def should_force_cashout(self, session_id: str, bankroll: int) -> ServiceResult:
        """Would the next reveal trip the risk guard against ``bankroll``?"""
        try:
            session = self._get(session_id)
            decision = self._state_machine.check_risk(session, BankrollSnapshot(bankroll))
        except GameError as e:
            return _failure(e, session_id=session_id)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])
        return ServiceResult(success=True, data=_risk_data(decision))

    def calculate_current_payout(
        self,
        session_id: str,
        tiles_revealed: Optional[int] = None,
    ) -> ServiceResult:
        """Payout for the session's bet at ``tiles_revealed`` safe reveals.

        Defaults to the session's current reveal count.
        """
        try:
            session = self._get(session_id)
            count = session.safe_reveals if tiles_revealed is None else tiles_revealed
            quote = self._state_machine.multipliers.quote(count, session.bomb_count)
        except GameError as e:
            return _failure(e, session_id=session_id)
        except ValueError as e:
            return ServiceResult(success=False, errors=[str(e)])
        return ServiceResult(success=True, data={
            "tiles_revealed": count,
            "multiplier": str(quote.as_decimal()),
            "capped": quote.capped,
            "payout": quote.payout(session.bet),
        })

    def verify_session(self, session_id: str) -> ServiceResult:
        """Replay a finished session through the fairness verifier."""
        try:
            record = record_from_session(self._get(session_id))
        except GameError as e:
            return _failure(e, session_id=session_id)
        report = verify_game(record, self.policy)
        return ServiceResult(
            success=report.valid,
            errors=list(report.errors),
            data={
                "record": record.to_dict(),
                "bombs": sorted(report.bombs),
                "expected_payout": report.expected_payout,
            },
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get(self, session_id: str) -> GameSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def _release(self, session: GameSession) -> None:
        if self._live_by_player.get(session.player) == session.session_id:
            del self._live_by_player[session.player]

    def _result(
        self,
        session: GameSession,
        err: Optional[str],
        data: Optional[dict[str, Any]] = None,
    ) -> ServiceResult:
        if session.is_terminal:
            self._release(session)
        payload = data if data is not None else session.info()
        if err:
            return ServiceResult(success=False, errors=[err], data=payload)
        return ServiceResult(success=True, data=payload)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_terminal(self, session: GameSession, kind: EventKind) -> Optional[str]:
        """Record a settlement. Seeds are disclosed here and nowhere earlier."""
        payload: dict[str, Any] = {
            "status": session.status.value,
            "payout": session.payout,
            "end_reason": session.end_reason,
            "refundable": session.refundable,
            "revealed_positions": list(session.revealed_positions),
        }
        if session.seeds_disclosed and session.commitment is not None:
            payload["record"] = record_from_session(session).to_dict()
        return self._record_event(session, kind, payload)

    def _record_event(
        self,
        session: GameSession,
        kind: EventKind,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append an audit event. Returns error string or None."""
        if self._event_log is None:
            return None
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                session_id=session.session_id,
                payload=payload,
                timestamp_utc=datetime.now(timezone.utc),
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None


def _risk_data(decision: RiskDecision) -> dict[str, Any]:
    return {
        "force_cashout": decision.force_cashout,
        "reason": decision.reason.value,
        "message": decision.message,
        "max_allowed_payout": decision.max_allowed_payout,
        "hypothetical_payout": decision.hypothetical_payout,
    }


def _settlement_data(settlement: Settlement) -> dict[str, Any]:
    data: dict[str, Any] = {
        "status": settlement.status.value,
        "payout": settlement.payout,
        "safe_reveals": settlement.safe_reveals,
    }
    if settlement.quote is not None:
        data["multiplier"] = str(settlement.quote.as_decimal())
    if settlement.decision is not None:
        data["risk"] = _risk_data(settlement.decision)
    return data
