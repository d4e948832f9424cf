"""Append-only event log — the audit trail of every game.

Every state change of a session produces an event record that is appended
to the log. Events are immutable once written. The log serves as:
1. The audit trail a third party replays with the fairness verifier.
2. The source of truth for settlement disputes.

Seeds are secret while a session is live. The service only writes seed
material into settlement payloads, or into ``seeds_disclosed`` when the
host releases them later.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of game events."""
    GAME_STARTED = "game_started"
    COMMITMENT_POSTED = "commitment_posted"
    SEEDS_COMBINED = "seeds_combined"
    COMMITMENT_REJECTED = "commitment_rejected"
    DERIVATION_FAILED = "derivation_failed"
    TILE_REVEALED = "tile_revealed"
    REVEAL_REJECTED = "reveal_rejected"
    FORCED_CASHOUT = "forced_cashout"
    GAME_WON = "game_won"
    GAME_LOST = "game_lost"
    GAME_FORFEITED = "game_forfeited"
    SEEDS_DISCLOSED = "seeds_disclosed"


TERMINAL_EVENT_KINDS = frozenset({
    EventKind.FORCED_CASHOUT,
    EventKind.GAME_WON,
    EventKind.GAME_LOST,
    EventKind.GAME_FORFEITED,
})

# Events that end a session. Setup failures settle it as a refundable forfeit.
SETTLING_EVENT_KINDS = TERMINAL_EVENT_KINDS | {
    EventKind.COMMITMENT_REJECTED,
    EventKind.DERIVATION_FAILED,
}


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    session_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "session_id": session_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable event in the game log."""
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    session_id: str
    payload: dict[str, Any]
    event_hash: str  # SHA-256 of canonical JSON

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        session_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            session_id=session_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, session_id, payload,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "session_id": self.session_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> EventRecord:
        """Rebuild a stored record, rejecting it if its hash does not match."""
        expected = _canonical_hash(
            data["event_id"],
            data["event_kind"],
            data["timestamp_utc"],
            data["session_id"],
            data["payload"],
        )
        if data["event_hash"] != expected:
            raise ValueError(
                f"Integrity check failed: event {data['event_id']} "
                f"stored hash {data['event_hash']} != computed {expected}"
            )
        return EventRecord(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            session_id=data["session_id"],
            payload=data["payload"],
            event_hash=data["event_hash"],
        )


class EventLog:
    """Append-only game log with optional JSONL persistence.

    Besides replay protection on event IDs, the log enforces each
    session's shape: a session settles at most once, and after settlement
    only ``reveal_rejected`` and a single ``seeds_disclosed`` may follow.
    A recovered file is held to the same rules as live appends.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._storage_path = storage_path
        self._event_ids: set[str] = set()
        self._by_session: dict[str, list[EventRecord]] = {}
        self._settled: set[str] = set()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError on a duplicate event ID or an event the
        session can no longer produce.
        """
        self._admit(event)
        if self._storage_path:
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_session(self, session_id: str) -> list[EventRecord]:
        """Return one session's events in append order."""
        return list(self._by_session.get(session_id, ()))

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _admit(self, event: EventRecord) -> None:
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        history = self._by_session.get(event.session_id, [])
        settled = event.session_id in self._settled
        kind = event.event_kind
        if kind == EventKind.SEEDS_DISCLOSED:
            if not settled:
                raise ValueError(
                    f"Seeds disclosed for live session {event.session_id} ({event.event_id})"
                )
            if any(e.event_kind == EventKind.SEEDS_DISCLOSED for e in history):
                raise ValueError(
                    f"Seeds already disclosed for session {event.session_id} ({event.event_id})"
                )
        elif settled and kind != EventKind.REVEAL_REJECTED:
            raise ValueError(
                f"Session {event.session_id} already settled; "
                f"refusing {kind.value} ({event.event_id})"
            )

        self._events.append(event)
        self._event_ids.add(event.event_id)
        self._by_session.setdefault(event.session_id, []).append(event)
        if kind in SETTLING_EVENT_KINDS:
            self._settled.add(event.session_id)

    def _load_from_file(self, path: Path) -> None:
        """Replay a JSONL file through the same checks as ``append``.

        Fail-closed: a tampered record, a duplicate event ID or an event
        after its session settled aborts the load.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                if data["event_id"] in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {data['event_id']}"
                    )
                try:
                    self._admit(EventRecord.from_dict(data))
                except ValueError as exc:
                    raise ValueError(f"{exc} (line {line_num})") from exc
