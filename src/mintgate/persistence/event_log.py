"""Append-only event log — the audit record of every mint and admin action.

Each record carries the hash of the record before it, so the log forms a
chain from CHAIN_START. Editing, dropping or reordering a persisted line
breaks either a record's own hash or the link to its predecessor, and
the file is refused on load.

The log is used for:
1. The audit trail of who minted what, in which phase, for how much.
2. Offline reconciliation of the supply counters (see summarize()).
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


CHAIN_START = "sha256:" + "0" * 64

_HASHED_FIELDS = (
    "event_id", "event_kind", "timestamp_utc", "actor_id", "payload", "prev_hash",
)


class EventKind(str, enum.Enum):
    """Classification of mint events."""
    PHASE_CHANGED = "phase_changed"
    COMMITMENT_SET = "commitment_set"
    ITEMS_MINTED = "items_minted"
    ITEMS_GIFTED = "items_gifted"
    MINT_REJECTED = "mint_rejected"
    BASE_URI_SET = "base_uri_set"
    PROXY_APPROVAL_SET = "proxy_approval_set"
    FUNDS_WITHDRAWN = "funds_withdrawn"


def _digest(fields: dict[str, Any]) -> str:
    body = json.dumps(
        {name: fields[name] for name in _HASHED_FIELDS},
        sort_keys=True,
        ensure_ascii=False,
    )
    return "sha256:" + hashlib.sha256(body.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class EventRecord:
    """One immutable entry in the mint log.

    event_hash covers every other field, prev_hash included.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    prev_hash: str
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        prev_hash: str = CHAIN_START,
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        stamp = (timestamp_utc or datetime.now(timezone.utc)).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )
        fields = {
            "event_id": event_id,
            "event_kind": event_kind.value,
            "timestamp_utc": stamp,
            "actor_id": actor_id,
            "payload": payload,
            "prev_hash": prev_hash,
        }
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=stamp,
            actor_id=actor_id,
            payload=payload,
            prev_hash=prev_hash,
            event_hash=_digest(fields),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "prev_hash": self.prev_hash,
            "event_hash": self.event_hash,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> EventRecord:
        """Rebuild a stored record, refusing it if its hash does not match."""
        computed = _digest(data)
        if data["event_hash"] != computed:
            raise ValueError(
                f"Integrity check failed: event {data['event_id']} "
                f"stored hash {data['event_hash']} != computed {computed}"
            )
        return EventRecord(
            event_id=data["event_id"],
            event_kind=EventKind(data["event_kind"]),
            timestamp_utc=data["timestamp_utc"],
            actor_id=data["actor_id"],
            payload=data["payload"],
            prev_hash=data["prev_hash"],
            event_hash=data["event_hash"],
        )


class EventLog:
    """Hash-chained, append-only event log with optional JSONL persistence.

    Usage:
        log = EventLog(storage_path=Path("data/events.jsonl"))
        log.record("EVT-00000001", EventKind.PHASE_CHANGED, admin,
                   {"from": "closed", "to": "public"})
        log.head      # hash of the newest record
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._ids: set[str] = set()
        self._storage_path = storage_path
        if storage_path is not None and storage_path.exists():
            self._load(storage_path)

    @property
    def head(self) -> str:
        """Hash the next record must link to."""
        return self._events[-1].event_hash if self._events else CHAIN_START

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def record(
        self,
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> EventRecord:
        """Create a record linked to the current head and append it."""
        event = EventRecord.create(
            event_id=event_id,
            event_kind=event_kind,
            actor_id=actor_id,
            payload=payload,
            prev_hash=self.head,
        )
        self.append(event)
        return event

    def append(self, event: EventRecord) -> None:
        """Append an event that extends the current head.

        Raises ValueError for a duplicate event_id or a broken link.
        """
        self._check_extends(event)
        if self._storage_path is not None:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")
        self._events.append(event)
        self._ids.add(event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events in append order, optionally of one kind."""
        return [e for e in self._events if kind is None or e.event_kind == kind]

    def _check_extends(self, event: EventRecord) -> None:
        if event.event_id in self._ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if event.prev_hash != self.head:
            raise ValueError(
                f"Event {event.event_id} links to {event.prev_hash}, "
                f"log head is {self.head}"
            )

    def _load(self, path: Path) -> None:
        """Replay a JSONL file, fail-closed on any hash or chain mismatch."""
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    event = EventRecord.from_dict(json.loads(line))
                    self._check_extends(event)
                except ValueError as e:
                    raise ValueError(f"{path} line {line_num}: {e}") from None
                self._events.append(event)
                self._ids.add(event.event_id)


def summarize(log: EventLog) -> dict[str, Any]:
    """Reconcile supply counters from the recorded mint events."""
    total_issued = 0
    total_gifted = 0
    phase_counts: dict[str, dict[str, int]] = {}
    rejected: dict[str, int] = {}
    for event in log.events():
        if event.event_kind == EventKind.ITEMS_MINTED:
            quantity = len(event.payload["item_ids"])
            total_issued += quantity
            per_identity = phase_counts.setdefault(event.payload["phase"], {})
            holder = event.payload["recipient"]
            per_identity[holder] = per_identity.get(holder, 0) + quantity
        elif event.event_kind == EventKind.ITEMS_GIFTED:
            quantity = len(event.payload["item_ids"])
            total_issued += quantity
            total_gifted += quantity
        elif event.event_kind == EventKind.MINT_REJECTED:
            code = event.payload["error_code"] or "unknown"
            rejected[code] = rejected.get(code, 0) + 1
    return {
        "events": log.count,
        "head": log.head,
        "total_issued": total_issued,
        "total_gifted": total_gifted,
        "phase_counts": phase_counts,
        "rejected": rejected,
    }
