"""Tests for the append-only event log."""

import json
from pathlib import Path

import pytest

from mintgate.persistence.event_log import (
    CHAIN_START,
    EventKind,
    EventLog,
    EventRecord,
    summarize,
)

ACTOR = "0x0000000000000000000000000000000000000001"
HOLDER = "0x0000000000000000000000000000000000000002"


def _phase_change(log: EventLog, event_id: str, to: str = "public") -> EventRecord:
    return log.record(event_id, EventKind.PHASE_CHANGED, ACTOR, {"from": "closed", "to": to})


class TestEventLog:
    def test_record_and_filter(self) -> None:
        log = EventLog()
        _phase_change(log, "EVT-1")
        log.record("EVT-2", EventKind.FUNDS_WITHDRAWN, ACTOR, {"amount_wei": 0})
        assert log.count == 2
        assert [e.event_id for e in log.events(EventKind.FUNDS_WITHDRAWN)] == ["EVT-2"]
        assert log.last_event.event_id == "EVT-2"

    def test_records_are_chained(self) -> None:
        log = EventLog()
        assert log.head == CHAIN_START
        first = _phase_change(log, "EVT-1")
        second = _phase_change(log, "EVT-2", to="closed")
        assert first.prev_hash == CHAIN_START
        assert second.prev_hash == first.event_hash
        assert log.head == second.event_hash
        assert first.event_hash.startswith("sha256:")

    def test_duplicate_rejected(self) -> None:
        log = EventLog()
        _phase_change(log, "EVT-1")
        with pytest.raises(ValueError, match="Duplicate"):
            _phase_change(log, "EVT-1")

    def test_unlinked_append_rejected(self) -> None:
        log = EventLog()
        _phase_change(log, "EVT-1")
        stray = EventRecord.create("EVT-2", EventKind.PHASE_CHANGED, ACTOR, {})
        with pytest.raises(ValueError, match="links to"):
            log.append(stray)
        assert log.count == 1


class TestPersistence:
    def test_reload(self, tmp_path: Path) -> None:
        path = tmp_path / "data" / "events.jsonl"
        log = EventLog(storage_path=path)
        _phase_change(log, "EVT-1")
        _phase_change(log, "EVT-2", to="closed")
        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.head == log.head
        _phase_change(reloaded, "EVT-3")
        assert EventLog(storage_path=path).count == 3

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        _phase_change(EventLog(storage_path=path), "EVT-1")
        record = json.loads(path.read_text())
        record["payload"]["to"] = "closed"
        path.write_text(json.dumps(record) + "\n")
        with pytest.raises(ValueError, match="Integrity"):
            EventLog(storage_path=path)

    def test_dropped_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        for n in range(3):
            _phase_change(log, f"EVT-{n}")
        lines = path.read_text().splitlines()
        path.write_text("\n".join([lines[0], lines[2]]) + "\n")
        with pytest.raises(ValueError, match="line 2"):
            EventLog(storage_path=path)


class TestSummarize:
    def test_reconciles_counters(self) -> None:
        log = EventLog()
        log.record("EVT-1", EventKind.ITEMS_MINTED, HOLDER, {
            "recipient": HOLDER, "phase": "public", "item_ids": [1, 2], "payment_wei": 0,
        })
        log.record("EVT-2", EventKind.ITEMS_GIFTED, ACTOR, {
            "operation": "gift_to_addresses", "recipients": [HOLDER], "item_ids": [3],
        })
        log.record("EVT-3", EventKind.MINT_REJECTED, HOLDER, {
            "operation": "mint_public", "error_code": "phase_cap_exceeded", "message": "",
        })
        summary = summarize(log)
        assert summary["total_issued"] == 3
        assert summary["total_gifted"] == 1
        assert summary["phase_counts"] == {"public": {HOLDER: 2}}
        assert summary["rejected"] == {"phase_cap_exceeded": 1}
        assert summary["head"] == log.head
