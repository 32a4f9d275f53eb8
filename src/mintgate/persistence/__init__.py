"""Audit persistence."""

from mintgate.persistence.event_log import (
    CHAIN_START,
    EventKind,
    EventLog,
    EventRecord,
    summarize,
)

__all__ = ["CHAIN_START", "EventKind", "EventLog", "EventRecord", "summarize"]
