"""
Proposal transition log.

Each Governance instance appends one JSON line per successful transition
to the file named by `GovernanceConfig.events_out` (SEALVOTE_EVENTS_OUT
reaches it through load_config). A line is

    {"seq": n, "kind": "...", "proposal_id": id, "address": "...", "data": {...}}

Sequence numbers belong to the log file: they continue from the last line
already in it, so several Governance instances (or a restarted process)
writing the same file keep one gap-free sequence.
"""
from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import threading


class EventKind(str, Enum):
    INITIALIZED = "proposal.initialized"
    VOTE_SUBMITTED = "vote.submitted"
    TALLY_SET = "tally.set"
    EXECUTED = "proposal.executed"
    FINALIZED = "proposal.finalized"
    MIGRATED = "proposal.migrated"


def read_events(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


class EventLog:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        existing = read_events(self.path)
        self._seq = existing[-1]["seq"] if existing else 0

    def append(self, kind: EventKind, proposal_id: int, address: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self._seq += 1
            evt = {
                "seq": self._seq,
                "kind": EventKind(kind).value,
                "proposal_id": proposal_id,
                "address": address,
                "data": data,
            }
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8", newline="\n") as f:
                f.write(json.dumps(evt, ensure_ascii=False, sort_keys=True, separators=(",", ":")) + "\n")
        return evt


_logs: Dict[Path, EventLog] = {}
_logs_guard = threading.Lock()


def open_event_log(events_out: Optional[str]) -> Optional[EventLog]:
    """One shared EventLog per file; None when no sink is configured."""
    if not events_out:
        return None
    path = Path(events_out).resolve()
    with _logs_guard:
        sink = _logs.get(path)
        if sink is None:
            sink = _logs[path] = EventLog(path)
        return sink
