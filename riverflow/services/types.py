# riverflow/services/types.py
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Deque, Dict

if TYPE_CHECKING:
    from riverflow.services.messages import LiveReading


# === 1. ENUMS ================================================================

class AlertStatus(str, Enum):
    """Severity band of a single reading."""
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


# === 2. PER-NODE STATE =======================================================

@dataclass(frozen=True)
class ThresholdProfile:
    """Absolute water levels (metres) at which a node enters each band."""
    warning_level: float
    danger_level: float


@dataclass
class AlertTimerState:
    """
    When the current non-normal status began.
    Only exists while status != normal.
    """
    status: AlertStatus
    start_time: float                 # epoch seconds, captured at processing time
    confirmed: bool = False


@dataclass
class NodeLiveRecord:
    current: "LiveReading"
    history: Deque["LiveReading"]     # most recent first, maxlen = H
    last_update: str                  # ISO-8601

    def copy(self) -> "NodeLiveRecord":
        return NodeLiveRecord(self.current, deque(self.history, maxlen=self.history.maxlen), self.last_update)

    def to_dict(self) -> dict:
        return {
            "current": self.current.to_dict(),
            "history": [r.to_dict() for r in self.history],
            "lastUpdate": self.last_update,
        }


# === 3. SESSION ==============================================================

@dataclass
class LiveSession:
    """
    All mutable per-node state of one pipeline.
    Components receive the session and work on its maps directly.
    """
    alert_timers: Dict[str, AlertTimerState] = field(default_factory=dict)
    live_records: Dict[str, NodeLiveRecord] = field(default_factory=dict)
    last_db_save: Dict[str, float] = field(default_factory=dict)

    _locks: Dict[str, threading.Lock] = field(default_factory=dict, repr=False)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def lock_for(self, node_id: str) -> threading.Lock:
        """Per-node lock: same node serialized, different nodes independent."""
        with self._locks_guard:
            lk = self._locks.get(node_id)
            if lk is None:
                lk = threading.Lock()
                self._locks[node_id] = lk
            return lk


def new_history(maxlen: int, items=()) -> Deque["LiveReading"]:
    return deque(list(items)[:maxlen], maxlen=maxlen)
