# riverflow/services/live_store.py
from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from riverflow.core.errors import SnapshotCorruptionError
from riverflow.services.messages import LiveReading
from riverflow.services.types import LiveSession, NodeLiveRecord, new_history

log = logging.getLogger("live")


class LiveStateStore:
    """
    Current reading + bounded recent history for every node.

    The records live in session.live_records. The whole mapping is mirrored to a
    JSON snapshot (same shape as GET /live) so a restart picks up where it
    stopped. A missing or unreadable snapshot means an empty start.
    """

    def __init__(
        self,
        session: LiveSession,
        snapshot_path: Optional[str | Path] = None,
        history_size: int = 600,
        autosave: bool = True,
    ) -> None:
        self.session = session
        self.history_size = max(1, int(history_size))
        self.snapshot_path = Path(snapshot_path).resolve() if snapshot_path else None
        self.autosave = autosave
        self._lock = threading.RLock()
        self._save_lock = threading.Lock()

    # ───────── write path ─────────
    def record(self, node_id: str, reading: LiveReading) -> NodeLiveRecord:
        with self._lock:
            rec = self.session.live_records.get(node_id)
            if rec is None:
                rec = NodeLiveRecord(
                    current=reading,
                    history=new_history(self.history_size),
                    last_update=reading.timestamp,
                )
                self.session.live_records[node_id] = rec
                log.info("new node in live state: %s", node_id)

            rec.current = reading
            rec.history.appendleft(reading)   # deque(maxlen) drops the oldest end
            rec.last_update = reading.timestamp

        if self.autosave:
            self.save()
        return rec

    # ───────── read path ─────────
    def get(self, node_id: str) -> Optional[NodeLiveRecord]:
        with self._lock:
            return self.session.live_records.get(node_id)

    def get_all(self) -> Dict[str, NodeLiveRecord]:
        with self._lock:
            return dict(self.session.live_records)

    def to_dict(self) -> Dict[str, Any]:
        # copy under the lock, serialize outside it (readings are frozen)
        with self._lock:
            copied = {nid: rec.copy() for nid, rec in self.session.live_records.items()}
        return {nid: rec.to_dict() for nid, rec in copied.items()}

    # ───────── snapshot ─────────
    def save(self) -> None:
        """Write the snapshot atomically (tmp file + replace)."""
        if self.snapshot_path is None:
            return
        with self._save_lock:
            data = self.to_dict()
            self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.snapshot_path.with_suffix(self.snapshot_path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.snapshot_path)

    def load(self) -> int:
        """Fill the session from the snapshot. Returns the number of nodes restored."""
        if self.snapshot_path is None or not self.snapshot_path.exists():
            log.info("no live snapshot, starting empty")
            return 0
        try:
            records = self._read_snapshot(self.snapshot_path)
        except SnapshotCorruptionError as e:
            log.error("live snapshot unreadable, starting empty: %s", e)
            return 0

        with self._lock:
            self.session.live_records.clear()
            self.session.live_records.update(records)
        log.info("live snapshot restored: %d node(s)", len(records))
        return len(records)

    def _read_snapshot(self, path: Path) -> Dict[str, NodeLiveRecord]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise SnapshotCorruptionError(f"{path}: {e}") from e
        if not isinstance(raw, dict):
            raise SnapshotCorruptionError(f"{path}: top level must be an object")

        out: Dict[str, NodeLiveRecord] = {}
        try:
            for node_id, item in raw.items():
                current = LiveReading.model_validate(item["current"])
                history = [LiveReading.model_validate(h) for h in item.get("history", [])]
                out[str(node_id)] = NodeLiveRecord(
                    current=current,
                    history=new_history(self.history_size, history),
                    last_update=str(item.get("lastUpdate") or current.timestamp),
                )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise SnapshotCorruptionError(f"{path}: {e}") from e
        return out
