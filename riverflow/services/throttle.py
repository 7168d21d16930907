# riverflow/services/throttle.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import TypeAdapter

from riverflow.core.errors import TransientStorageError
from riverflow.services.inflight import InflightTracker
from riverflow.services.messages import LiveReading
from riverflow.services.types import LiveSession

log = logging.getLogger("throttle")

_DATETIME: TypeAdapter = TypeAdapter(datetime)


def parse_ts(ts: str) -> datetime:
    # ISO with Z or offset; naive is taken as UTC. Raises ValueError.
    dt = _DATETIME.validate_python(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class WriteThrottle:
    """
    Decides per node whether a live reading also goes to the durable store.

    At most one durable write per node every `interval_s`. The node's
    last-save time is taken before the write starts, so readings that arrive
    while a write is still running are not written twice. The write itself
    runs in the background; its failures are logged and never reach the
    live path.
    """

    def __init__(
        self,
        session: LiveSession,
        store: Any,                       # DurableStore or anything with the same 3 methods
        tracker: InflightTracker,
        interval_s: float = 30.0,
        keep_rows: int = 20,
        default_location: Optional[Dict[str, Any]] = None,
        flow_rate: float = 0.0,
    ) -> None:
        self.session = session
        self.store = store
        self.tracker = tracker
        self.interval_s = float(interval_s)
        self.keep_rows = int(keep_rows)
        self.default_location = dict(default_location or {"latitude": 0.0, "longitude": 0.0})
        self.flow_rate = float(flow_rate)

    def due(self, node_id: str, now: float) -> bool:
        """Check the window and claim it if open."""
        last = self.session.last_db_save.get(node_id)
        if last is not None and now - last < self.interval_s:
            return False
        self.session.last_db_save[node_id] = now
        return True

    def maybe_persist(
        self,
        node_id: str,
        reading: LiveReading,
        confirmed_alert: bool,
        now: Optional[float] = None,
        due: Optional[bool] = None,
    ) -> bool:
        """
        Schedule persist() in the background if the node's window is open.
        `due` is the result of an earlier due() call (the pipeline claims the
        window under the node lock); otherwise due(node_id, now) is checked here.
        """
        if due is None:
            due = self.due(node_id, now)
        if not due:
            return False
        self.tracker.spawn(self.persist(node_id, reading, confirmed_alert), name=f"persist:{node_id}")
        return True

    async def persist(self, node_id: str, reading: LiveReading, confirmed_alert: bool) -> bool:
        try:
            await asyncio.to_thread(self._write, node_id, reading, confirmed_alert)
        except TransientStorageError as e:
            log.error("durable write failed for %s (retry next window): %s", node_id, e)
            return False
        except Exception as e:
            log.exception("durable write error for %s: %s", node_id, e)
            return False
        return True

    def _write(self, node_id: str, reading: LiveReading, confirmed_alert: bool) -> None:
        node = self.store.find_or_create_node(node_id, self.default_location)
        self.store.insert_reading(
            node.id,
            reading.water_level,
            self.flow_rate,
            parse_ts(reading.timestamp),
            confirmed_alert,
        )
        self.store.delete_readings_older_than_retained(node.id, self.keep_rows)

        if confirmed_alert:
            log.warning("confirmed alert saved: %s %.2fm [%s]", node_id, reading.water_level, reading.alert_status.value)
        log.info("saved to database: %s", node_id)
