# riverflow/services/pipeline.py
"""
Reading pipeline: classify → confirm → record → broadcast / relay / persist.

    pipeline = ReadingPipeline(...)
    reading = await pipeline.submit("Purok 10 River", 2.5)

Classification, confirmation and the live-store update happen synchronously
under the node's lock, so the caller's acknowledgement always reflects them.
Broadcast, snapshot save, MQTT relay and the durable write are scheduled on
the InflightTracker and finish after the caller has returned. Snapshot saves
are coalesced: at most one write in flight, plus one follow-up for readings
that arrived during it.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from riverflow.services.broadcast import BroadcastHub
from riverflow.services.classifier import ThresholdResolver, classify
from riverflow.services.confirmation import AlertConfirmationTracker
from riverflow.services.inflight import InflightTracker
from riverflow.services.live_store import LiveStateStore
from riverflow.services.messages import LiveReading, LiveReadingMessage
from riverflow.services.throttle import WriteThrottle
from riverflow.services.types import LiveSession

log = logging.getLogger("live")


def iso_utc(epoch_s: float) -> str:
    return (
        datetime.fromtimestamp(epoch_s, timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass
class IngestResult:
    reading: LiveReading
    now: float
    persist_due: bool


class ReadingPipeline:
    def __init__(
        self,
        session: LiveSession,
        resolver: ThresholdResolver,
        confirmation: AlertConfirmationTracker,
        live: LiveStateStore,
        hub: BroadcastHub,
        throttle: WriteThrottle,
        inflight: InflightTracker,
        relay=None,                                  # riverflow.services.relay.LiveRelay
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session = session
        self.resolver = resolver
        self.confirmation = confirmation
        self.live = live
        self.hub = hub
        self.throttle = throttle
        self.inflight = inflight
        self.relay = relay
        self.clock = clock

        # at most one snapshot write in flight; readings arriving meanwhile mark it dirty
        self._snapshot_dirty = False
        self._snapshot_task: Optional[asyncio.Task] = None

    # ───────── synchronous part ─────────
    def ingest(self, node_id: str, water_level: float, timestamp: Optional[str] = None) -> IngestResult:
        now = self.clock()
        ts = timestamp or iso_utc(now)

        with self.session.lock_for(node_id):
            status = classify(water_level, self.resolver.profile_for(node_id))
            confirmed = self.confirmation.update(node_id, status, now)
            reading = LiveReading(
                node_id=node_id,
                water_level=float(water_level),
                timestamp=ts,
                alert_status=status,
                confirmed_alert=confirmed,
            )
            self.live.record(node_id, reading)
            persist_due = self.throttle.due(node_id, now)

        log.debug(f"live: {node_id} {reading.water_level}m [{status.value}]{' confirmed' if confirmed else ''}")
        return IngestResult(reading=reading, now=now, persist_due=persist_due)

    # ───────── fire-and-forget part ─────────
    def dispatch(self, result: IngestResult) -> None:
        reading = result.reading
        if self.live.snapshot_path is not None and not self.live.autosave:
            self._schedule_snapshot()

        msg = LiveReadingMessage(data=reading)
        self.inflight.spawn(self.hub.broadcast(msg), name=f"broadcast:{reading.node_id}")

        if self.relay is not None:
            self.relay.publish(msg)

        # window already claimed under the node lock in ingest()
        self.throttle.maybe_persist(reading.node_id, reading, reading.confirmed_alert, due=result.persist_due)

    def _schedule_snapshot(self) -> None:
        self._snapshot_dirty = True
        if self._snapshot_task is None or self._snapshot_task.done():
            self._snapshot_task = self.inflight.spawn(self._snapshot_writer(), name="snapshot")

    async def _snapshot_writer(self) -> None:
        while self._snapshot_dirty:
            self._snapshot_dirty = False
            try:
                await asyncio.to_thread(self.live.save)
            except OSError as e:
                log.error("live snapshot save failed: %s", e)

    async def submit(self, node_id: str, water_level: float, timestamp: Optional[str] = None) -> LiveReading:
        result = self.ingest(node_id, water_level, timestamp)
        self.dispatch(result)
        return result.reading
