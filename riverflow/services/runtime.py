# riverflow/services/runtime.py
"""
One process' worth of live pipeline: session, components, collaborators.

    rt = LiveRuntime(settings)
    await rt.start()      # restore snapshot, connect MQTT if enabled
    ...
    await rt.stop()       # drain background writes, close connections
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from riverflow.core.config import Settings
from riverflow.db.session import init_db, make_engine, make_session_factory
from riverflow.db.store import DurableStore
from riverflow.services.broadcast import BroadcastHub
from riverflow.services.classifier import ThresholdResolver
from riverflow.services.confirmation import AlertConfirmationTracker
from riverflow.services.inflight import InflightTracker
from riverflow.services.live_store import LiveStateStore
from riverflow.services.pipeline import ReadingPipeline
from riverflow.services.throttle import WriteThrottle
from riverflow.services.types import LiveSession

log = logging.getLogger("web")


class LiveRuntime:
    def __init__(
        self,
        settings: Settings,
        store: Any = None,
        bridge: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        live_cfg = settings.live
        alerts_cfg = settings.alerts
        ps = settings.persistence

        # durable store
        self.engine = make_engine(settings.db_url)
        init_db(self.engine)
        self.session_factory = make_session_factory(self.engine)
        self.store = store if store is not None else DurableStore(self.session_factory)

        # live pipeline
        self.session = LiveSession()
        self.inflight = InflightTracker()
        self.resolver = ThresholdResolver(alerts_cfg)
        self.confirmation = AlertConfirmationTracker(self.session, int(alerts_cfg["confirm_window_ms"]))
        self.live = LiveStateStore(
            self.session,
            snapshot_path=live_cfg.get("snapshot_path") or None,
            history_size=int(live_cfg["history_size"]),
            autosave=False,          # the pipeline saves in the background
        )
        self.hub = BroadcastHub(send_timeout_s=float(settings.broadcast["send_timeout_s"]))
        self.throttle = WriteThrottle(
            self.session,
            self.store,
            self.inflight,
            interval_s=float(ps["write_interval_s"]),
            keep_rows=int(ps["keep_rows"]),
            default_location=ps.get("default_location"),
            flow_rate=float(ps.get("flow_rate", 0.0) or 0.0),
        )

        # optional cross-process fan-out
        self.bridge = bridge
        self.relay = None
        mq = settings.mqtt
        if bridge is not None or mq.get("enabled"):
            from riverflow.services.mqtt_bridge import MqttBridge
            from riverflow.services.relay import LiveRelay

            if self.bridge is None:
                self.bridge = MqttBridge(mq)
            self.relay = LiveRelay(
                self.bridge,
                self.hub,
                channel=str(mq.get("channel") or "sensor/readings"),
                tracker=self.inflight,
            )

        self.pipeline = ReadingPipeline(
            self.session,
            self.resolver,
            self.confirmation,
            self.live,
            self.hub,
            self.throttle,
            self.inflight,
            relay=self.relay,
            clock=clock,
        )
        self._started = False

    async def start(self) -> None:
        if self._started:
            return
        self.live.load()
        if self.relay is not None:
            try:
                if hasattr(self.bridge, "connect"):
                    self.bridge.connect()
                self.relay.start(asyncio.get_running_loop())
            except Exception as e:
                log.error("mqtt relay start failed (non-fatal): %s", e)
        self._started = True
        log.info("live pipeline ready")

    async def stop(self) -> None:
        if not self._started:
            return
        timeout = float(self.settings.persistence["shutdown_timeout_s"])
        if self.relay is not None:
            self.relay.stop()       # no new remote broadcasts once draining starts
        await self.inflight.drain(timeout)
        if self.live.snapshot_path is not None:
            try:
                await asyncio.to_thread(self.live.save)
            except OSError as e:
                log.error("final snapshot save failed: %s", e)
        if self.bridge is not None and hasattr(self.bridge, "stop"):
            try:
                self.bridge.stop()
            except Exception as e:
                log.warning("mqtt stop: %s", e)
        self.engine.dispose()
        self._started = False
        log.info("live pipeline stopped")
