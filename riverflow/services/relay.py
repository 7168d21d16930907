# riverflow/services/relay.py
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from riverflow.services.broadcast import BroadcastHub
from riverflow.services.inflight import InflightTracker
from riverflow.services.messages import LiveReadingMessage, parse_message

log = logging.getLogger("mqtt")


class LiveRelay:
    """
    Cross-process fan-out of live messages through the pub/sub collaborator.

    Outgoing: {"origin": <instance id>, "message": <live message>} on `channel`.
    Incoming messages from other instances are validated and handed to the
    local hub; our own echoes are ignored. Remote broadcasts run as tracked
    background tasks, so shutdown drains them with the rest.
    """

    def __init__(
        self,
        bridge: Any,                              # MqttBridge or anything with publish/subscribe
        hub: BroadcastHub,
        channel: str = "sensor/readings",
        origin: Optional[str] = None,
        tracker: Optional[InflightTracker] = None,
    ) -> None:
        self.bridge = bridge
        self.hub = hub
        self.channel = channel
        self.origin = origin or uuid.uuid4().hex
        self.tracker = tracker or InflightTracker()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self.bridge.subscribe(self.channel, self._on_remote)
        log.info("live relay on channel '%s' (origin %s)", self.channel, self.origin[:8])

    def stop(self) -> None:
        # remote messages are dropped from here on
        self._loop = None

    def publish(self, message: BaseModel) -> None:
        self.bridge.publish(self.channel, {
            "origin": self.origin,
            "message": message.model_dump(by_alias=True, mode="json"),
        })

    def _on_remote(self, payload: Dict[str, Any]) -> None:
        # runs on the paho network thread
        if payload.get("origin") == self.origin:
            return
        try:
            msg = parse_message(payload.get("message"))
        except ValidationError as e:
            log.warning("relay: invalid live message dropped: %s", e.errors()[:1])
            return
        if not isinstance(msg, LiveReadingMessage):
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            log.debug("relay: no event loop, message dropped")
            return
        try:
            loop.call_soon_threadsafe(self._spawn_broadcast, msg)
        except RuntimeError:
            log.debug("relay: event loop closed, message dropped")

    def _spawn_broadcast(self, msg: LiveReadingMessage) -> None:
        # on the event loop thread
        if self._loop is None:
            return
        self.tracker.spawn(self.hub.broadcast(msg), name=f"relay:{msg.data.node_id}")
