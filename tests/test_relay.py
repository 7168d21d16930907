# tests/test_relay.py
from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from riverflow.services.broadcast import BroadcastHub
from riverflow.services.inflight import InflightTracker
from riverflow.services.messages import LiveReading, LiveReadingMessage
from riverflow.services.mqtt_bridge import MqttBridge
from riverflow.services.relay import LiveRelay
from tests.fakes import FakeBridge, FakeSocket

READING = {
    "nodeId": "n",
    "waterLevel": 4.2,
    "timestamp": "2024-05-01T10:00:00.000Z",
    "alertStatus": "warning",
    "confirmedAlert": False,
}


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate() and loop.time() < deadline:
        await asyncio.sleep(0.01)


class TestLiveRelay:
    def test_publish_wraps_message(self):
        bridge = FakeBridge()
        relay = LiveRelay(bridge, BroadcastHub(), origin="me")
        msg = LiveReadingMessage(data=LiveReading.model_validate(READING))
        relay.publish(msg)
        assert bridge.published == [
            ("sensor/readings", {"origin": "me", "message": {"type": "live_reading", "data": READING}}),
        ]

    @pytest.mark.asyncio
    async def test_remote_reading_reaches_local_subscribers(self):
        bridge, hub, ws = FakeBridge(), BroadcastHub(), FakeSocket()
        await hub.register(ws)
        relay = LiveRelay(bridge, hub, origin="me")
        relay.start(asyncio.get_running_loop())

        handler = bridge.handlers["sensor/readings"][0]
        # paho calls handlers from its network thread
        await asyncio.to_thread(handler, {"origin": "other", "message": {"type": "live_reading", "data": READING}})
        await _wait_for(lambda: len(ws.sent) == 2)

        assert json.loads(ws.sent[-1])["data"] == READING

    @pytest.mark.asyncio
    async def test_own_and_invalid_messages_are_ignored(self, caplog):
        bridge, hub, ws = FakeBridge(), BroadcastHub(), FakeSocket()
        await hub.register(ws)
        relay = LiveRelay(bridge, hub, origin="me")
        relay.start(asyncio.get_running_loop())
        handler = bridge.handlers["sensor/readings"][0]

        handler({"origin": "me", "message": {"type": "live_reading", "data": READING}})
        handler({"origin": "other", "message": {"type": "live_reading", "data": {"nodeId": "n"}}})
        handler({"origin": "other", "message": {"type": "pong"}})
        await asyncio.sleep(0.05)

        assert len(ws.sent) == 1                 # only "connected"
        assert "invalid live message" in caplog.text

    @pytest.mark.asyncio
    async def test_remote_broadcast_is_drained_on_shutdown(self):
        release = asyncio.Event()
        delivered = []

        class GatedHub(BroadcastHub):
            async def broadcast(self, message):
                await release.wait()
                delivered.append(message)
                return 1

        tracker = InflightTracker()
        bridge = FakeBridge()
        relay = LiveRelay(bridge, GatedHub(), origin="me", tracker=tracker)
        relay.start(asyncio.get_running_loop())
        handler = bridge.handlers["sensor/readings"][0]

        await asyncio.to_thread(handler, {"origin": "other", "message": {"type": "live_reading", "data": READING}})
        await _wait_for(lambda: tracker.pending == 1)
        assert tracker.pending == 1

        release.set()
        assert await tracker.drain(1.0) == 0
        assert [m.data.node_id for m in delivered] == ["n"]

    @pytest.mark.asyncio
    async def test_stopped_relay_drops_remote_messages(self):
        tracker = InflightTracker()
        bridge, hub, ws = FakeBridge(), BroadcastHub(), FakeSocket()
        await hub.register(ws)
        relay = LiveRelay(bridge, hub, origin="me", tracker=tracker)
        relay.start(asyncio.get_running_loop())
        handler = bridge.handlers["sensor/readings"][0]

        relay.stop()
        await asyncio.to_thread(handler, {"origin": "other", "message": {"type": "live_reading", "data": READING}})
        await asyncio.sleep(0.05)

        assert tracker.pending == 0
        assert len(ws.sent) == 1


class TestMqttBridge:
    def _bridge(self, **conf):
        return MqttBridge({"host": "localhost", **conf}, client=MagicMock())

    def test_topic_is_relative_to_base(self):
        b = self._bridge(base_topic="river")
        assert b.topic("sensor/readings") == "/river/sensor/readings"
        assert b.topic("/abs/topic") == "/abs/topic"

    def test_subscribe_and_dispatch(self):
        b = self._bridge()
        got = []
        b.subscribe("sensor/readings", got.append)
        b.client.subscribe.assert_called_with("/riverflow/sensor/readings", qos=0)

        b._on_message(None, None, SimpleNamespace(topic="/riverflow/sensor/readings", payload=b'{"a": 1}'))
        b._on_message(None, None, SimpleNamespace(topic="/riverflow/sensor/readings", payload=b"[1, 2]"))
        b._on_message(None, None, SimpleNamespace(topic="/riverflow/sensor/readings", payload=b"garbage"))
        assert got == [{"a": 1}]

    def test_handler_error_does_not_stop_others(self):
        b = self._bridge()
        got = []

        def boom(_):
            raise RuntimeError("boom")

        b.subscribe("c", boom)
        b.subscribe("c", got.append)
        b._on_message(None, None, SimpleNamespace(topic="/riverflow/c", payload=b'{"x": 1}'))
        assert got == [{"x": 1}]

    def test_publisher_thread_sends_json(self):
        b = self._bridge(qos=1)
        b.connect()
        b.publish("c", {"k": "v"})
        b.stop(timeout=1.0)

        b.client.connect_async.assert_called_once_with("localhost", 1883)
        b.client.publish.assert_called_once_with("/riverflow/c", '{"k": "v"}', qos=1, retain=False)

    def test_unsubscribe(self):
        b = self._bridge()
        got = []
        b.subscribe("c", got.append)
        b.unsubscribe("c")
        b._on_message(None, None, SimpleNamespace(topic="/riverflow/c", payload=b'{"x": 1}'))
        assert got == []
