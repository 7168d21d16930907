# tests/fakes.py
from __future__ import annotations

import itertools
from types import SimpleNamespace
from typing import Any, Callable, Dict, List

from starlette.websockets import WebSocketState

from riverflow.core.errors import TransientStorageError

T0 = 1_700_000_000.0


class FakeClock:
    """Injectable processing-time clock (epoch seconds)."""

    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class FakeStore:
    """In-memory stand-in for DurableStore; records every call."""

    def __init__(self) -> None:
        self.nodes: Dict[str, SimpleNamespace] = {}
        self.inserts: List[Dict[str, Any]] = []
        self.prunes: List[tuple] = []
        self.fail = False
        self._ids = itertools.count(1)

    def find_or_create_node(self, name, default_location=None):
        if self.fail:
            raise TransientStorageError("database unavailable")
        if name not in self.nodes:
            self.nodes[name] = SimpleNamespace(id=next(self._ids), name=name, location=default_location)
        return self.nodes[name]

    def insert_reading(self, node_id, water_level, flow_rate, timestamp, confirmed_alert):
        self.inserts.append({
            "node_id": node_id,
            "water_level": water_level,
            "flow_rate": flow_rate,
            "timestamp": timestamp,
            "confirmed_alert": confirmed_alert,
        })
        return len(self.inserts)

    def delete_readings_older_than_retained(self, node_id, keep_count):
        self.prunes.append((node_id, keep_count))
        return 0


class FakeSocket:
    """Minimal websocket subscriber for BroadcastHub."""

    def __init__(self) -> None:
        self.sent: List[str] = []
        self.accepted = False
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING

    async def accept(self) -> None:
        self.accepted = True
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, text: str) -> None:
        if self.client_state != WebSocketState.CONNECTED:
            raise RuntimeError("socket closed")
        self.sent.append(text)

    def close(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED


class BrokenSocket(FakeSocket):
    """Looks open but every send fails."""

    async def send_text(self, text: str) -> None:
        raise ConnectionResetError("peer went away")


class FakeBridge:
    """Pub/sub collaborator that keeps everything in memory."""

    def __init__(self) -> None:
        self.published: List[tuple] = []
        self.handlers: Dict[str, List[Callable]] = {}
        self.connected = False
        self.stopped = False

    def connect(self) -> None:
        self.connected = True

    def stop(self, timeout: float = 2.0) -> None:
        self.stopped = True

    def publish(self, channel: str, message: Dict[str, Any]) -> None:
        self.published.append((channel, message))

    def subscribe(self, channel: str, handler: Callable) -> None:
        self.handlers.setdefault(channel, []).append(handler)


def make_settings(tmp_path, **overrides):
    """Settings on a tmp SQLite file and snapshot; `overrides` are merged per section."""
    from riverflow.core.config import Settings

    cfg: Dict[str, Any] = {
        "db": {"url": f"sqlite:///{tmp_path / 'test.db'}"},
        "live": {"snapshot_path": str(tmp_path / "live-data.json")},
    }
    for section, values in overrides.items():
        cfg.setdefault(section, {}).update(values)
    s = Settings()
    s.set_cfg(cfg)
    return s
