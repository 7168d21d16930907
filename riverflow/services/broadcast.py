# riverflow/services/broadcast.py
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Dict, List, Set

from pydantic import BaseModel
from starlette.websockets import WebSocketState

from riverflow.services.messages import ConnectedMessage, dump_message

log = logging.getLogger("hub")


def _is_open(ws: Any) -> bool:
    return (
        getattr(ws, "client_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
        and getattr(ws, "application_state", WebSocketState.CONNECTED) == WebSocketState.CONNECTED
    )


class BroadcastHub:
    """
    Set of live subscribers (websockets) and fan-out of live messages.

    Delivery is best-effort: every open subscriber gets the message, sends run
    concurrently across subscribers with a timeout, and a subscriber that fails,
    times out or is no longer open is dropped. Nothing is queued for late joiners.
    Sends to one subscriber are serialized by its own lock (asyncio.Lock wakes
    waiters FIFO), so it sees messages in the order broadcast() was called.
    """

    def __init__(self, send_timeout_s: float = 5.0) -> None:
        self.send_timeout_s = float(send_timeout_s)
        self._subs: Set[Any] = set()
        self._send_locks: Dict[Any, asyncio.Lock] = {}
        self._lock = threading.Lock()

    async def register(self, ws: Any) -> None:
        await ws.accept()
        with self._lock:
            self._subs.add(ws)
            self._send_locks[ws] = asyncio.Lock()
        log.info("subscriber connected (%d total)", self.count)
        await self._send(ws, dump_message(ConnectedMessage()))

    def unregister(self, ws: Any) -> None:
        with self._lock:
            removed = ws in self._subs
            self._subs.discard(ws)
            self._send_locks.pop(ws, None)
        if removed:
            log.info("subscriber disconnected (%d total)", self.count)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._subs)

    def subscribers(self) -> List[Any]:
        with self._lock:
            return list(self._subs)

    async def broadcast(self, message: BaseModel) -> int:
        """Send to all open subscribers; returns how many got it."""
        text = dump_message(message)
        targets = self.subscribers()
        if not targets:
            return 0

        results = await asyncio.gather(*(self._send(ws, text) for ws in targets))
        delivered = sum(1 for ok in results if ok)
        if delivered < len(targets):
            log.debug("broadcast delivered to %d/%d", delivered, len(targets))
        return delivered

    async def send(self, ws: Any, message: BaseModel) -> bool:
        """Send to one subscriber, in order with its broadcasts."""
        return await self._send(ws, dump_message(message))

    async def _send(self, ws: Any, text: str) -> bool:
        with self._lock:
            lock = self._send_locks.get(ws)
        if lock is None:
            return False                          # dropped while this send was queued
        async with lock:
            with self._lock:
                if ws not in self._subs:
                    return False
            if not _is_open(ws):
                self.unregister(ws)
                return False
            try:
                await asyncio.wait_for(ws.send_text(text), timeout=self.send_timeout_s)
                return True
            except asyncio.TimeoutError:
                log.warning("subscriber send timed out, dropping it")
            except Exception as e:
                log.debug("subscriber send failed, dropping it: %s", e)
            self.unregister(ws)
            return False
