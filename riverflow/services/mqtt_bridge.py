# riverflow/services/mqtt_bridge.py
from __future__ import annotations
import json, queue, threading
from typing import Optional, Dict, Any, Callable, List
import paho.mqtt.client as mqtt

import logging

log = logging.getLogger("mqtt")

Handler = Callable[[Dict[str, Any]], None]

class MqttBridge:
    """
    Pub/sub collaborator over an MQTT broker:
      publish(channel, message)   : queued, sent from a background thread
      subscribe(channel, handler) : handler(dict) runs on the paho network thread
    Channels are relative to base_topic unless they start with "/".
    """
    def __init__(self, conf: dict, client: Optional[mqtt.Client] = None):
        self.conf = conf
        self.client = client or mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=conf.get("client_id", "") or "",
            protocol=mqtt.MQTTv311,
        )

        self._handlers: Dict[str, List[Handler]] = {}  # topic -> handlers
        self._lock = threading.RLock()

        def _on_connect(c, u, flags, rc, properties=None):
            log.info(f"[mqtt] connected rc={rc}")
            # after a reconnect: subscribe again to everything we had
            with self._lock:
                for t in self._handlers.keys():
                    try:
                        self.client.subscribe(t, qos=self.qos)
                    except Exception as e:
                        log.warning(f"[mqtt] resubscribe failed for {t}: {e}")

        self.client.on_connect = _on_connect
        self.client.on_message = self._on_message

        self.base = (conf.get("base_topic") or "/riverflow").rstrip("/")
        if not self.base.startswith("/"): self.base = "/" + self.base
        self.qos = int(conf.get("qos", 0)); self.retain = bool(conf.get("retain", False))
        self.out_queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._publisher: Optional[threading.Thread] = None

    def topic(self, channel: str) -> str:
        return channel if channel.startswith("/") else f"{self.base}/{channel}".replace("//", "/")

    def connect(self):
        # a missing broker must not take the process down
        try:
            # async connect + paho's own reconnect loop
            self.client.connect_async(self.conf["host"], int(self.conf.get("port", 1883)))
        except Exception as e:
            log.error(f"[mqtt] initial connect failed: {e}")
        self.client.loop_start()  # non-blocking network loop
        self._publisher = threading.Thread(target=self._publisher_loop, name="mqtt-publisher", daemon=True)
        self._publisher.start()

    def stop(self, timeout: float = 2.0) -> None:
        self.out_queue.put(None)
        if self._publisher is not None:
            self._publisher.join(timeout=timeout)
        try:
            self.client.disconnect()
            self.client.loop_stop()
        except Exception as e:
            log.debug(f"[mqtt] stop: {e}")

    def publish(self, channel: str, message: Dict[str, Any]) -> None:
        self.out_queue.put((self.topic(channel), message))

    def subscribe(self, channel: str, handler: Handler) -> None:
        topic = self.topic(channel)
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)
        try:
            self.client.subscribe(topic, qos=self.qos)
            log.info(f"[mqtt] subscribed: {topic}")
        except Exception as e:
            # not connected yet, on_connect will subscribe
            log.debug(f"[mqtt] subscribe deferred for {topic}: {e}")

    def unsubscribe(self, channel: str) -> None:
        topic = self.topic(channel)
        with self._lock:
            self._handlers.pop(topic, None)
        try:
            self.client.unsubscribe(topic)
            log.info(f"[mqtt] unsubscribed: {topic}")
        except Exception as e:
            log.debug(f"[mqtt] unsubscribe {topic}: {e}")

    def _on_message(self, client, userdata, msg):
        topic = msg.topic
        try:
            data = json.loads(msg.payload.decode("utf-8", errors="ignore"))
        except Exception as e:
            log.warning(f"[mqtt] non-JSON payload on {topic}: {e}")
            return
        if not isinstance(data, dict):
            log.warning(f"[mqtt] payload on {topic} is not an object, ignored")
            return

        with self._lock:
            handlers = list(self._handlers.get(topic, []))
        for handler in handlers:
            try:
                handler(data)
            except Exception as e:
                log.error(f"[mqtt] handler error for {topic}: {e}")

    def _publisher_loop(self):
        # drains the queue up to the stop sentinel
        while True:
            item = self.out_queue.get()
            if item is None:
                break
            topic, message = item
            try:
                self.client.publish(topic, json.dumps(message, ensure_ascii=False), qos=self.qos, retain=self.retain)
            except Exception as e:
                log.error(f"[mqtt] publish error on {topic}: {e}")
