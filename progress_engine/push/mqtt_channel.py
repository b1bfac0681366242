"""Canal push sobre MQTT.

Usa paho-mqtt para recibir eventos ``block-progress`` y los entrega a los
handlers en el event loop del motor. El loop de red de paho corre en su
propio hilo; cada mensaje se reenvía con ``call_soon_threadsafe`` para que
todo el estado del motor se mute desde un solo hilo.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import orjson
import paho.mqtt.client as mqtt

from .channel import EventHandler, PushChannel, Unsubscribe

logger = logging.getLogger(__name__)


class MqttPushChannel(PushChannel):
    """Canal push MQTT."""

    def __init__(
        self,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        topic: str = "detection-events/block-progress",
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "progress-monitor",
    ):
        super().__init__()
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected = False
        self._ever_connected = False
        self._running = False

        self.received = 0
        self.invalid = 0
        self.dropped = 0
        self.reconnects = 0

    def subscribe(self, handler: EventHandler) -> Unsubscribe:
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass
        return super().subscribe(handler)

    def start(self) -> bool:
        """Conecta al broker y arranca el loop de red de paho."""
        try:
            self._client = mqtt.Client(
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            )
            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            self._client.reconnect_delay_set(min_delay=1, max_delay=30)

            logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
            self._client.connect_async(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()
            self._running = True
            return True

        except Exception as e:
            logger.exception("[MQTT] Start failed: %s", e)
            return False

    def stop(self) -> None:
        self._running = False

        if self._client:
            try:
                self._client.loop_stop()
                self._client.disconnect()
            except Exception as e:
                logger.warning("[MQTT] Error stopping: %s", e)

        self._connected = False
        logger.info(
            "[MQTT] Stopped. received=%d invalid=%d dropped=%d reconnects=%d",
            self.received,
            self.invalid,
            self.dropped,
            self.reconnects,
        )

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        """Callback de conexión."""
        if rc == 0:
            if self._ever_connected:
                self.reconnects += 1
            self._ever_connected = True
            self._connected = True
            client.subscribe(self.topic, qos=1)
            logger.info("[MQTT] Connected, subscribed to %s", self.topic)
        else:
            self._connected = False
            logger.error("[MQTT] Connection failed: rc=%s", rc)

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        """Callback de desconexión."""
        self._connected = False
        logger.warning("[MQTT] Disconnected (rc=%s)", rc)

    def _on_message(self, client, userdata, msg):
        """Callback de mensaje recibido (hilo de paho)."""
        self.received += 1
        data = self._parse_json(msg.payload, msg.topic)
        if data is None:
            return

        if self._loop is None or self._loop.is_closed():
            # Los handlers mutan estado del loop; nunca se llaman desde el hilo de paho
            self.dropped += 1
            logger.warning("[MQTT] No event loop to dispatch to, message dropped (topic=%s)", msg.topic)
            return

        self._loop.call_soon_threadsafe(self._dispatch, data)

    def _parse_json(self, payload: bytes, topic: str) -> Optional[Dict[str, Any]]:
        try:
            data = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            logger.warning("[MQTT] Invalid JSON: %s (topic=%s)", e, topic)
            self.invalid += 1
            return None
        if not isinstance(data, dict):
            logger.warning("[MQTT] Unexpected payload type %s (topic=%s)", type(data).__name__, topic)
            self.invalid += 1
            return None
        return data

    def is_connected(self) -> bool:
        return self._connected

    @property
    def channel_name(self) -> str:
        return "mqtt"

    @property
    def stats(self) -> dict:
        return {
            "running": self._running,
            "connected": self._connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "topic": self.topic,
            "messages_received": self.received,
            "messages_invalid": self.invalid,
            "messages_dropped": self.dropped,
            "reconnects": self.reconnects,
        }
