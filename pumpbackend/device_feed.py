"""pumpbackend/device_feed.py - realtime device snapshots over MQTT

Subscribes to the status topic of every known device and turns each status
message into an updated fleet snapshot. Subscriptions are remembered and
replayed on every (re)connect; reconnecting itself is left to paho.
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Callable, Dict, List, Optional

import paho.mqtt.client as mqtt

from core.data_models import Device

logger = logging.getLogger(__name__)

FleetCb = Callable[[List[Device]], None]


class DeviceFeed:
    def __init__(
        self,
        host: str,
        port: int = 1883,
        *,
        topic_prefix: str = "devices",
        username: Optional[str] = None,
        password: Optional[str] = None,
        tls: bool = False,
        client_factory: Optional[Callable[[], mqtt.Client]] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.topic_prefix = topic_prefix.strip("/")
        self.username = username
        self.password = password
        self.tls = tls
        self._client_factory = client_factory or self._create_client

        self.mqtt_client: Optional[mqtt.Client] = None
        self._mqtt_connected = False
        self._lock = threading.Lock()
        self._snapshots: Dict[str, Device] = {}
        self._subscriptions: set[str] = set()
        self._callbacks: list[FleetCb] = []

    # ------------------------------------------------------------------
    def add_listener(self, callback: FleetCb) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_listener(self, callback: FleetCb) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_listeners(self, devices: List[Device]) -> None:
        for callback in list(self._callbacks):
            try:
                callback(devices)
            except Exception as exc:
                logger.error("Feed listener error: %s", exc)

    # ------------------------------------------------------------------
    def status_topic(self, device_id: str) -> str:
        return f"{self.topic_prefix}/{device_id}/status"

    def device_id_from_topic(self, topic: str) -> Optional[str]:
        parts = topic.split("/")
        prefix = self.topic_prefix.split("/")
        if len(parts) != len(prefix) + 2 or parts[: len(prefix)] != prefix or parts[-1] != "status":
            return None
        return parts[len(prefix)] or None

    @property
    def is_connected(self) -> bool:
        return (self.mqtt_client is not None and
                self.mqtt_client.is_connected() and
                self._mqtt_connected)

    @property
    def subscriptions(self) -> set[str]:
        with self._lock:
            return set(self._subscriptions)

    def snapshot(self) -> List[Device]:
        with self._lock:
            return list(self._snapshots.values())

    # ------------------------------------------------------------------
    def set_devices(self, devices: List[Device]) -> None:
        """Seed the known fleet and follow every device in it."""
        with self._lock:
            self._snapshots = {device.id: device for device in devices}
        for device in devices:
            self.subscribe(device.id)

    def update_snapshot(self, device: Device) -> None:
        """Overwrite a known snapshot with a locally applied change."""
        with self._lock:
            if device.id in self._snapshots:
                self._snapshots[device.id] = device

    def subscribe(self, device_id: str) -> None:
        with self._lock:
            self._subscriptions.add(device_id)
        if self.is_connected and self.mqtt_client is not None:
            self._subscribe_topic(self.mqtt_client, device_id)

    def _subscribe_topic(self, client: mqtt.Client, device_id: str) -> None:
        topic = self.status_topic(device_id)
        result = client.subscribe(topic)
        if result[0] != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Failed to subscribe to %s: %s", topic, result[0])

    # ------------------------------------------------------------------
    def _create_client(self) -> mqtt.Client:
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if self.username:
            client.username_pw_set(self.username, self.password)
        if self.tls:
            client.tls_set()
        return client

    def start(self) -> None:
        if self.mqtt_client is not None:
            return
        logger.info("Connecting device feed to %s:%s", self.host, self.port)
        client = self._client_factory()
        client.on_connect = self._on_mqtt_connect
        client.on_disconnect = self._on_mqtt_disconnect
        client.on_message = self._on_mqtt_message
        client.connect_async(self.host, self.port, keepalive=60)
        client.loop_start()
        self.mqtt_client = client

    def stop(self) -> None:
        if self.mqtt_client is None:
            return
        self._mqtt_connected = False
        try:
            self.mqtt_client.disconnect()
            self.mqtt_client.loop_stop()
        except Exception as e:
            logger.error("Error during MQTT disconnect: %s", e)
        self.mqtt_client = None
        logger.info("Device feed stopped")

    # ------------------------------------------------------------------
    def _on_mqtt_connect(self, client, userdata, connect_flags, reason_code, properties=None):
        # reason_code is a ReasonCode object in v2, need to get the numeric value
        rc = reason_code.value if hasattr(reason_code, 'value') else reason_code

        if rc != 0:
            logger.error("MQTT connection failed with code %s", rc)
            self._mqtt_connected = False
            return

        self._mqtt_connected = True
        device_ids = self.subscriptions
        logger.info("Device feed connected, subscribing to %d devices", len(device_ids))
        for device_id in sorted(device_ids):
            self._subscribe_topic(client, device_id)

    def _on_mqtt_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        self._mqtt_connected = False

        rc = reason_code.value if hasattr(reason_code, 'value') else reason_code
        if rc == 0:
            logger.info("Device feed disconnected normally")
        else:
            logger.warning("Device feed disconnected unexpectedly with code %s", rc)

    def _on_mqtt_message(self, client, userdata, message, properties=None):
        device_id = self.device_id_from_topic(message.topic)
        if device_id is None:
            logger.debug("Ignoring message on %s", message.topic)
            return

        try:
            data = json.loads(message.payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Invalid status payload for %s: %s", device_id, e)
            return
        if not isinstance(data, dict):
            logger.warning("Unexpected status payload for %s: %r", device_id, data)
            return

        with self._lock:
            previous = self._snapshots.get(device_id)
            merged = previous.to_api() if previous else {}
            merged.update(data)
            merged["_id"] = device_id
            try:
                device = Device.from_api(merged)
            except (TypeError, ValueError) as e:
                logger.warning("Could not parse status for %s: %s", device_id, e)
                return
            self._snapshots[device_id] = device
            devices = list(self._snapshots.values())

        logger.debug("Status update for %s: %s", device_id, device)
        self._notify_listeners(devices)
