"""MQTT bridge delivering Shelly input notifications to the asyncio loop."""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import paho.mqtt.client as mqtt

from constants import (
    INPUT_COMPONENT_PREFIX,
    MQTT_KEEPALIVE,
    MQTT_NOTIFY_STATUS_METHOD,
    MQTT_QOS,
    MQTT_RPC_EVENTS_SUFFIX,
)

logger = logging.getLogger(__name__)


def input_events_from_rpc(frame: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    A Shelly Gen2 NotifyStatus frame, e.g.:
      {"src": "shellyplusi4-...", "method": "NotifyStatus",
       "params": {"ts": 1700000000.12, "input:0": {"id": 0, "state": true}}}
    becomes one host event per input component:
      {"component": "input:0", "delta": {"id": 0, "state": true}}
    """
    if frame.get("method") != MQTT_NOTIFY_STATUS_METHOD:
        return []
    params = frame.get("params")
    if not isinstance(params, dict):
        return []

    events = []
    for component, delta in params.items():
        if component.startswith(INPUT_COMPONENT_PREFIX) and isinstance(delta, dict):
            events.append({"component": component, "delta": delta})
    return events


class MqttBridge:
    """Bridge between MQTT and asyncio event loop."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        event_queue: "asyncio.Queue[Dict[str, Any]]",
        host: str,
        port: int,
        topic_prefix: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.loop = loop
        self.event_queue = event_queue
        self.host = host
        self.port = port
        self.topic = f"{topic_prefix.rstrip('/')}/{MQTT_RPC_EVENTS_SUFFIX}"
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if username:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message

    def connect(self):
        """Connect to MQTT broker."""
        try:
            self.client.connect(self.host, self.port, keepalive=MQTT_KEEPALIVE)
            self.client.loop_start()
            logger.info(f"Connected to MQTT broker at {self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            raise

    def close(self):
        """Close MQTT connection."""
        try:
            self.client.loop_stop()
        finally:
            self.client.disconnect()

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Handle MQTT connection."""
        if reason_code == 0:
            logger.info("Connected to MQTT broker successfully")
        else:
            logger.warning(f"Connected to MQTT broker with code {reason_code}")
        client.subscribe(self.topic, qos=MQTT_QOS)
        logger.info(f"Subscribed to: {self.topic}")

    def _on_message(self, client, userdata, msg):
        """Handle incoming MQTT message."""
        try:
            if msg.topic != self.topic:
                logger.debug(f"Ignoring message on topic: {msg.topic}")
                return
            frame = json.loads((msg.payload or b"").decode("utf-8", errors="replace"))
            if not isinstance(frame, dict):
                logger.debug(f"Ignoring non-object payload on {msg.topic}")
                return

            for event in input_events_from_rpc(frame):
                logger.debug(f"Received input event from MQTT: {event}")
                # push into asyncio loop safely from MQTT thread
                self.loop.call_soon_threadsafe(self.event_queue.put_nowait, event)

        except Exception as e:
            logger.error(f"Error handling MQTT message: {e}", exc_info=True)
