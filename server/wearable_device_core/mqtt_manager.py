"""
MQTT client management for the device telemetry feed.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional
import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

# Telemetry message types, one topic per type: <prefix>/<device id>/<type>
TELEMETRY_TYPES = ("battery", "signal", "connection", "sync", "firmware")


class MQTTManager:
    """Manages the MQTT client and routes telemetry messages by type"""

    def __init__(self, broker: str, port: int = 1883,
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 client_id: str = "wearable_device_core",
                 topic_prefix: str = "wearables"):
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.topic_prefix = topic_prefix
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)

        if username and password:
            self.client.username_pw_set(username, password)

        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect
        self.client.on_log = self._on_log

        self.message_handlers: Dict[str, Callable[[str, Dict[str, Any]], None]] = {}
        self.connected = False
        self._connection_callbacks: List[Callable[[bool], None]] = []
        self._disconnection_callbacks: List[Callable[[], None]] = []

    @property
    def subscriptions(self) -> List[str]:
        return [f"{self.topic_prefix}/+/{message_type}" for message_type in TELEMETRY_TYPES]

    def add_connection_callback(self, callback: Callable[[bool], None]):
        """Add callback for connection state changes"""
        self._connection_callbacks.append(callback)

    def add_disconnection_callback(self, callback: Callable[[], None]):
        """Add callback for disconnection events"""
        self._disconnection_callbacks.append(callback)

    def add_message_handler(self, message_type: str, handler: Callable[[str, Dict[str, Any]], None]):
        """Register a handler called with (device id, payload) for a telemetry type"""
        if message_type not in TELEMETRY_TYPES:
            raise ValueError(f"Unknown telemetry type: {message_type}")
        self.message_handlers[message_type] = handler
        logger.debug(f"Registered handler for {message_type} telemetry")

    async def connect(self):
        """Connect to MQTT broker"""
        try:
            self.client.connect(self.broker, self.port, 60)
            self.client.loop_start()
            logger.info(f"Connecting to MQTT broker at {self.broker}:{self.port}")
        except Exception as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")
            raise

    async def disconnect(self):
        """Disconnect from MQTT broker"""
        self.client.loop_stop()
        self.client.disconnect()

    def _on_log(self, client, userdata, level, buf):
        """MQTT client logging callback"""
        logger.debug(f"MQTT: {buf}")

    def _notify_connection(self, success: bool):
        for callback in self._connection_callbacks:
            try:
                callback(success)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """MQTT connection callback"""
        if reason_code.is_failure:
            logger.error(f"Connection failed: {reason_code}")
            self._notify_connection(False)
            return

        logger.info("Connected to MQTT broker")
        self.connected = True

        for topic in self.subscriptions:
            client.subscribe(topic, 1)
            logger.info(f"Subscribed to {topic}")

        self._notify_connection(True)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """MQTT disconnection callback"""
        self.connected = False
        logger.warning(f"Disconnected from MQTT broker ({reason_code})")

        if reason_code.is_failure:
            logger.info("Unexpected disconnection, will auto-reconnect")

        for callback in self._disconnection_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in disconnection callback: {e}")

    def _on_message(self, client, userdata, msg):
        """MQTT message callback"""
        try:
            payload = json.loads(msg.payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.error(f"Invalid JSON in message from {msg.topic}")
            return

        logger.debug(f"Received message on {msg.topic}: {payload}")
        self.dispatch(msg.topic, payload)

    def dispatch(self, topic: str, payload: Any) -> bool:
        """Route a decoded message to its handler. Returns True if handled."""
        # <prefix>/<device id>/<type>; the prefix itself may contain '/'
        prefix = self.topic_prefix.rstrip("/") + "/"
        if not topic.startswith(prefix):
            logger.debug(f"Ignoring message outside {prefix}: {topic}")
            return False

        parts = topic[len(prefix):].split("/")
        if len(parts) != 2 or not parts[0]:
            logger.warning(f"Invalid telemetry topic format: {topic}")
            return False

        device_id, message_type = parts
        handler = self.message_handlers.get(message_type)
        if handler is None:
            logger.debug(f"No handler for topic: {topic}")
            return False

        if not isinstance(payload, dict):
            logger.warning(f"Telemetry payload on {topic} is not an object: {payload!r}")
            return False

        try:
            handler(device_id, payload)
        except Exception as e:
            logger.error(f"Error in {message_type} handler for {device_id}: {e}")
            return False
        return True

    async def publish(self, topic: str, payload: Dict[str, Any], qos: int = 0, retain: bool = False) -> bool:
        """Publish a message to MQTT"""
        if not self.connected:
            logger.warning("Cannot publish - not connected to broker")
            return False

        try:
            result = self.client.publish(topic, json.dumps(payload), qos, retain)

            if result.rc == mqtt.MQTT_ERR_SUCCESS:
                logger.debug(f"Published to {topic}")
                return True
            else:
                logger.error(f"Failed to publish to {topic}: {result.rc}")
                return False

        except Exception as e:
            logger.error(f"Error publishing message: {e}")
            return False
