"""
Telemetry Bridge

Coordinates the MQTT telemetry feed, the device manager and the device store:
every telemetry message updates the in-memory record and persists the result.
"""

import asyncio
import logging
import sqlite3
from datetime import timedelta
from typing import Any, Dict, Optional

from .data_models import CoreConfig
from .database import DeviceStore
from .device_manager import DeviceManager
from .errors import DeviceCoreError, DeviceNotFoundError
from .mqtt_manager import MQTTManager
from .timezone_utils import parse_utc, utc_now

logger = logging.getLogger(__name__)


class TelemetryBridge:
    """Main bridge coordinator class"""

    def __init__(self, config: Optional[CoreConfig] = None):
        self.config = config or CoreConfig()

        self.store = DeviceStore(self.config.db_path)
        self.device_manager = DeviceManager(
            reconnection_threshold_hours=self.config.reconnection_threshold_hours,
            low_battery_threshold=self.config.low_battery_threshold,
            persist=self.store.save,
        )
        self.mqtt = MQTTManager(
            self.config.mqtt_broker,
            self.config.mqtt_port,
            self.config.mqtt_username,
            self.config.mqtt_password,
            client_id=self.config.mqtt_client_id,
            topic_prefix=self.config.topic_prefix,
        )

        self.running = False
        self._background_tasks = []
        self._setup_event_handlers()

    def _setup_event_handlers(self):
        """Setup event handlers between components"""
        self.mqtt.add_message_handler("battery", self._handle_battery)
        self.mqtt.add_message_handler("signal", self._handle_signal)
        self.mqtt.add_message_handler("connection", self._handle_connection)
        self.mqtt.add_message_handler("sync", self._handle_sync)
        self.mqtt.add_message_handler("firmware", self._handle_firmware)

        self.mqtt.add_connection_callback(self._on_mqtt_connected)
        self.mqtt.add_disconnection_callback(self._on_mqtt_disconnected)

    def load_devices(self) -> int:
        """Load every stored record into the device manager"""
        count = 0
        for record in self.store.get_all():
            if self.device_manager.get_device(record.id) is None:
                self.device_manager.register(record)
                count += 1
        logger.info(f"Loaded {count} devices from {self.config.db_path}")
        return count

    async def start(self):
        """Start the bridge"""
        if self.running:
            logger.warning("Bridge already running")
            return

        logger.info("Starting telemetry bridge...")
        self.load_devices()
        await self.mqtt.connect()

        self.running = True
        self._background_tasks = [asyncio.create_task(self._assessment_task())]
        logger.info("Bridge background tasks started")

    async def stop(self):
        """Stop the bridge"""
        logger.info("Stopping telemetry bridge...")
        self.running = False

        for task in self._background_tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks = []

        await self.mqtt.disconnect()

    def run_assessment(self, now=None) -> Dict[str, Any]:
        """Log devices that need attention and prune old sync history"""
        now = now or utc_now()

        stale = self.device_manager.get_devices_needing_reconnection(now)
        for device in stale:
            logger.warning(f"Device {device.id} ({device.name}) needs reconnection")

        low_battery = [
            device for device in self.device_manager.get_low_battery_devices()
            if not device.is_charging
        ]
        for device in low_battery:
            logger.warning(f"Device {device.id} ({device.name}) battery at {device.battery_level}%")

        cutoff = now - timedelta(days=self.config.sync_history_retention_days)
        pruned = sum(
            self.store.delete_sync_history_older_than(device.id, cutoff)
            for device in self.device_manager.get_all_devices()
        )

        return {
            "needs_reconnection": [device.id for device in stale],
            "low_battery": [device.id for device in low_battery],
            "pruned_sync_events": pruned,
        }

    async def _assessment_task(self):
        """Periodically assess all devices"""
        while self.running:
            try:
                self.run_assessment()
            except Exception as e:
                logger.error(f"Error in assessment task: {e}")
            await asyncio.sleep(self.config.assessment_interval_seconds)

    def _apply(self, device_id: str, update, *args, **kwargs):
        """Apply one telemetry update; the device manager persists the new record"""
        try:
            record = update(device_id, *args, **kwargs)
        except DeviceNotFoundError:
            logger.warning(f"Telemetry for unknown device {device_id} ignored")
            return None
        except DeviceCoreError as e:
            logger.warning(f"Rejected telemetry for {device_id}: {e}")
            return None
        except sqlite3.Error as e:
            logger.error(f"Failed to store telemetry for {device_id}: {e}")
            return None
        return record

    @staticmethod
    def _timestamp(payload: Dict[str, Any]):
        return parse_utc(payload.get("timestamp")) or utc_now()

    def _handle_battery(self, device_id: str, payload: Dict[str, Any]):
        """Handle battery telemetry: {"level": 80, "charging": false}"""
        if payload.get("level") is None:
            logger.warning(f"Battery telemetry from {device_id} has no level")
            return
        self._apply(device_id, self.device_manager.update_battery,
                    payload.get("level"),
                    is_charging=payload.get("charging"),
                    now=self._timestamp(payload))

    def _handle_signal(self, device_id: str, payload: Dict[str, Any]):
        """Handle link telemetry: {"rssi": -65, "tx_power_level": 2, "mtu": 247}"""
        self._apply(device_id, self.device_manager.update_signal,
                    payload.get("rssi"),
                    tx_power_level=payload.get("tx_power_level"),
                    mtu_size=payload.get("mtu"),
                    now=self._timestamp(payload))

    def _handle_connection(self, device_id: str, payload: Dict[str, Any]):
        """Handle connection state changes: {"status": "CONNECTED"}"""
        self._apply(device_id, self.device_manager.update_connection_status,
                    payload.get("status"),
                    now=self._timestamp(payload))

    def _handle_sync(self, device_id: str, payload: Dict[str, Any]):
        """Handle sync progress: {"state": "started" | "completed" | "failed"}"""
        state = payload.get("state")
        now = self._timestamp(payload)

        if state == "started":
            self._apply(device_id, self.device_manager.mark_sync_started, now=now)
            return
        if state not in ("completed", "failed"):
            logger.warning(f"Unknown sync state from {device_id}: {state!r}")
            return

        success = state == "completed"
        record = self._apply(device_id, self.device_manager.record_sync_result,
                             success,
                             duration=payload.get("duration"),
                             error=payload.get("error"),
                             now=now)
        if record is not None:
            self.store.record_sync_event(
                device_id, success,
                duration=record.last_sync_duration if success else None,
                error=record.last_sync_error,
                sync_time=now,
            )

    def _handle_firmware(self, device_id: str, payload: Dict[str, Any]):
        """Handle firmware announcements: {"latest_version": "1.3.0"}"""
        self._apply(device_id, self.device_manager.set_latest_firmware,
                    payload.get("latest_version"),
                    now=self._timestamp(payload))

    def _on_mqtt_connected(self, success: bool):
        """Handle MQTT connection established"""
        if success:
            logger.info("MQTT connected successfully")

    def _on_mqtt_disconnected(self):
        """Handle MQTT connection lost"""
        logger.warning("MQTT connection lost")
