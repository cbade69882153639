"""
Device management: applies telemetry to device records and derives decisions.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from . import policies
from .data_models import ConnectionStatus, DeviceAssessment, DeviceRecord, SyncStatus
from .errors import DeviceNotFoundError, DuplicateDeviceError
from .identifiers import canonicalize_mac_address
from .timezone_utils import format_age, utc_isoformat, utc_now
from .validation import apply_updates, revalidate

logger = logging.getLogger(__name__)


class DeviceManager:
    """Holds the current record of every paired device.

    Records are immutable; each telemetry update replaces the stored record
    with a revalidated copy. A lock serializes updates because telemetry can
    arrive on the MQTT network thread.

    When ``persist`` is given it is called with every updated record before
    the record replaces the current one; if it raises, the update is dropped.
    """

    def __init__(self, reconnection_threshold_hours: int = 24,
                 low_battery_threshold: int = policies.LOW_BATTERY_THRESHOLD,
                 persist: Optional[Callable[[DeviceRecord], Any]] = None):
        self.devices: Dict[str, DeviceRecord] = {}
        self._mac_index: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.reconnection_threshold = timedelta(hours=reconnection_threshold_hours)
        self.low_battery_threshold = low_battery_threshold
        self.persist = persist

    def register(self, record: DeviceRecord) -> DeviceRecord:
        """Add a paired device

        Raises:
            DuplicateDeviceError: if the id or MAC address is already registered
        """
        record = revalidate(record)
        with self._lock:
            if record.id in self.devices:
                raise DuplicateDeviceError(f"Device {record.id} is already registered")
            if record.mac_address in self._mac_index:
                raise DuplicateDeviceError(
                    f"MAC address {record.mac_address} is already registered "
                    f"to {self._mac_index[record.mac_address]}"
                )
            self.devices[record.id] = record
            self._mac_index[record.mac_address] = record.id

        logger.info(f"Registered device {record.id} ({record.name}, {record.mac_address})")
        return record

    def remove(self, device_id: str) -> DeviceRecord:
        """Forget an unpaired device"""
        with self._lock:
            record = self.devices.pop(device_id, None)
            if record is None:
                raise DeviceNotFoundError(device_id)
            self._mac_index.pop(record.mac_address, None)

        logger.info(f"Removed device {device_id}")
        return record

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        """Get device by ID"""
        return self.devices.get(device_id)

    def get_by_mac(self, mac_address: str) -> Optional[DeviceRecord]:
        device_id = self._mac_index.get(canonicalize_mac_address(mac_address))
        return self.devices.get(device_id) if device_id else None

    def get_all_devices(self, connected_only: bool = False) -> List[DeviceRecord]:
        """Get all devices, optionally filtered by connection status"""
        if connected_only:
            return [device for device in self.devices.values() if device.is_connected]
        return list(self.devices.values())

    def _update(self, device_id: str, now: Optional[datetime],
                derive: Optional[Callable[[DeviceRecord], Dict[str, Any]]] = None,
                **changes) -> DeviceRecord:
        # derive computes changes from the current record under the lock
        with self._lock:
            record = self.devices.get(device_id)
            if record is None:
                raise DeviceNotFoundError(device_id)
            if derive is not None:
                changes.update(derive(record))
            updated = apply_updates(record, now=now, **changes)
            if self.persist is not None:
                self.persist(updated)
            self.devices[device_id] = updated
        return updated

    def update_battery(self, device_id: str, battery_level: int,
                       is_charging: Optional[bool] = None,
                       now: Optional[datetime] = None) -> DeviceRecord:
        """Update battery level and charging state"""
        changes: Dict[str, Any] = {"battery_level": battery_level}
        if is_charging is not None:
            changes["is_charging"] = is_charging

        record = self._update(device_id, now, **changes)
        logger.debug(f"Battery for {device_id}: {battery_level}%")

        if policies.is_low_battery(battery_level, self.low_battery_threshold) and not record.is_charging:
            logger.warning(f"Device {device_id} battery low: {battery_level}%")
        return record

    def update_signal(self, device_id: str, rssi: int,
                      tx_power_level: Optional[int] = None,
                      mtu_size: Optional[int] = None,
                      now: Optional[datetime] = None) -> DeviceRecord:
        """Update link quality readings"""
        changes: Dict[str, Any] = {"signal_strength": rssi}
        if tx_power_level is not None:
            changes["tx_power_level"] = tx_power_level
        if mtu_size is not None:
            changes["mtu_size"] = mtu_size

        logger.debug(f"Signal for {device_id}: {rssi} dBm")
        return self._update(device_id, now, **changes)

    def update_connection_status(self, device_id: str, status,
                                 now: Optional[datetime] = None) -> DeviceRecord:
        """Update connection state. Entering CONNECTED stamps the connection time."""
        status = ConnectionStatus.from_stored(status)
        if now is None:
            now = utc_now()
        changes: Dict[str, Any] = {"connection_status": status}
        if status is ConnectionStatus.CONNECTED:
            changes["last_connection_time"] = now

        previous = self.devices.get(device_id)
        record = self._update(device_id, now, **changes)

        if previous is not None and previous.connection_status is not status:
            logger.info(f"Device {device_id} is now {status.name}")
        return record

    def mark_sync_started(self, device_id: str, now: Optional[datetime] = None) -> DeviceRecord:
        logger.info(f"Sync started for {device_id}")
        return self._update(device_id, now, sync_status=SyncStatus.SYNCING)

    def record_sync_result(self, device_id: str, success: bool,
                           duration: Optional[int] = None,
                           error: Optional[str] = None,
                           now: Optional[datetime] = None) -> DeviceRecord:
        """Record the outcome of a sync.

        Success clears the error and the failure counter; failure increments
        the counter and keeps the previous successful sync time.
        """
        if now is None:
            now = utc_now()

        if success:
            updated = self._update(
                device_id, now,
                sync_status=SyncStatus.SYNCED,
                last_sync_time=now,
                last_sync_duration=duration,
                last_sync_error=None,
                failed_sync_attempts=0,
            )
            logger.info(f"Sync completed for {device_id}")
        else:
            updated = self._update(
                device_id, now,
                sync_status=SyncStatus.ERROR,
                derive=lambda current: {
                    "failed_sync_attempts": current.failed_sync_attempts + 1
                },
                last_sync_error=error,
            )
            logger.warning(
                f"Sync failed for {device_id} (attempt {updated.failed_sync_attempts}): {error}"
            )
        return updated

    def set_latest_firmware(self, device_id: str, latest_version: Optional[str],
                            now: Optional[datetime] = None) -> DeviceRecord:
        """Record the newest published firmware; the update flag is re-derived"""
        record = self._update(device_id, now, latest_firmware_version=latest_version)
        if record.firmware_update_available:
            logger.info(
                f"Firmware update available for {device_id}: "
                f"{record.firmware_version} -> {record.latest_firmware_version}"
            )
        return record

    def assess(self, device_id: str, now: datetime,
               high_usage: bool = False,
               is_active_user: bool = False,
               tx_power_dbm: Optional[int] = None) -> DeviceAssessment:
        """Run every policy function against one device"""
        record = self.devices.get(device_id)
        if record is None:
            raise DeviceNotFoundError(device_id)
        return assess_record(record, now, high_usage=high_usage,
                             is_active_user=is_active_user,
                             tx_power_dbm=tx_power_dbm,
                             reconnection_threshold=self.reconnection_threshold)

    def get_devices_needing_reconnection(self, now: datetime) -> List[DeviceRecord]:
        return [
            device for device in self.devices.values()
            if policies.needs_reconnection(device.last_connection_time,
                                           device.connection_status, now,
                                           self.reconnection_threshold)
        ]

    def get_low_battery_devices(self, threshold: Optional[int] = None) -> List[DeviceRecord]:
        """Devices below the battery threshold, lowest first"""
        if threshold is None:
            threshold = self.low_battery_threshold
        devices = [d for d in self.devices.values() if policies.is_low_battery(d.battery_level, threshold)]
        return sorted(devices, key=lambda d: d.battery_level)

    def get_device_summary(self, device_id: str, now: datetime) -> Optional[Dict[str, Any]]:
        """Get comprehensive device summary"""
        device = self.get_device(device_id)
        if not device:
            return None
        return summarize(device, self.assess(device_id, now), now)


def assess_record(record: DeviceRecord, now: datetime,
                  high_usage: bool = False,
                  is_active_user: bool = False,
                  tx_power_dbm: Optional[int] = None,
                  reconnection_threshold: timedelta = policies.RECONNECTION_THRESHOLD) -> DeviceAssessment:
    """Run every policy function against a record snapshot"""
    quality = None
    estimated_range = None
    if record.signal_strength is not None:
        quality = policies.signal_quality(record.signal_strength)
        if tx_power_dbm is not None:
            estimated_range = policies.estimate_range(record.signal_strength, tx_power_dbm)

    return DeviceAssessment(
        device_id=record.id,
        battery_status=policies.battery_status(record.battery_level),
        battery_hours_remaining=policies.estimate_battery_remaining(record.battery_level, high_usage),
        signal_quality=quality,
        estimated_range_meters=estimated_range,
        firmware_update_needed=policies.firmware_update_needed(
            record.firmware_version, record.latest_firmware_version
        ),
        needs_reconnection=policies.needs_reconnection(
            record.last_connection_time, record.connection_status, now, reconnection_threshold
        ),
        recommended_sync_frequency=policies.recommended_sync_frequency(
            record.capabilities, is_active_user
        ),
        auth_token_expired=policies.auth_token_expired(record.auth_token_expiry, now),
        evaluated_at=now,
    )


def summarize(device: DeviceRecord, assessment: DeviceAssessment, now: datetime) -> Dict[str, Any]:
    """JSON-friendly view of a record and its assessment"""
    return {
        "id": device.id,
        "device_id": device.device_id,
        "user_id": device.user_id,
        "name": device.name,
        "model": device.model,
        "manufacturer": device.manufacturer,
        "mac_address": device.mac_address,
        "connection": {
            "status": device.connection_status.name,
            "signal_strength": device.signal_strength,
            "last_connected": utc_isoformat(device.last_connection_time)
                if device.last_connection_time else None,
            "last_connected_age": format_age(device.last_connection_time, now)
                if device.last_connection_time else "never",
        },
        "battery": {
            "level": device.battery_level,
            "is_charging": device.is_charging,
        },
        "firmware": {
            "current": device.firmware_version,
            "latest": device.latest_firmware_version,
        },
        "sync": {
            "status": device.sync_status.name,
            "last_sync": utc_isoformat(device.last_sync_time) if device.last_sync_time else None,
            "last_duration": device.last_sync_duration,
            "last_error": device.last_sync_error,
            "failed_attempts": device.failed_sync_attempts,
            "auto_sync_enabled": device.auto_sync_enabled,
            "auto_sync_frequency": device.auto_sync_frequency,
        },
        "capabilities": sorted(c.name for c in device.capabilities),
        "assessment": assessment.to_dict(),
    }
