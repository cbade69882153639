"""
Data models for the wearable device core.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from .capabilities import Capability
from .errors import UnknownState
from .timezone_utils import utc_now


class _StoredEnum(Enum):
    """Enum stored by member name. Decoding an unknown name is an error."""

    @classmethod
    def from_stored(cls, value):
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise UnknownState(cls.__name__, value)
        member = cls.__members__.get(value.strip().upper())
        if member is None:
            raise UnknownState(cls.__name__, value)
        return member


class ConnectionStatus(_StoredEnum):
    """Link state reported by the BLE transport"""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    PAIRING = "PAIRING"
    DISCOVERING = "DISCOVERING"
    ERROR = "ERROR"


class SyncStatus(_StoredEnum):
    """Data synchronization state"""
    PENDING = "PENDING"
    IDLE = "PENDING"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    ERROR = "ERROR"


class BatteryStatus(Enum):
    CRITICAL = "CRITICAL"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    FULL = "FULL"


class SignalQuality(Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


@dataclass(frozen=True)
class DeviceRecord:
    """A paired wearable device and its operational metadata.

    Build instances through ``validation.build_device_record`` so the MAC
    address is canonical, ranges are checked and the cached
    ``firmware_update_available`` flag is derived.
    """
    device_id: str
    user_id: str
    mac_address: str
    name: str
    model: str
    manufacturer: str
    hardware_version: str
    firmware_version: str
    battery_level: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    serial_number: Optional[str] = None
    color: Optional[str] = None

    # Connectivity
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    signal_strength: Optional[int] = None
    tx_power_level: Optional[int] = None
    mtu_size: Optional[int] = None
    last_connection_time: Optional[datetime] = None

    # Power
    is_charging: bool = False

    # Firmware
    latest_firmware_version: Optional[str] = None
    firmware_update_available: bool = False

    # Sync
    sync_status: SyncStatus = SyncStatus.PENDING
    last_sync_time: Optional[datetime] = None
    last_sync_duration: Optional[int] = None
    last_sync_error: Optional[str] = None
    failed_sync_attempts: int = 0
    auto_sync_enabled: bool = True
    auto_sync_frequency: int = 60

    capabilities: FrozenSet[Capability] = frozenset()

    # Security and preferences
    auth_token: Optional[str] = None
    auth_token_expiry: Optional[datetime] = None
    is_primary: bool = False
    notifications_enabled: bool = True
    settings: Optional[str] = None

    pairing_date: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)
    modified_at: datetime = field(default_factory=utc_now)

    @property
    def is_connected(self) -> bool:
        return self.connection_status is ConnectionStatus.CONNECTED


@dataclass
class DeviceAssessment:
    """Decisions derived from one device record at a point in time"""
    device_id: str
    battery_status: BatteryStatus
    battery_hours_remaining: int
    firmware_update_needed: bool
    needs_reconnection: bool
    recommended_sync_frequency: int
    auth_token_expired: bool
    signal_quality: Optional[SignalQuality] = None
    estimated_range_meters: Optional[float] = None
    evaluated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device_id": self.device_id,
            "battery_status": self.battery_status.value,
            "battery_hours_remaining": self.battery_hours_remaining,
            "signal_quality": self.signal_quality.value if self.signal_quality else None,
            "estimated_range_meters": self.estimated_range_meters,
            "firmware_update_needed": self.firmware_update_needed,
            "needs_reconnection": self.needs_reconnection,
            "recommended_sync_frequency": self.recommended_sync_frequency,
            "auth_token_expired": self.auth_token_expired,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


@dataclass
class CoreConfig:
    """Configuration for the telemetry bridge and device store"""
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None
    mqtt_password: Optional[str] = None
    mqtt_client_id: str = "wearable_device_core"
    topic_prefix: str = "wearables"
    db_path: str = "./data/devices.db"
    log_level: str = "INFO"
    reconnection_threshold_hours: int = 24
    low_battery_threshold: int = 20
    sync_history_retention_days: int = 30
    assessment_interval_seconds: int = 300
