"""
Wearable Device Core

State model and policy functions for paired wearable (BLE) devices, with an
MQTT telemetry bridge and SQLite device store.
"""

__version__ = "1.0.0"

from .errors import (
    DeviceCoreError,
    InvalidFormat,
    OutOfRange,
    UnknownState,
    DuplicateDeviceError,
    DeviceNotFoundError
)
from .identifiers import (
    validate_mac_address,
    canonicalize_mac_address,
    parse_version,
    compare_versions
)
from .capabilities import (
    Capability,
    decode_capabilities,
    encode_capabilities,
    has_capability
)
from .data_models import (
    ConnectionStatus,
    SyncStatus,
    BatteryStatus,
    SignalQuality,
    DeviceRecord,
    DeviceAssessment,
    CoreConfig
)
from .policies import (
    battery_status,
    estimate_battery_remaining,
    is_low_battery,
    signal_quality,
    estimate_range,
    firmware_update_needed,
    recommended_sync_frequency,
    needs_reconnection,
    auth_token_expired
)
from .validation import build_device_record, revalidate, apply_updates
from .database import DeviceStore
from .device_manager import DeviceManager

__all__ = [
    "DeviceCoreError",
    "InvalidFormat",
    "OutOfRange",
    "UnknownState",
    "DuplicateDeviceError",
    "DeviceNotFoundError",
    "validate_mac_address",
    "canonicalize_mac_address",
    "parse_version",
    "compare_versions",
    "Capability",
    "decode_capabilities",
    "encode_capabilities",
    "has_capability",
    "ConnectionStatus",
    "SyncStatus",
    "BatteryStatus",
    "SignalQuality",
    "DeviceRecord",
    "DeviceAssessment",
    "CoreConfig",
    "battery_status",
    "estimate_battery_remaining",
    "is_low_battery",
    "signal_quality",
    "estimate_range",
    "firmware_update_needed",
    "recommended_sync_frequency",
    "needs_reconnection",
    "auth_token_expired",
    "build_device_record",
    "revalidate",
    "apply_updates",
    "DeviceStore",
    "DeviceManager"
]
