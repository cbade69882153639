"""
Construction and revalidation of device records.

Malformed identity data (MAC address, firmware version, status names) and
out-of-range numbers are hard failures. Unknown capability tokens are not:
they are dropped so records from newer firmware still load.
"""

import uuid
import logging
from dataclasses import fields
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .capabilities import coerce_capabilities
from .data_models import ConnectionStatus, DeviceRecord, SyncStatus
from .errors import InvalidFormat, OutOfRange
from .identifiers import canonicalize_mac_address, compare_versions
from .timezone_utils import parse_utc, to_utc, utc_now

logger = logging.getLogger(__name__)

FIELD_NAMES = frozenset(f.name for f in fields(DeviceRecord))

TIMESTAMP_FIELDS = (
    "last_connection_time", "last_sync_time", "auth_token_expiry",
    "pairing_date", "created_at", "modified_at",
)
BOOLEAN_FIELDS = (
    "is_charging", "auto_sync_enabled", "is_primary", "notifications_enabled",
)

# field -> (minimum, maximum); None means unbounded
RANGES = {
    "battery_level": (0, 100),
    "failed_sync_attempts": (0, None),
    "last_sync_duration": (0, None),
    "auto_sync_frequency": (0, None),
    "tx_power_level": (0, 3),
    "mtu_size": (1, None),
}

# Optional readings; the remaining range-checked fields always hold a value
NULLABLE_FIELDS = frozenset({"last_sync_duration", "tx_power_level", "mtu_size"})


def _check_range(name: str, value: Any):
    if value is None:
        if name in NULLABLE_FIELDS:
            return
        raise TypeError(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {value!r}")

    minimum, maximum = RANGES[name]
    if minimum is not None and value < minimum:
        raise OutOfRange(name, value, _describe_range(minimum, maximum))
    if maximum is not None and value > maximum:
        raise OutOfRange(name, value, _describe_range(minimum, maximum))


def _describe_range(minimum, maximum) -> str:
    if maximum is None:
        return f">= {minimum}"
    return f"[{minimum}, {maximum}]"


def _normalize(values: Dict[str, Any],
               on_unknown_capability: Optional[Callable[[str], None]]) -> DeviceRecord:
    if "mac_address" in values:
        values["mac_address"] = canonicalize_mac_address(values["mac_address"])

    if "firmware_version" in values:
        version = values["firmware_version"]
        if not isinstance(version, str) or not version.strip():
            raise InvalidFormat(f"Invalid firmware version: {version!r}")
        values["firmware_version"] = version.strip()

    latest = values.get("latest_firmware_version")
    if latest is not None:
        if not isinstance(latest, str):
            raise InvalidFormat(f"Invalid latest firmware version: {latest!r}")
        latest = latest.strip() or None
        values["latest_firmware_version"] = latest

    if "connection_status" in values:
        values["connection_status"] = ConnectionStatus.from_stored(values["connection_status"])
    if "sync_status" in values:
        values["sync_status"] = SyncStatus.from_stored(values["sync_status"])

    if "capabilities" in values:
        values["capabilities"] = coerce_capabilities(values["capabilities"], on_unknown_capability)

    for name in TIMESTAMP_FIELDS:
        if name in values:
            values[name] = parse_utc(values[name])

    for name in BOOLEAN_FIELDS:
        if name in values:
            values[name] = bool(values[name])

    for name in RANGES:
        if name in values:
            _check_range(name, values[name])

    if "firmware_version" in values:
        values["firmware_update_available"] = compare_versions(
            values["firmware_version"], values.get("latest_firmware_version")
        )

    return DeviceRecord(**values)


def _reject_unknown_fields(names):
    unknown = set(names) - FIELD_NAMES
    if unknown:
        raise TypeError(f"Unknown device record fields: {', '.join(sorted(unknown))}")


def build_device_record(*, now: Optional[datetime] = None,
                        on_unknown_capability: Optional[Callable[[str], None]] = None,
                        **field_values) -> DeviceRecord:
    """Validate raw field values and build a device record.

    Missing ``id`` gets a fresh UUID and missing bookkeeping timestamps are
    set to ``now`` (current UTC time when not given).

    Raises:
        InvalidFormat: malformed MAC address or blank firmware version
        OutOfRange: a numeric field outside its allowed range
        UnknownState: an unrecognized connection or sync status name
        TypeError: unknown or missing fields
    """
    _reject_unknown_fields(field_values)
    now = to_utc(now) if now is not None else utc_now()

    values = dict(field_values)
    if not values.get("id"):
        values["id"] = str(uuid.uuid4())
    for name in ("pairing_date", "created_at", "modified_at"):
        if values.get(name) is None:
            values[name] = now

    return _normalize(values, on_unknown_capability)


def record_values(record: DeviceRecord) -> Dict[str, Any]:
    """Field name to value mapping for a record"""
    return {name: getattr(record, name) for name in FIELD_NAMES}


def revalidate(record: DeviceRecord) -> DeviceRecord:
    """Run validation again on an existing record.

    A record that is already valid comes back equal to the input.
    """
    return _normalize(record_values(record), None)


def apply_updates(record: DeviceRecord, *, now: Optional[datetime] = None, **changes) -> DeviceRecord:
    """Return a validated copy of ``record`` with ``changes`` applied.

    ``modified_at`` is set to ``now`` unless it is part of ``changes``.
    """
    _reject_unknown_fields(changes)
    values = record_values(record)
    values.update(changes)
    if "modified_at" not in changes:
        values["modified_at"] = to_utc(now) if now is not None else utc_now()

    updated = _normalize(values, None)
    logger.debug(f"Updated device {record.id}: {', '.join(sorted(changes))}")
    return updated
