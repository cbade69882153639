"""
Policy functions mapping device telemetry to operational decisions.

All functions here are pure: they read only their arguments and never touch
the clock. Inputs are expected to be in range (battery 0-100, RSSI in dBm);
out-of-range values are the caller's responsibility and are not guarded.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from .capabilities import Capability
from .data_models import BatteryStatus, ConnectionStatus, SignalQuality
from .identifiers import compare_versions
from .timezone_utils import to_utc

# Full-charge battery life in hours
HIGH_USAGE_BATTERY_HOURS = 72
NORMAL_USAGE_BATTERY_HOURS = 168

PATH_LOSS_EXPONENT = 2.5

BASE_SYNC_FREQUENCY_MINUTES = 60
CONTINUOUS_HR_SYNC_FREQUENCY_MINUTES = 30
MONITORING_SYNC_FREQUENCY_MINUTES = 45

RECONNECTION_THRESHOLD = timedelta(hours=24)
LOW_BATTERY_THRESHOLD = 20


def battery_status(battery_level: int) -> BatteryStatus:
    """Bucket a battery percentage. Each bucket excludes its upper bound."""
    if battery_level < 10:
        return BatteryStatus.CRITICAL
    if battery_level < 30:
        return BatteryStatus.LOW
    if battery_level < 60:
        return BatteryStatus.MEDIUM
    if battery_level < 95:
        return BatteryStatus.HIGH
    return BatteryStatus.FULL


def estimate_battery_remaining(battery_level: int, high_usage: bool) -> int:
    """Estimated hours of battery left, proportional to the full-charge life"""
    base_hours = HIGH_USAGE_BATTERY_HOURS if high_usage else NORMAL_USAGE_BATTERY_HOURS
    return base_hours * battery_level // 100


def is_low_battery(battery_level: int, threshold: int = LOW_BATTERY_THRESHOLD) -> bool:
    return battery_level < threshold


def signal_quality(rssi: int) -> SignalQuality:
    if rssi > -60:
        return SignalQuality.EXCELLENT
    if rssi > -70:
        return SignalQuality.GOOD
    if rssi > -80:
        return SignalQuality.FAIR
    return SignalQuality.POOR


def estimate_range(rssi: int, tx_power: int) -> float:
    """Estimate distance in metres with the log-distance path loss model.

    distance = 10 ^ ((tx_power - rssi) / (10 * n)), n = 2.5
    """
    return 10 ** ((tx_power - rssi) / (10 * PATH_LOSS_EXPONENT))


def firmware_update_needed(current_version: str, latest_version: Optional[str]) -> bool:
    return compare_versions(current_version, latest_version)


def recommended_sync_frequency(capabilities: Iterable[Capability], is_active_user: bool) -> int:
    """Recommended auto-sync interval in minutes.

    Rules apply in order, each on the result of the previous one:
    continuous heart rate drops the base hour to 30 minutes, sleep or stress
    monitoring caps it at 45, and active users sync 30% more often.
    """
    capabilities = set(capabilities)
    frequency = BASE_SYNC_FREQUENCY_MINUTES

    if Capability.CONTINUOUS_HEART_RATE in capabilities:
        frequency = CONTINUOUS_HR_SYNC_FREQUENCY_MINUTES

    if (Capability.SLEEP_TRACKING in capabilities
            or Capability.STRESS_MONITORING in capabilities):
        frequency = min(frequency, MONITORING_SYNC_FREQUENCY_MINUTES)

    if is_active_user:
        # floor(frequency * 0.7) without float rounding
        frequency = frequency * 7 // 10

    return frequency


def needs_reconnection(last_connection_time: Optional[datetime],
                       connection_status: ConnectionStatus,
                       now: datetime,
                       threshold: timedelta = RECONNECTION_THRESHOLD) -> bool:
    """Whether a reconnection attempt is recommended.

    Connected devices never need one; devices that were never connected
    always do. Otherwise the last connection must be at least ``threshold``
    (24 hours) old.
    """
    if connection_status is ConnectionStatus.CONNECTED:
        return False
    if last_connection_time is None:
        return True
    return to_utc(now) - to_utc(last_connection_time) >= threshold


def auth_token_expired(auth_token_expiry: Optional[datetime], now: datetime) -> bool:
    """Tokens without an expiry never expire"""
    if auth_token_expiry is None:
        return False
    return to_utc(now) >= to_utc(auth_token_expiry)
