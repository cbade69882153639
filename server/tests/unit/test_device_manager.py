"""
Unit tests for DeviceManager.
"""
import sqlite3
import threading
import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from wearable_device_core.capabilities import Capability
from wearable_device_core.data_models import (
    BatteryStatus,
    ConnectionStatus,
    SignalQuality,
    SyncStatus,
)
from wearable_device_core.device_manager import DeviceManager
from wearable_device_core.errors import (
    DeviceNotFoundError,
    DuplicateDeviceError,
    OutOfRange,
    UnknownState,
)


class TestRegistration:
    """Test cases for device registration and lookup."""

    def test_register_and_get(self, device_manager, sample_record):
        device_manager.register(sample_record)
        assert device_manager.get_device(sample_record.id) == sample_record
        assert device_manager.get_by_mac("aa:bb:cc:dd:ee:ff") == sample_record

    def test_duplicate_id(self, device_manager, sample_record):
        device_manager.register(sample_record)
        with pytest.raises(DuplicateDeviceError):
            device_manager.register(sample_record)

    def test_duplicate_mac(self, device_manager, make_record):
        device_manager.register(make_record())
        with pytest.raises(DuplicateDeviceError):
            device_manager.register(make_record(device_id="other"))

    def test_remove(self, device_manager, sample_record):
        device_manager.register(sample_record)
        device_manager.remove(sample_record.id)

        assert device_manager.get_device(sample_record.id) is None
        assert device_manager.get_by_mac(sample_record.mac_address) is None
        with pytest.raises(DeviceNotFoundError):
            device_manager.remove(sample_record.id)

    def test_connected_only(self, device_manager, make_record):
        device_manager.register(make_record(connection_status="CONNECTED"))
        device_manager.register(make_record(mac_address="11:22:33:44:55:66"))

        assert len(device_manager.get_all_devices()) == 2
        assert len(device_manager.get_all_devices(connected_only=True)) == 1


class TestTelemetryUpdates:
    """Test cases for applying telemetry to records."""

    @pytest.fixture
    def manager(self, device_manager, sample_record):
        device_manager.register(sample_record)
        return device_manager

    def test_update_battery(self, manager, sample_record, now):
        later = now + timedelta(minutes=1)
        record = manager.update_battery(sample_record.id, 12, is_charging=True, now=later)

        assert record.battery_level == 12
        assert record.is_charging is True
        assert record.modified_at == later
        assert manager.get_device(sample_record.id) == record

    def test_invalid_battery_keeps_previous_record(self, manager, sample_record, now):
        with pytest.raises(OutOfRange):
            manager.update_battery(sample_record.id, 140, now=now)
        assert manager.get_device(sample_record.id) == sample_record

    def test_unknown_device(self, manager, now):
        with pytest.raises(DeviceNotFoundError):
            manager.update_battery("missing", 50, now=now)

    def test_update_signal(self, manager, sample_record, now):
        record = manager.update_signal(sample_record.id, -72, tx_power_level=3, mtu_size=185, now=now)
        assert record.signal_strength == -72
        assert record.tx_power_level == 3
        assert record.mtu_size == 185

    def test_connecting_stamps_connection_time(self, manager, sample_record, now):
        record = manager.update_connection_status(sample_record.id, "CONNECTED", now=now)
        assert record.connection_status is ConnectionStatus.CONNECTED
        assert record.last_connection_time == now

    def test_disconnecting_keeps_connection_time(self, manager, sample_record, now):
        manager.update_connection_status(sample_record.id, ConnectionStatus.CONNECTED, now=now)
        record = manager.update_connection_status(
            sample_record.id, ConnectionStatus.DISCONNECTED, now=now + timedelta(hours=1)
        )
        assert record.connection_status is ConnectionStatus.DISCONNECTED
        assert record.last_connection_time == now

    def test_unknown_connection_status(self, manager, sample_record, now):
        with pytest.raises(UnknownState):
            manager.update_connection_status(sample_record.id, "ASLEEP", now=now)

    def test_sync_cycle(self, manager, sample_record, now):
        started = manager.mark_sync_started(sample_record.id, now=now)
        assert started.sync_status is SyncStatus.SYNCING

        failed = manager.record_sync_result(sample_record.id, False, error="timeout", now=now)
        assert failed.sync_status is SyncStatus.ERROR
        assert failed.failed_sync_attempts == 1
        assert failed.last_sync_error == "timeout"
        assert failed.last_sync_time is None

        failed = manager.record_sync_result(sample_record.id, False, error="timeout", now=now)
        assert failed.failed_sync_attempts == 2

        done = manager.record_sync_result(sample_record.id, True, duration=8,
                                          now=now + timedelta(minutes=2))
        assert done.sync_status is SyncStatus.SYNCED
        assert done.failed_sync_attempts == 0
        assert done.last_sync_error is None
        assert done.last_sync_duration == 8
        assert done.last_sync_time == now + timedelta(minutes=2)

    def test_missing_battery_keeps_previous_record(self, manager, sample_record, now):
        with pytest.raises(TypeError):
            manager.update_battery(sample_record.id, None, now=now)
        assert manager.get_device(sample_record.id) == sample_record

    def test_concurrent_sync_failures_are_all_counted(self, manager, sample_record, now):
        workers, failures_each = 8, 25
        start = threading.Barrier(workers)

        def report_failures():
            start.wait()
            for _ in range(failures_each):
                manager.record_sync_result(sample_record.id, False, error="timeout", now=now)

        threads = [threading.Thread(target=report_failures) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        record = manager.get_device(sample_record.id)
        assert record.failed_sync_attempts == workers * failures_each

    def test_set_latest_firmware(self, manager, sample_record, now):
        record = manager.set_latest_firmware(sample_record.id, "1.4.0", now=now)
        assert record.firmware_update_available is True

        record = manager.set_latest_firmware(sample_record.id, None, now=now)
        assert record.firmware_update_available is False


class TestAssessment:
    """Test cases for derived decisions."""

    def test_assess_combines_policies(self, device_manager, make_record, now):
        record = make_record(
            battery_level=25,
            signal_strength=-65,
            latest_firmware_version="1.3",
            capabilities={Capability.CONTINUOUS_HEART_RATE},
            last_connection_time=now - timedelta(hours=30),
            auth_token_expiry=now - timedelta(minutes=1),
        )
        device_manager.register(record)

        assessment = device_manager.assess(record.id, now, is_active_user=True, tx_power_dbm=-59)

        assert assessment.battery_status is BatteryStatus.LOW
        assert assessment.battery_hours_remaining == 42
        assert assessment.signal_quality is SignalQuality.GOOD
        assert assessment.estimated_range_meters == pytest.approx(10 ** (6 / 25))
        assert assessment.firmware_update_needed is True
        assert assessment.needs_reconnection is True
        assert assessment.recommended_sync_frequency == 21
        assert assessment.auth_token_expired is True
        assert assessment.evaluated_at == now

    def test_assess_without_signal(self, device_manager, sample_record, now):
        device_manager.register(sample_record)
        assessment = device_manager.assess(sample_record.id, now)

        assert assessment.signal_quality is None
        assert assessment.estimated_range_meters is None
        assert assessment.recommended_sync_frequency == 45

    def test_assess_unknown_device(self, device_manager, now):
        with pytest.raises(DeviceNotFoundError):
            device_manager.assess("missing", now)

    def test_devices_needing_reconnection(self, device_manager, make_record, now):
        stale = make_record(last_connection_time=now - timedelta(days=2))
        recent = make_record(mac_address="00:00:00:00:00:02",
                             last_connection_time=now - timedelta(hours=1))
        connected = make_record(mac_address="00:00:00:00:00:03", connection_status="CONNECTED")
        for record in (stale, recent, connected):
            device_manager.register(record)

        ids = [d.id for d in device_manager.get_devices_needing_reconnection(now)]
        assert ids == [stale.id]

    def test_configured_reconnection_threshold(self, make_record, now):
        manager = DeviceManager(reconnection_threshold_hours=1)
        record = make_record(last_connection_time=now - timedelta(hours=2))
        manager.register(record)

        assert manager.assess(record.id, now).needs_reconnection is True

    def test_low_battery_devices(self, device_manager, make_record):
        for i, level in enumerate([40, 3, 18]):
            device_manager.register(make_record(battery_level=level,
                                                mac_address=f"00:00:00:00:00:1{i}"))

        levels = [d.battery_level for d in device_manager.get_low_battery_devices()]
        assert levels == [3, 18]

    def test_device_summary(self, device_manager, make_record, now):
        record = make_record(last_connection_time=now - timedelta(hours=2, minutes=5))
        device_manager.register(record)

        summary = device_manager.get_device_summary(record.id, now)
        assert summary["mac_address"] == "AA:BB:CC:DD:EE:FF"
        assert summary["connection"]["last_connected_age"] == "2h 5m ago"
        assert summary["capabilities"] == ["HEART_RATE", "SLEEP_TRACKING", "STEPS"]
        assert summary["assessment"]["battery_status"] == "HIGH"
        assert summary["assessment"]["needs_reconnection"] is False

    def test_summary_for_unknown_device(self, device_manager, now):
        assert device_manager.get_device_summary("missing", now) is None


class TestPersistence:
    """Test cases for the persist hook."""

    def test_updates_are_persisted(self, sample_record, now):
        persist = MagicMock()
        manager = DeviceManager(persist=persist)
        manager.register(sample_record)

        record = manager.update_battery(sample_record.id, 55, now=now)

        persist.assert_called_once_with(record)

    def test_failed_persist_keeps_previous_record(self, sample_record, now):
        manager = DeviceManager(persist=MagicMock(side_effect=sqlite3.OperationalError("database is locked")))
        manager.register(sample_record)

        with pytest.raises(sqlite3.OperationalError):
            manager.update_battery(sample_record.id, 55, now=now)
        assert manager.get_device(sample_record.id) == sample_record
