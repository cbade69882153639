"""
Test configuration and fixtures for wearable device core tests.
"""
import pytest
import tempfile
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

from wearable_device_core.capabilities import Capability
from wearable_device_core.data_models import CoreConfig
from wearable_device_core.database import DeviceStore
from wearable_device_core.device_manager import DeviceManager
from wearable_device_core.validation import build_device_record


@pytest.fixture
def now():
    """Fixed reference time for policy and update tests."""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db_path():
    """Create a temporary database file for testing."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as tmp_file:
        db_path = tmp_file.name
    yield db_path
    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def device_store(temp_db_path):
    """Create a DeviceStore instance with temporary database."""
    store = DeviceStore(db_path=temp_db_path)
    yield store
    store.close()


@pytest.fixture
def sample_device_fields():
    """Raw field values as supplied at first pairing."""
    return {
        "device_id": "HB-2024-0001",
        "user_id": "user_001",
        "mac_address": "aa-bb-cc-dd-ee-ff",
        "name": "Morning Ring",
        "model": "HBand Pro",
        "manufacturer": "HBand",
        "hardware_version": "2.1",
        "firmware_version": "1.2.3",
        "battery_level": 80,
        "connection_status": "DISCONNECTED",
        "sync_status": "PENDING",
        "capabilities": "HEART_RATE,SLEEP_TRACKING,STEPS",
    }


@pytest.fixture
def sample_record(sample_device_fields, now):
    """A validated device record."""
    return build_device_record(now=now, **sample_device_fields)


@pytest.fixture
def make_record(sample_device_fields, now):
    """Factory for records that differ from the sample in a few fields."""
    def _make(**overrides):
        values = dict(sample_device_fields)
        values.update(overrides)
        return build_device_record(now=now, **values)
    return _make


@pytest.fixture
def device_manager():
    """Create a DeviceManager instance for testing."""
    return DeviceManager()


@pytest.fixture
def core_config(temp_db_path):
    """Configuration pointing at the temporary database."""
    return CoreConfig(mqtt_broker="test_broker", db_path=temp_db_path)


@pytest.fixture
def mqtt_message():
    """Factory for paho-style messages."""
    def _make(topic, payload):
        msg = MagicMock()
        msg.topic = topic
        msg.payload = payload if isinstance(payload, bytes) else payload.encode()
        return msg
    return _make


@pytest.fixture
def all_capabilities():
    return frozenset(Capability)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on file location."""
    for item in items:
        path = str(item.fspath).replace(os.sep, "/")
        if "/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in path:
            item.add_marker(pytest.mark.integration)
