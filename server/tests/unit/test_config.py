"""
Unit tests for configuration loading.
"""
import pytest

from wearable_device_core.config import dump_config, load_config
from wearable_device_core.data_models import CoreConfig


class TestLoadConfig:
    """Test cases for load_config."""

    def test_defaults(self):
        config = load_config(environ={})
        assert config == CoreConfig()

    def test_yaml_sections(self, tmp_path):
        path = tmp_path / "development.yaml"
        path.write_text(
            "mqtt:\n"
            "  broker: broker.local\n"
            "  port: 8883\n"
            "  topic_prefix: ring\n"
            "database:\n"
            "  path: ./data/dev.db\n"
            "  retention_days: 7\n"
            "monitoring:\n"
            "  log_level: DEBUG\n"
            "  low_battery_threshold: 15\n"
        )

        config = load_config(path, environ={})
        assert config.mqtt_broker == "broker.local"
        assert config.mqtt_port == 8883
        assert config.topic_prefix == "ring"
        assert config.db_path == "./data/dev.db"
        assert config.sync_history_retention_days == 7
        assert config.log_level == "DEBUG"
        assert config.low_battery_threshold == 15

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("mqtt:\n  broker: from-file\n  port: 1883\n")

        config = load_config(path, environ={"MQTT_BROKER": "from-env", "MQTT_PORT": "1884"})
        assert config.mqtt_broker == "from-env"
        assert config.mqtt_port == 1884

    def test_unknown_keys_are_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("mqtt:\n  qos: 2\nsecurity:\n  enable_tls: false\n")

        assert load_config(path, environ={}) == CoreConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path, environ={}) == CoreConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_dump_and_load(self, tmp_path):
        config = CoreConfig(mqtt_broker="10.0.0.5", mqtt_username="ring", db_path="/tmp/x.db",
                            reconnection_threshold_hours=12)
        path = tmp_path / "out.yaml"
        dump_config(config, path)

        assert load_config(path, environ={}) == config
