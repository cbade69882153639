"""
Configuration loading: YAML file, then environment variables.
"""

import os
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .data_models import CoreConfig

logger = logging.getLogger(__name__)

# YAML section -> {key in section: CoreConfig field}
SECTIONS = {
    "mqtt": {
        "broker": "mqtt_broker",
        "port": "mqtt_port",
        "username": "mqtt_username",
        "password": "mqtt_password",
        "client_id": "mqtt_client_id",
        "topic_prefix": "topic_prefix",
    },
    "database": {
        "path": "db_path",
        "retention_days": "sync_history_retention_days",
    },
    "monitoring": {
        "log_level": "log_level",
        "reconnection_threshold_hours": "reconnection_threshold_hours",
        "low_battery_threshold": "low_battery_threshold",
        "assessment_interval_seconds": "assessment_interval_seconds",
    },
}

ENVIRONMENT = {
    "MQTT_BROKER": "mqtt_broker",
    "MQTT_PORT": "mqtt_port",
    "MQTT_USERNAME": "mqtt_username",
    "MQTT_PASSWORD": "mqtt_password",
    "DB_PATH": "db_path",
    "LOG_LEVEL": "log_level",
}

_FIELD_TYPES = {f.name: f.type for f in fields(CoreConfig)}


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    if _FIELD_TYPES[name] in (int, "int"):
        return int(value)
    return str(value)


def config_from_mapping(data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a parsed YAML document into CoreConfig keyword arguments"""
    values = {}
    for section, entries in (data or {}).items():
        mapping = SECTIONS.get(section)
        if mapping is None or not isinstance(entries, dict):
            logger.warning(f"Ignoring unknown config section: {section}")
            continue
        for key, value in entries.items():
            name = mapping.get(key)
            if name is None:
                logger.warning(f"Ignoring unknown config key: {section}.{key}")
                continue
            values[name] = _coerce(name, value)
    return values


def load_config(path: Optional[Union[str, Path]] = None,
                environ: Optional[Dict[str, str]] = None) -> CoreConfig:
    """Build the configuration.

    Values come from the YAML file at ``path`` (if given), and environment
    variables override the file.
    """
    values: Dict[str, Any] = {}

    if path is not None:
        with open(path, "r") as f:
            values.update(config_from_mapping(yaml.safe_load(f)))
        logger.debug(f"Loaded configuration from {path}")

    environ = os.environ if environ is None else environ
    for variable, name in ENVIRONMENT.items():
        if environ.get(variable):
            values[name] = _coerce(name, environ[variable])

    return CoreConfig(**values)


def dump_config(config: CoreConfig, path: Union[str, Path]):
    """Write a configuration as YAML in the sectioned layout"""
    document = {
        section: {key: getattr(config, name) for key, name in mapping.items()}
        for section, mapping in SECTIONS.items()
    }
    with open(path, "w") as f:
        yaml.dump(document, f, default_flow_style=False)
