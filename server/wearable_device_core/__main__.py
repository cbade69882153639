#!/usr/bin/env python3
"""
Wearable Device Core CLI

Command-line interface for running the telemetry bridge and inspecting
stored devices.
"""

import asyncio
import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .bridge import TelemetryBridge
from .config import load_config
from .database import DeviceStore
from .device_manager import assess_record, summarize
from .errors import InvalidFormat
from .identifiers import canonicalize_mac_address
from .timezone_utils import utc_now


def setup_logging(log_level: str = "INFO"):
    """Setup logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {log_level}')

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Wearable Device Core - device state and telemetry policies"
    )
    parser.add_argument(
        "--config",
        help="YAML configuration file"
    )
    parser.add_argument(
        "--db-path",
        help="SQLite database file path (default: ./data/devices.db)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the MQTT telemetry bridge")
    run_parser.add_argument("--mqtt-broker", help="MQTT broker hostname or IP address")
    run_parser.add_argument("--mqtt-port", type=int, help="MQTT broker port")

    assess_parser = subparsers.add_parser("assess", help="Print the assessment of a stored device")
    assess_parser.add_argument("id", help="Device record id")
    assess_parser.add_argument("--high-usage", action="store_true",
                               help="Estimate battery life for high usage")
    assess_parser.add_argument("--active-user", action="store_true",
                               help="Recommend sync frequency for an active user")
    assess_parser.add_argument("--tx-power", type=int,
                               help="Calibrated transmit power in dBm for range estimation")

    mac_parser = subparsers.add_parser("check-mac", help="Print the canonical form of a MAC address")
    mac_parser.add_argument("mac_address")

    return parser.parse_args(argv)


def build_config(args):
    config = load_config(args.config)
    overrides = {}
    if args.db_path:
        overrides["db_path"] = args.db_path
    if args.log_level:
        overrides["log_level"] = args.log_level
    if getattr(args, "mqtt_broker", None):
        overrides["mqtt_broker"] = args.mqtt_broker
    if getattr(args, "mqtt_port", None):
        overrides["mqtt_port"] = args.mqtt_port
    return replace(config, **overrides)


async def run_bridge(config) -> int:
    logger = logging.getLogger(__name__)

    db_path = Path(config.db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info("Starting wearable telemetry bridge...")
    logger.info(f"MQTT Broker: {config.mqtt_broker}:{config.mqtt_port}")
    logger.info(f"Database: {config.db_path}")

    bridge = TelemetryBridge(config)
    try:
        await bridge.start()
        logger.info("Bridge running... Press Ctrl+C to stop")
        await asyncio.Event().wait()
    except Exception as e:
        logger.error(f"Error running bridge: {e}")
        return 1
    finally:
        await bridge.stop()
        logger.info("Bridge stopped")
    return 0


def assess_device(config, args) -> int:
    if not Path(config.db_path).exists():
        print(f"Database not found: {config.db_path}", file=sys.stderr)
        return 1

    store = DeviceStore(config.db_path)
    record = store.get(args.id)
    if record is None:
        print(f"Device not found: {args.id}", file=sys.stderr)
        return 1

    now = utc_now()
    assessment = assess_record(record, now,
                               high_usage=args.high_usage,
                               is_active_user=args.active_user,
                               tx_power_dbm=args.tx_power)
    print(json.dumps(summarize(record, assessment, now), indent=2))
    return 0


def check_mac(args) -> int:
    try:
        print(canonicalize_mac_address(args.mac_address))
    except InvalidFormat as e:
        print(str(e), file=sys.stderr)
        return 1
    return 0


def main(argv=None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    config = build_config(args)
    setup_logging(config.log_level)

    if args.command == "check-mac":
        return check_mac(args)
    if args.command == "assess":
        return assess_device(config, args)

    try:
        return asyncio.run(run_bridge(config))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Received interrupt signal, shutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
