"""
SQLite storage for device records and their sync history.
"""

import sqlite3
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .capabilities import encode_capabilities
from .data_models import DeviceRecord
from .errors import DuplicateDeviceError
from .identifiers import canonicalize_mac_address
from .timezone_utils import utc_isoformat, utc_now
from .validation import TIMESTAMP_FIELDS, build_device_record, record_values

logger = logging.getLogger(__name__)

# Column order for the devices table
DEVICE_COLUMNS = (
    "id", "device_id", "user_id", "name", "model", "manufacturer", "mac_address",
    "connection_status", "battery_level", "is_charging",
    "firmware_version", "latest_firmware_version", "firmware_update_available",
    "hardware_version", "serial_number",
    "sync_status", "last_sync_time", "last_connection_time", "last_sync_duration",
    "last_sync_error", "failed_sync_attempts", "capabilities", "settings",
    "auth_token", "auth_token_expiry", "is_primary", "auto_sync_enabled",
    "auto_sync_frequency", "signal_strength", "tx_power_level", "mtu_size",
    "color", "notifications_enabled", "pairing_date", "created_at", "modified_at",
)


class DeviceStore:
    """Persists device records keyed by id with a unique MAC address"""

    def __init__(self, db_path: str = "devices.db"):
        self.db_path = db_path
        self.init_database()

    def init_database(self):
        """Initialize database schema"""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS devices (
                        id TEXT PRIMARY KEY,
                        device_id TEXT NOT NULL,
                        user_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        model TEXT NOT NULL,
                        manufacturer TEXT NOT NULL,
                        mac_address TEXT NOT NULL UNIQUE,
                        connection_status TEXT NOT NULL,
                        battery_level INTEGER NOT NULL,
                        is_charging INTEGER DEFAULT 0,
                        firmware_version TEXT NOT NULL,
                        latest_firmware_version TEXT,
                        firmware_update_available INTEGER DEFAULT 0,
                        hardware_version TEXT NOT NULL,
                        serial_number TEXT,
                        sync_status TEXT NOT NULL,
                        last_sync_time TEXT,
                        last_connection_time TEXT,
                        last_sync_duration INTEGER,
                        last_sync_error TEXT,
                        failed_sync_attempts INTEGER DEFAULT 0,
                        capabilities TEXT NOT NULL DEFAULT '',
                        settings TEXT,
                        auth_token TEXT,
                        auth_token_expiry TEXT,
                        is_primary INTEGER DEFAULT 0,
                        auto_sync_enabled INTEGER DEFAULT 1,
                        auto_sync_frequency INTEGER DEFAULT 60,
                        signal_strength INTEGER,
                        tx_power_level INTEGER,
                        mtu_size INTEGER,
                        color TEXT,
                        notifications_enabled INTEGER DEFAULT 1,
                        pairing_date TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        modified_at TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_devices_user
                    ON devices(user_id);

                    CREATE INDEX IF NOT EXISTS idx_devices_connection_status
                    ON devices(connection_status);

                    CREATE INDEX IF NOT EXISTS idx_devices_sync_status
                    ON devices(sync_status);

                    CREATE TABLE IF NOT EXISTS device_sync_history (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        device_id TEXT NOT NULL,
                        sync_time TEXT NOT NULL,
                        success INTEGER NOT NULL,
                        duration INTEGER,
                        error TEXT,
                        FOREIGN KEY (device_id) REFERENCES devices(id) ON DELETE CASCADE
                    );

                    CREATE INDEX IF NOT EXISTS idx_sync_history_device_time
                    ON device_sync_history(device_id, sync_time);
                """)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @staticmethod
    def _to_row(record: DeviceRecord) -> tuple:
        values = record_values(record)
        values["connection_status"] = record.connection_status.name
        values["sync_status"] = record.sync_status.name
        values["capabilities"] = encode_capabilities(record.capabilities)
        for name in TIMESTAMP_FIELDS:
            if values[name] is not None:
                values[name] = utc_isoformat(values[name])
        return tuple(values[column] for column in DEVICE_COLUMNS)

    @staticmethod
    def _from_row(row: sqlite3.Row) -> DeviceRecord:
        # Stored rows go back through validation, so a corrupted status
        # column raises UnknownState instead of loading silently.
        values = {column: row[column] for column in DEVICE_COLUMNS}
        values.pop("firmware_update_available")
        return build_device_record(**values)

    def insert(self, record: DeviceRecord):
        """Insert a new device record

        Raises:
            DuplicateDeviceError: if the id or MAC address is already stored
        """
        placeholders = ", ".join("?" for _ in DEVICE_COLUMNS)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO devices ({', '.join(DEVICE_COLUMNS)}) VALUES ({placeholders})",
                    self._to_row(record)
                )
            logger.info(f"Stored device {record.id} ({record.mac_address})")
        except sqlite3.IntegrityError as e:
            raise DuplicateDeviceError(
                f"Device {record.id} / {record.mac_address} already exists"
            ) from e

    def update(self, record: DeviceRecord) -> bool:
        """Overwrite a stored record. Returns False if the id is not stored."""
        assignments = ", ".join(f"{column} = ?" for column in DEVICE_COLUMNS if column != "id")
        row = self._to_row(record)
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"UPDATE devices SET {assignments} WHERE id = ?",
                    row[1:] + (record.id,)
                )
                return cursor.rowcount > 0
        except sqlite3.IntegrityError as e:
            raise DuplicateDeviceError(
                f"MAC address {record.mac_address} belongs to another device"
            ) from e

    def save(self, record: DeviceRecord):
        """Insert or update a record"""
        if not self.update(record):
            self.insert(record)

    def get(self, record_id: str) -> Optional[DeviceRecord]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM devices WHERE id = ?", (record_id,)).fetchone()
        return self._from_row(row) if row else None

    def get_by_mac(self, mac_address: str) -> Optional[DeviceRecord]:
        """Look up a device by MAC address in any supported notation"""
        mac_address = canonicalize_mac_address(mac_address)
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM devices WHERE mac_address = ?", (mac_address,)
            ).fetchone()
        return self._from_row(row) if row else None

    def get_all(self) -> List[DeviceRecord]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM devices ORDER BY name").fetchall()
        return [self._from_row(row) for row in rows]

    def list_for_user(self, user_id: str) -> List[DeviceRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM devices WHERE user_id = ? ORDER BY name", (user_id,)
            ).fetchall()
        return [self._from_row(row) for row in rows]

    def get_low_battery_devices(self, user_id: str, threshold: int = 20) -> List[DeviceRecord]:
        """Devices of a user below the battery threshold, lowest first"""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT * FROM devices
                WHERE user_id = ? AND battery_level < ?
                ORDER BY battery_level
            """, (user_id, threshold)).fetchall()
        return [self._from_row(row) for row in rows]

    def delete(self, record_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM devices WHERE id = ?", (record_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted device {record_id}")
        return deleted

    def record_sync_event(self, record_id: str, success: bool,
                          duration: Optional[int] = None,
                          error: Optional[str] = None,
                          sync_time: Optional[datetime] = None):
        """Append an entry to a device's sync history"""
        if sync_time is None:
            sync_time = utc_now()

        with self._connect() as conn:
            conn.execute("""
                INSERT INTO device_sync_history
                (device_id, sync_time, success, duration, error)
                VALUES (?, ?, ?, ?, ?)
            """, (record_id, utc_isoformat(sync_time), int(success), duration, error))

    def get_sync_history(self, record_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent sync events first"""
        with self._connect() as conn:
            rows = conn.execute("""
                SELECT sync_time, success, duration, error
                FROM device_sync_history
                WHERE device_id = ?
                ORDER BY sync_time DESC
                LIMIT ?
            """, (record_id, limit)).fetchall()

        return [
            {
                "sync_time": row["sync_time"],
                "success": bool(row["success"]),
                "duration": row["duration"],
                "error": row["error"],
            }
            for row in rows
        ]

    def get_sync_success_rate(self, record_id: str) -> Optional[float]:
        """Fraction of successful syncs, or None without history"""
        with self._connect() as conn:
            row = conn.execute("""
                SELECT COUNT(*) AS total, SUM(success) AS succeeded
                FROM device_sync_history
                WHERE device_id = ?
            """, (record_id,)).fetchone()

        if not row["total"]:
            return None
        return row["succeeded"] / row["total"]

    def delete_sync_history_older_than(self, record_id: str, cutoff: datetime) -> int:
        with self._connect() as conn:
            cursor = conn.execute("""
                DELETE FROM device_sync_history
                WHERE device_id = ? AND sync_time < ?
            """, (record_id, utc_isoformat(cutoff)))
            deleted = cursor.rowcount

        if deleted:
            logger.info(f"Removed {deleted} sync history entries for {record_id}")
        return deleted

    def get_database_stats(self) -> Dict[str, Any]:
        with self._connect() as conn:
            devices = conn.execute("SELECT COUNT(*) FROM devices").fetchone()[0]
            events = conn.execute("SELECT COUNT(*) FROM device_sync_history").fetchone()[0]
        return {"devices": devices, "sync_events": events, "db_path": self.db_path}

    def close(self):
        """Close database connection (no-op, connections are per operation)"""
        pass
