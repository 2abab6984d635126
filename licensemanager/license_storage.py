"""
License Manager Record Storage

SQLite-backed storage for issued licenses, registered devices and API tokens.
SQLite allows a single writer at a time, so every write goes through one lock;
reads share the same connection and lock to keep the connection consistent.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

from licensemanager.errors import LicenseNotFound
from licensemanager.license_models import (
    DeviceRecord, LicenseRecord, TokenRecord, format_timestamp, parse_timestamp
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS licenses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id TEXT NOT NULL,
    license_key TEXT NOT NULL,
    license_type TEXT NOT NULL,
    expiry_date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_licenses_device_id ON licenses (device_id);

CREATE TABLE IF NOT EXISTS devices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id TEXT NOT NULL UNIQUE,
    device_name TEXT NOT NULL DEFAULT '',
    app_id TEXT NOT NULL DEFAULT '',
    license_id INTEGER,
    status TEXT NOT NULL DEFAULT 'active',
    registered_at TEXT NOT NULL,
    last_seen TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_devices_status ON devices (status);

CREATE TABLE IF NOT EXISTS tokens (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    token TEXT NOT NULL UNIQUE,
    token_type TEXT NOT NULL,
    app_id TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    expires_at TEXT,
    revoked INTEGER NOT NULL DEFAULT 0
);
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Optional[str]) -> Optional[datetime]:
    return parse_timestamp(value) if value else None


class LicenseStorage:
    """Record store for licenses, devices and tokens"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        """
        Open (and migrate) the license database

        Args:
            db_path: SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            self._conn.executescript(SCHEMA)

        logger.info(f"License storage opened: {self.db_path}")

    def close(self):
        with self._lock:
            self._conn.close()

    def _write(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock, self._conn:
            return self._conn.execute(sql, params)

    def _read(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # Licenses

    def save_license(self, record: LicenseRecord) -> int:
        now = _now()
        record.created_at = record.created_at or now
        record.updated_at = now
        cursor = self._write(
            "INSERT INTO licenses (device_id, license_key, license_type, expiry_date, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (record.device_id, record.license_key, record.license_type,
             format_timestamp(record.expiry_date), format_timestamp(record.created_at),
             format_timestamp(record.updated_at))
        )
        record.id = cursor.lastrowid
        logger.info(f"Saved license {record.id} for device {record.device_id[:8]}...")
        return record.id

    @staticmethod
    def _license_from_row(row: sqlite3.Row) -> LicenseRecord:
        return LicenseRecord(
            id=row["id"],
            device_id=row["device_id"],
            license_key=row["license_key"],
            license_type=row["license_type"],
            expiry_date=parse_timestamp(row["expiry_date"]),
            created_at=_ts(row["created_at"]),
            updated_at=_ts(row["updated_at"]),
        )

    def get_license_by_device_id(self, device_id: str) -> LicenseRecord:
        """
        Find the most recently issued license for a device

        Raises:
            LicenseNotFound: If the device has no license
        """
        rows = self._read(
            "SELECT * FROM licenses WHERE device_id = ? ORDER BY id DESC LIMIT 1", (device_id,)
        )
        if not rows:
            raise LicenseNotFound(f"no license for device {device_id[:8]}...")
        return self._license_from_row(rows[0])

    def get_license_by_id(self, license_id: int) -> LicenseRecord:
        rows = self._read("SELECT * FROM licenses WHERE id = ?", (license_id,))
        if not rows:
            raise LicenseNotFound(f"no license with id {license_id}")
        return self._license_from_row(rows[0])

    def list_licenses(self, limit: int = 100, offset: int = 0) -> List[LicenseRecord]:
        rows = self._read(
            "SELECT * FROM licenses ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?", (limit, offset)
        )
        return [self._license_from_row(row) for row in rows]

    def delete_license(self, license_id: int) -> bool:
        cursor = self._write("DELETE FROM licenses WHERE id = ?", (license_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted license {license_id}")
        return deleted

    # Devices

    def save_device(self, record: DeviceRecord) -> int:
        """Insert a device, or refresh it if the device id is already registered"""
        now = _now()
        record.registered_at = record.registered_at or now
        record.last_seen = now
        self._write(
            "INSERT INTO devices (device_id, device_name, app_id, license_id, status, registered_at, last_seen) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(device_id) DO UPDATE SET device_name = excluded.device_name, "
            "app_id = excluded.app_id, license_id = COALESCE(excluded.license_id, devices.license_id), "
            "status = excluded.status, last_seen = excluded.last_seen",
            (record.device_id, record.device_name, record.app_id, record.license_id, record.status,
             format_timestamp(record.registered_at), format_timestamp(record.last_seen))
        )
        record.id = self.get_device(record.device_id).id
        return record.id

    @staticmethod
    def _device_from_row(row: sqlite3.Row) -> DeviceRecord:
        return DeviceRecord(
            id=row["id"],
            device_id=row["device_id"],
            device_name=row["device_name"],
            app_id=row["app_id"],
            license_id=row["license_id"],
            status=row["status"],
            registered_at=_ts(row["registered_at"]),
            last_seen=_ts(row["last_seen"]),
        )

    def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        rows = self._read("SELECT * FROM devices WHERE device_id = ?", (device_id,))
        return self._device_from_row(rows[0]) if rows else None

    def list_devices(self, limit: int = 100, offset: int = 0) -> List[DeviceRecord]:
        rows = self._read(
            "SELECT * FROM devices ORDER BY registered_at DESC, id DESC LIMIT ? OFFSET ?", (limit, offset)
        )
        return [self._device_from_row(row) for row in rows]

    def update_device_status(self, device_id: str, status: str) -> bool:
        cursor = self._write("UPDATE devices SET status = ? WHERE device_id = ?", (status, device_id))
        return cursor.rowcount > 0

    def touch_device(self, device_id: str) -> bool:
        """Record that a device was just seen"""
        cursor = self._write(
            "UPDATE devices SET last_seen = ? WHERE device_id = ?", (format_timestamp(_now()), device_id)
        )
        return cursor.rowcount > 0

    # Tokens

    def save_token(self, record: TokenRecord) -> int:
        record.created_at = record.created_at or _now()
        record.revoked = False
        cursor = self._write(
            "INSERT INTO tokens (token, token_type, app_id, created_at, expires_at, revoked) "
            "VALUES (?, ?, ?, ?, ?, 0)",
            (record.token, record.token_type, record.app_id, format_timestamp(record.created_at),
             format_timestamp(record.expires_at) if record.expires_at else None)
        )
        record.id = cursor.lastrowid
        logger.info(f"Saved {record.token_type} token {record.token[:8]}...")
        return record.id

    @staticmethod
    def _token_from_row(row: sqlite3.Row) -> TokenRecord:
        return TokenRecord(
            id=row["id"],
            token=row["token"],
            token_type=row["token_type"],
            app_id=row["app_id"],
            created_at=_ts(row["created_at"]),
            expires_at=_ts(row["expires_at"]),
            revoked=bool(row["revoked"]),
        )

    def get_token(self, token: str) -> Optional[TokenRecord]:
        rows = self._read("SELECT * FROM tokens WHERE token = ?", (token,))
        return self._token_from_row(rows[0]) if rows else None

    def revoke_token(self, token: str) -> bool:
        cursor = self._write("UPDATE tokens SET revoked = 1 WHERE token = ?", (token,))
        revoked = cursor.rowcount > 0
        if revoked:
            logger.info(f"Revoked token {token[:8]}...")
        return revoked

    def list_tokens(self, limit: int = 100, offset: int = 0) -> List[TokenRecord]:
        rows = self._read(
            "SELECT * FROM tokens ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?", (limit, offset)
        )
        return [self._token_from_row(row) for row in rows]

    def get_stats(self) -> Dict[str, int]:
        """Counts shown on the admin overview"""
        now = format_timestamp(_now())
        queries = {
            "total_licenses": ("SELECT COUNT(*) FROM licenses", ()),
            "active_licenses": ("SELECT COUNT(*) FROM licenses WHERE expiry_date >= ?", (now,)),
            "total_devices": ("SELECT COUNT(*) FROM devices", ()),
            "active_devices": ("SELECT COUNT(*) FROM devices WHERE status = 'active'", ()),
            "active_tokens": ("SELECT COUNT(*) FROM tokens WHERE revoked = 0", ()),
        }
        return {name: self._read(sql, params)[0][0] for name, (sql, params) in queries.items()}
