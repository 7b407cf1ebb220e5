"""
Inventory database for the MAC tracker.

SQLite database at /var/lib/mac-tracker/inventory.db storing:
- Jobs, their hosts and MAC whitelists
- Known devices per job (one row per MAC and host)
- Append-only device history
- Notifications and job run records

Uses WAL mode for crash safety and concurrent reads. Write methods accept an
optional connection so a caller can group them in one transaction().
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from ._types import (
    DeviceHistoryEntry,
    DeviceKey,
    DeviceStatus,
    Host,
    Job,
    JobRun,
    JobStatus,
    KnownDevice,
    Notification,
    NotificationType,
    RetentionMode,
    RetentionPolicy,
    RunStatus,
    normalize_mac,
    now_utc,
)
from .exceptions import StorageError

logger = logging.getLogger(__name__)


# Database schema
SCHEMA = """
-- Scan jobs
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    vlan_id INTEGER,

    -- Notification preferences
    notifications_enabled BOOLEAN DEFAULT TRUE,
    notify_new_macs BOOLEAN DEFAULT TRUE,
    notify_unauthorized_macs BOOLEAN DEFAULT TRUE,
    notify_ip_changes BOOLEAN DEFAULT TRUE,

    -- Retention of inactive devices
    retention_mode TEXT DEFAULT 'days',
    retention_days INTEGER DEFAULT 30,

    status TEXT DEFAULT 'active',
    created_at TEXT NOT NULL,
    last_run_at TEXT
);

-- SSH hosts per job (passwords live in the credentials file)
CREATE TABLE IF NOT EXISTS hosts (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    name TEXT NOT NULL,
    address TEXT NOT NULL,
    port INTEGER DEFAULT 22,
    username TEXT,
    private_key_path TEXT,
    enabled BOOLEAN DEFAULT TRUE,
    position INTEGER DEFAULT 0,
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
);

-- Authorized MACs per job
CREATE TABLE IF NOT EXISTS job_whitelist (
    job_id TEXT NOT NULL,
    mac_address TEXT NOT NULL,
    PRIMARY KEY (job_id, mac_address),
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
);

-- Current inventory
CREATE TABLE IF NOT EXISTS known_devices (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    mac_address TEXT NOT NULL,
    host_name TEXT NOT NULL,
    interface_name TEXT,
    vlan_id INTEGER,
    whitelisted BOOLEAN DEFAULT FALSE,
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL,
    status TEXT DEFAULT 'active',
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE,
    UNIQUE(job_id, mac_address, host_name)
);

-- Every observation, never updated
CREATE TABLE IF NOT EXISTS device_history (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    mac_address TEXT NOT NULL,
    host_name TEXT NOT NULL,
    interface_name TEXT,
    vlan_id INTEGER,
    detected_at TEXT NOT NULL,
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    job_name TEXT,
    type TEXT NOT NULL,
    message TEXT NOT NULL,
    mac_address TEXT,
    host_name TEXT,
    interface_name TEXT,
    read BOOLEAN DEFAULT FALSE,
    created_at TEXT NOT NULL,
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS job_runs (
    id TEXT PRIMARY KEY,
    job_id TEXT NOT NULL,
    status TEXT DEFAULT 'running',
    hosts_scanned INTEGER DEFAULT 0,
    devices_found INTEGER DEFAULT 0,
    new_devices INTEGER DEFAULT 0,
    warnings INTEGER DEFAULT 0,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    duration_seconds INTEGER,
    error_message TEXT,
    debug_info TEXT,  -- JSON array
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_hosts_job ON hosts(job_id);
CREATE INDEX IF NOT EXISTS idx_known_devices_job ON known_devices(job_id);
CREATE INDEX IF NOT EXISTS idx_known_devices_status ON known_devices(job_id, status);
CREATE INDEX IF NOT EXISTS idx_device_history_job ON device_history(job_id);
CREATE INDEX IF NOT EXISTS idx_device_history_mac ON device_history(mac_address);
CREATE INDEX IF NOT EXISTS idx_notifications_job ON notifications(job_id);
CREATE INDEX IF NOT EXISTS idx_notifications_read ON notifications(read);
CREATE INDEX IF NOT EXISTS idx_job_runs_job ON job_runs(job_id, started_at);
"""


def _iso_format(dt: datetime) -> str:
    """Format datetime as ISO string (fixed precision so strings sort)."""
    return dt.isoformat(timespec="microseconds")


def _parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


class InventoryDatabase:
    """
    SQLite database for jobs, device inventory, notifications and runs.

    Every sqlite3.Error is re-raised as StorageError.
    """

    def __init__(self, db_path: Path | str = "/var/lib/mac-tracker/inventory.db"):
        self.db_path = Path(db_path)
        self._ensure_directory()
        self._init_db()

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            # Enable WAL mode for crash safety
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys=ON")
            yield conn
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run several writes atomically.

        Commits when the block exits cleanly, rolls back on any exception.
        """
        with self._get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except BaseException:
                conn.rollback()
                raise

    @contextmanager
    def _use(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        """Join the caller's transaction, or open and commit a short one."""
        if conn is not None:
            try:
                yield conn
            except sqlite3.Error as e:
                raise StorageError(str(e)) from e
            return
        with self.transaction() as own:
            yield own

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def save_job(self, job: Job, conn: Optional[sqlite3.Connection] = None) -> None:
        """Insert or update a job together with its hosts and whitelist."""
        with self._use(conn) as c:
            c.execute("""
                INSERT INTO jobs (
                    id, name, vlan_id, notifications_enabled, notify_new_macs,
                    notify_unauthorized_macs, notify_ip_changes, retention_mode,
                    retention_days, status, created_at, last_run_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    vlan_id = excluded.vlan_id,
                    notifications_enabled = excluded.notifications_enabled,
                    notify_new_macs = excluded.notify_new_macs,
                    notify_unauthorized_macs = excluded.notify_unauthorized_macs,
                    notify_ip_changes = excluded.notify_ip_changes,
                    retention_mode = excluded.retention_mode,
                    retention_days = excluded.retention_days,
                    status = excluded.status,
                    last_run_at = excluded.last_run_at
            """, (
                job.id,
                job.name,
                job.vlan_id,
                job.notifications_enabled,
                job.notify_new_macs,
                job.notify_unauthorized_macs,
                job.notify_ip_changes,
                job.retention.mode.value,
                job.retention.days,
                job.status.value,
                _iso_format(job.created_at),
                _iso_format(job.last_run_at) if job.last_run_at else None,
            ))

            c.execute("DELETE FROM hosts WHERE job_id = ?", (job.id,))
            c.executemany("""
                INSERT INTO hosts (
                    id, job_id, name, address, port, username,
                    private_key_path, enabled, position
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    host.id,
                    job.id,
                    host.name,
                    host.address,
                    host.port,
                    host.username,
                    host.private_key_path,
                    host.enabled,
                    position,
                )
                for position, host in enumerate(job.hosts)
            ])

            self.set_whitelist(job.id, job.whitelist, conn=c)

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get job by ID, including hosts and whitelist."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
            if not row:
                return None
            return self._row_to_job(conn, row)

    def list_jobs(self) -> list[Job]:
        """Get all jobs ordered by name."""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM jobs ORDER BY name").fetchall()
            return [self._row_to_job(conn, row) for row in rows]

    def delete_job(self, job_id: str) -> bool:
        """Delete a job; hosts, devices, history, notifications and runs cascade."""
        with self._use(None) as conn:
            cursor = conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            return cursor.rowcount > 0

    def set_job_status(
        self,
        job_id: str,
        status: JobStatus,
        conn: Optional[sqlite3.Connection] = None,
        last_run_at: Optional[datetime] = None,
    ) -> None:
        """Update job status, optionally stamping the last run time."""
        with self._use(conn) as c:
            if last_run_at is not None:
                c.execute(
                    "UPDATE jobs SET status = ?, last_run_at = ? WHERE id = ?",
                    (status.value, _iso_format(last_run_at), job_id),
                )
            else:
                c.execute(
                    "UPDATE jobs SET status = ? WHERE id = ?", (status.value, job_id)
                )

    def get_whitelist(
        self, job_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> frozenset[str]:
        """Get the whitelisted MACs of a job."""
        with self._use(conn) as c:
            rows = c.execute(
                "SELECT mac_address FROM job_whitelist WHERE job_id = ?", (job_id,)
            ).fetchall()
            return frozenset(row["mac_address"] for row in rows)

    def set_whitelist(
        self,
        job_id: str,
        macs: Iterable[str],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """
        Replace a job's whitelist.

        The whitelisted flag of existing known devices is re-synced so the
        inventory agrees with the new list.
        """
        normalized = sorted({normalize_mac(mac) for mac in macs if mac and mac.strip()})
        with self._use(conn) as c:
            c.execute("DELETE FROM job_whitelist WHERE job_id = ?", (job_id,))
            c.executemany(
                "INSERT INTO job_whitelist (job_id, mac_address) VALUES (?, ?)",
                [(job_id, mac) for mac in normalized],
            )
            c.execute("""
                UPDATE known_devices SET whitelisted = (
                    mac_address IN (
                        SELECT mac_address FROM job_whitelist WHERE job_id = ?
                    )
                )
                WHERE job_id = ?
            """, (job_id, job_id))

    def _row_to_job(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Job:
        """Convert database row to Job object."""
        host_rows = conn.execute(
            "SELECT * FROM hosts WHERE job_id = ? ORDER BY position", (row["id"],)
        ).fetchall()
        whitelist_rows = conn.execute(
            "SELECT mac_address FROM job_whitelist WHERE job_id = ?", (row["id"],)
        ).fetchall()

        mode = RetentionMode(row["retention_mode"] or "days")
        days = row["retention_days"] if row["retention_days"] is not None else 30

        return Job(
            id=row["id"],
            name=row["name"],
            vlan_id=row["vlan_id"],
            notifications_enabled=bool(row["notifications_enabled"]),
            notify_new_macs=bool(row["notify_new_macs"]),
            notify_unauthorized_macs=bool(row["notify_unauthorized_macs"]),
            notify_ip_changes=bool(row["notify_ip_changes"]),
            retention=RetentionPolicy(mode, days),
            status=JobStatus(row["status"]),
            hosts=[self._row_to_host(h) for h in host_rows],
            whitelist={w["mac_address"] for w in whitelist_rows},
            created_at=_parse_datetime(row["created_at"]) or now_utc(),
            last_run_at=_parse_datetime(row["last_run_at"]),
        )

    def _row_to_host(self, row: sqlite3.Row) -> Host:
        """Convert database row to Host object."""
        return Host(
            id=row["id"],
            name=row["name"],
            address=row["address"],
            port=row["port"],
            username=row["username"] or "",
            private_key_path=row["private_key_path"],
            enabled=bool(row["enabled"]),
        )

    # -------------------------------------------------------------------------
    # Known devices
    # -------------------------------------------------------------------------

    def get_known_devices(
        self,
        job_id: str,
        status: Optional[DeviceStatus] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> dict[DeviceKey, KnownDevice]:
        """Get a job's inventory keyed by (MAC, host)."""
        query = "SELECT * FROM known_devices WHERE job_id = ?"
        params: list = [job_id]
        if status:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY last_seen_at DESC"

        with self._use(conn) as c:
            rows = c.execute(query, params).fetchall()
            devices = (self._row_to_known_device(row) for row in rows)
            return {device.key: device for device in devices}

    def insert_known_device(
        self, device: KnownDevice, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """Insert a newly discovered device."""
        with self._use(conn) as c:
            c.execute("""
                INSERT INTO known_devices (
                    id, job_id, mac_address, host_name, interface_name, vlan_id,
                    whitelisted, first_seen_at, last_seen_at, status
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                device.id,
                device.job_id,
                device.mac_address,
                device.host_name,
                device.interface_name,
                device.vlan_id,
                device.whitelisted,
                _iso_format(device.first_seen_at),
                _iso_format(device.last_seen_at),
                device.status.value,
            ))

    def update_known_device(
        self, device: KnownDevice, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """Update location, last-seen and status of a known device."""
        with self._use(conn) as c:
            c.execute("""
                UPDATE known_devices SET
                    interface_name = ?,
                    vlan_id = ?,
                    whitelisted = ?,
                    last_seen_at = ?,
                    status = ?
                WHERE job_id = ? AND mac_address = ? AND host_name = ?
            """, (
                device.interface_name,
                device.vlan_id,
                device.whitelisted,
                _iso_format(device.last_seen_at),
                device.status.value,
                device.job_id,
                device.mac_address,
                device.host_name,
            ))

    def mark_devices_inactive(
        self,
        job_id: str,
        keys: Iterable[DeviceKey],
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Mark the given devices inactive. Returns rows changed."""
        params = [(DeviceStatus.INACTIVE.value, job_id, k.mac_address, k.host_name) for k in keys]
        if not params:
            return 0
        with self._use(conn) as c:
            cursor = c.executemany("""
                UPDATE known_devices SET status = ?
                WHERE job_id = ? AND mac_address = ? AND host_name = ?
            """, params)
            return cursor.rowcount

    def delete_inactive_devices(
        self,
        job_id: str,
        last_seen_before: Optional[datetime] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """
        Delete inactive devices of a job.

        With last_seen_before, only devices last seen strictly before that
        instant are removed. Active devices are never touched.
        """
        query = "DELETE FROM known_devices WHERE job_id = ? AND status = ?"
        params: list = [job_id, DeviceStatus.INACTIVE.value]
        if last_seen_before is not None:
            query += " AND last_seen_at < ?"
            params.append(_iso_format(last_seen_before))

        with self._use(conn) as c:
            cursor = c.execute(query, params)
            return cursor.rowcount

    def delete_known_device(self, job_id: str, device_id: str) -> bool:
        """Remove one device from a job's inventory. History is kept."""
        with self._use(None) as conn:
            cursor = conn.execute(
                "DELETE FROM known_devices WHERE job_id = ? AND id = ?",
                (job_id, device_id),
            )
            return cursor.rowcount > 0

    def _row_to_known_device(self, row: sqlite3.Row) -> KnownDevice:
        """Convert database row to KnownDevice object."""
        return KnownDevice(
            id=row["id"],
            job_id=row["job_id"],
            mac_address=row["mac_address"],
            host_name=row["host_name"],
            interface_name=row["interface_name"] or "",
            vlan_id=row["vlan_id"],
            whitelisted=bool(row["whitelisted"]),
            first_seen_at=_parse_datetime(row["first_seen_at"]) or now_utc(),
            last_seen_at=_parse_datetime(row["last_seen_at"]) or now_utc(),
            status=DeviceStatus(row["status"]),
        )

    # -------------------------------------------------------------------------
    # Device history
    # -------------------------------------------------------------------------

    def add_history_entries(
        self,
        entries: list[DeviceHistoryEntry],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Append observation records."""
        with self._use(conn) as c:
            c.executemany("""
                INSERT INTO device_history (
                    id, job_id, mac_address, host_name, interface_name,
                    vlan_id, detected_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    e.id,
                    e.job_id,
                    e.mac_address,
                    e.host_name,
                    e.interface_name,
                    e.vlan_id,
                    _iso_format(e.detected_at),
                )
                for e in entries
            ])

    def get_device_history(
        self,
        job_id: str,
        mac_address: Optional[str] = None,
        limit: int = 500,
    ) -> list[DeviceHistoryEntry]:
        """Get observation history of a job, newest first."""
        query = "SELECT * FROM device_history WHERE job_id = ?"
        params: list = [job_id]
        if mac_address:
            query += " AND mac_address = ?"
            params.append(normalize_mac(mac_address))
        query += " ORDER BY detected_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [
                DeviceHistoryEntry(
                    id=row["id"],
                    job_id=row["job_id"],
                    mac_address=row["mac_address"],
                    host_name=row["host_name"],
                    interface_name=row["interface_name"] or "",
                    vlan_id=row["vlan_id"],
                    detected_at=_parse_datetime(row["detected_at"]) or now_utc(),
                )
                for row in rows
            ]

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def add_notifications(
        self,
        notifications: list[Notification],
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Append notification records."""
        with self._use(conn) as c:
            c.executemany("""
                INSERT INTO notifications (
                    id, job_id, job_name, type, message, mac_address,
                    host_name, interface_name, read, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    n.id,
                    n.job_id,
                    n.job_name,
                    n.type.value,
                    n.message,
                    n.mac_address,
                    n.host_name,
                    n.interface_name,
                    n.read,
                    _iso_format(n.created_at),
                )
                for n in notifications
            ])

    def get_notifications(
        self,
        job_id: Optional[str] = None,
        unread_only: bool = False,
        limit: int = 100,
    ) -> list[Notification]:
        """Get notifications, newest first."""
        query = "SELECT * FROM notifications WHERE 1=1"
        params: list = []
        if job_id:
            query += " AND job_id = ?"
            params.append(job_id)
        if unread_only:
            query += " AND read = FALSE"
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [
                Notification(
                    id=row["id"],
                    job_id=row["job_id"],
                    job_name=row["job_name"] or "",
                    type=NotificationType(row["type"]),
                    message=row["message"],
                    mac_address=row["mac_address"] or "",
                    host_name=row["host_name"] or "",
                    interface_name=row["interface_name"],
                    read=bool(row["read"]),
                    created_at=_parse_datetime(row["created_at"]) or now_utc(),
                )
                for row in rows
            ]

    def mark_notification_read(self, notification_id: str) -> bool:
        """Flip a notification's read flag."""
        with self._use(None) as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = TRUE WHERE id = ?", (notification_id,)
            )
            return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Job runs
    # -------------------------------------------------------------------------

    def create_run(self, run: JobRun, conn: Optional[sqlite3.Connection] = None) -> None:
        """Create a new job run record."""
        with self._use(conn) as c:
            c.execute("""
                INSERT INTO job_runs (id, job_id, status, started_at, debug_info)
                VALUES (?, ?, ?, ?, ?)
            """, (
                run.id,
                run.job_id,
                run.status.value,
                _iso_format(run.started_at),
                json.dumps(run.debug_info),
            ))

    def finalize_run(self, run: JobRun, conn: Optional[sqlite3.Connection] = None) -> None:
        """Write the final counters, status and diagnostics of a run."""
        with self._use(conn) as c:
            c.execute("""
                UPDATE job_runs SET
                    status = ?,
                    hosts_scanned = ?,
                    devices_found = ?,
                    new_devices = ?,
                    warnings = ?,
                    finished_at = ?,
                    duration_seconds = ?,
                    error_message = ?,
                    debug_info = ?
                WHERE id = ?
            """, (
                run.status.value,
                run.hosts_scanned,
                run.devices_found,
                run.new_devices,
                run.warnings,
                _iso_format(run.finished_at) if run.finished_at else None,
                run.duration_seconds,
                run.error_message,
                json.dumps(run.debug_info),
                run.id,
            ))

    def get_run(self, run_id: str) -> Optional[JobRun]:
        """Get job run by ID."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM job_runs WHERE id = ?", (run_id,)).fetchone()
            if row:
                return self._row_to_run(row)
            return None

    def get_runs(self, job_id: str, limit: int = 50) -> list[JobRun]:
        """Get recent runs of a job, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM job_runs WHERE job_id = ?
                ORDER BY started_at DESC LIMIT ?
            """, (job_id, limit)).fetchall()
            return [self._row_to_run(row) for row in rows]

    def recover_interrupted_runs(self, now: Optional[datetime] = None) -> int:
        """
        Close out runs left in 'running' by a process that died mid-run.

        Such runs are marked failed and their jobs go back to active so
        they can be run again. Returns the number of runs recovered.
        """
        finished_at = _iso_format(now or now_utc())
        with self._use(None) as conn:
            cursor = conn.execute("""
                UPDATE job_runs SET
                    status = ?,
                    finished_at = ?,
                    error_message = ?
                WHERE status = ?
            """, (
                RunStatus.FAILED.value,
                finished_at,
                "Interrupted by service restart",
                RunStatus.RUNNING.value,
            ))
            conn.execute(
                "UPDATE jobs SET status = ? WHERE status = ?",
                (JobStatus.ACTIVE.value, JobStatus.RUNNING.value),
            )
            return cursor.rowcount

    def _row_to_run(self, row: sqlite3.Row) -> JobRun:
        """Convert database row to JobRun object."""
        return JobRun(
            id=row["id"],
            job_id=row["job_id"],
            status=RunStatus(row["status"]),
            hosts_scanned=row["hosts_scanned"] or 0,
            devices_found=row["devices_found"] or 0,
            new_devices=row["new_devices"] or 0,
            warnings=row["warnings"] or 0,
            started_at=_parse_datetime(row["started_at"]) or now_utc(),
            finished_at=_parse_datetime(row["finished_at"]),
            duration_seconds=row["duration_seconds"],
            error_message=row["error_message"],
            debug_info=json.loads(row["debug_info"] or "[]"),
        )
