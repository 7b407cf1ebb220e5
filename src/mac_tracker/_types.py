"""
Type definitions for the MAC tracker.

These dataclasses define the core domain model for switch MAC-table scans,
the per-job device inventory, and the records a scan run leaves behind.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional


def now_utc() -> datetime:
    """Get current UTC timestamp (replaces deprecated datetime.utcnow())."""
    return datetime.now(timezone.utc)


# Six colon- or hyphen-separated two-hex-digit groups
MAC_PATTERN = re.compile(r"^([0-9a-f]{2}[:-]){5}[0-9a-f]{2}$", re.IGNORECASE)


def is_valid_mac(mac: str) -> bool:
    """Check a MAC address against the canonical six-group pattern."""
    return bool(MAC_PATTERN.match(mac))


def normalize_mac(mac: str) -> str:
    """Format a MAC address as lowercase with colons."""
    return mac.strip().lower().replace("-", ":")


class JobStatus(str, Enum):
    """Job lifecycle status."""
    ACTIVE = "active"
    RUNNING = "running"
    DISABLED = "disabled"  # Kept in the database, never scanned


class DeviceStatus(str, Enum):
    """Known device presence status."""
    ACTIVE = "active"      # Seen by the latest completed scan
    INACTIVE = "inactive"  # Missed by the latest completed scan


class RunStatus(str, Enum):
    """Job run status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationType(str, Enum):
    """Severity of a generated notification."""
    INFORMATIONAL = "informational"
    WARNING = "warning"


class EventKind(str, Enum):
    """Reconciliation event kinds handed to the notifier."""
    NEW_DEVICE = "new_device"
    INTERFACE_MOVED = "interface_moved"


class RetentionMode(str, Enum):
    """How long inactive devices are kept."""
    FOREVER = "forever"
    DAYS = "days"
    REMOVE = "remove"  # Remove as soon as a scan misses the device


@dataclass(frozen=True)
class RetentionPolicy:
    """Retention rule for inactive inventory records."""
    mode: RetentionMode = RetentionMode.DAYS
    days: int = 30

    @classmethod
    def forever(cls) -> "RetentionPolicy":
        return cls(RetentionMode.FOREVER, 0)

    @classmethod
    def remove_immediately(cls) -> "RetentionPolicy":
        return cls(RetentionMode.REMOVE, 0)

    @classmethod
    def for_days(cls, days: int) -> "RetentionPolicy":
        if days < 0:
            raise ValueError(f"Retention days must be >= 0, got {days}")
        return cls(RetentionMode.DAYS, days)


class DeviceKey(NamedTuple):
    """Identity of a known device within one job."""
    mac_address: str
    host_name: str


@dataclass
class Host:
    """A switch reachable over SSH, owned by a job."""
    name: str
    address: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    port: int = 22
    username: str = ""
    private_key_path: Optional[str] = None
    enabled: bool = True

    def to_dict(self) -> dict:
        """Convert to dictionary (no secrets are held on the host record)."""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "port": self.port,
            "username": self.username,
            "has_private_key": bool(self.private_key_path),
            "enabled": self.enabled,
        }


@dataclass
class Job:
    """
    A scan target set: hosts to query, whitelist, and notification preferences.

    The whitelist holds normalized MAC addresses considered authorized.
    """
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    vlan_id: Optional[int] = None

    # Notification preferences
    notifications_enabled: bool = True
    notify_new_macs: bool = True
    notify_unauthorized_macs: bool = True
    notify_ip_changes: bool = True  # Interface moves

    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    status: JobStatus = JobStatus.ACTIVE

    hosts: list[Host] = field(default_factory=list)
    whitelist: set[str] = field(default_factory=set)

    created_at: datetime = field(default_factory=now_utc)
    last_run_at: Optional[datetime] = None

    @property
    def enabled_hosts(self) -> list[Host]:
        return [h for h in self.hosts if h.enabled]


@dataclass(frozen=True)
class Observation:
    """One MAC table line: a MAC seen on a host interface during one scan."""
    mac_address: str
    vlan_id: int
    interface_name: str
    host_name: str
    observed_at: datetime = field(default_factory=now_utc)

    @property
    def key(self) -> DeviceKey:
        return DeviceKey(self.mac_address, self.host_name)


@dataclass
class KnownDevice:
    """Persistent inventory record for a (job, MAC, host) triple."""
    job_id: str
    mac_address: str
    host_name: str
    interface_name: str
    vlan_id: Optional[int] = None
    whitelisted: bool = False
    first_seen_at: datetime = field(default_factory=now_utc)
    last_seen_at: datetime = field(default_factory=now_utc)
    status: DeviceStatus = DeviceStatus.ACTIVE
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def key(self) -> DeviceKey:
        return DeviceKey(self.mac_address, self.host_name)


@dataclass(frozen=True)
class DeviceHistoryEntry:
    """Append-only audit record of a single observation."""
    job_id: str
    mac_address: str
    host_name: str
    interface_name: str
    vlan_id: Optional[int]
    detected_at: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class DeviceEvent:
    """Something the reconciler noticed that may deserve a notification."""
    kind: EventKind
    mac_address: str
    host_name: str
    interface_name: str
    vlan_id: Optional[int] = None
    whitelisted: bool = False
    previous_interface: Optional[str] = None


@dataclass
class Notification:
    """Alert record shown to operators. Only the read flag ever changes."""
    job_id: str
    job_name: str
    type: NotificationType
    message: str
    mac_address: str
    host_name: str
    interface_name: Optional[str] = None
    read: bool = False
    created_at: datetime = field(default_factory=now_utc)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class ReconcileResult:
    """Counters and events produced by one reconciliation."""
    devices_found: int = 0
    new_devices: int = 0
    events: list[DeviceEvent] = field(default_factory=list)
    inactive_devices: int = 0


@dataclass
class JobRun:
    """Summary of one job execution."""
    job_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RunStatus = RunStatus.RUNNING
    hosts_scanned: int = 0
    devices_found: int = 0
    new_devices: int = 0
    warnings: int = 0
    started_at: datetime = field(default_factory=now_utc)
    finished_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    error_message: Optional[str] = None
    debug_info: list[str] = field(default_factory=list)
