"""
MAC Tracker - Switch MAC table inventory and change detection.

Periodically reads MAC address tables from switches over SSH and keeps a
per-job inventory of which devices sit on which switch ports. New devices
are checked against the job's whitelist, moves between interfaces are
detected, and devices that disappear are marked inactive and pruned under
the job's retention policy.

Pipeline:
    transport (SSH) -> parser -> reconciler -> notifier -> retention

Storage:
    - All data stored locally in /var/lib/mac-tracker/inventory.db
    - Host passwords kept apart in /var/lib/mac-tracker/host_creds.yaml
"""

__version__ = "1.0.0"

from ._types import (
    DeviceEvent,
    DeviceHistoryEntry,
    DeviceKey,
    DeviceStatus,
    EventKind,
    Host,
    Job,
    JobRun,
    JobStatus,
    KnownDevice,
    Notification,
    NotificationType,
    Observation,
    ReconcileResult,
    RetentionMode,
    RetentionPolicy,
    RunStatus,
)
from .exceptions import (
    AllHostsFailedError,
    AlreadyRunningError,
    JobNotFoundError,
    MacTrackerError,
    NoEnabledHostsError,
    ParseFailureError,
    StorageError,
    TransportError,
)
from .notifier import build_notifications
from .parser import parse_mac_table
from .reconciler import Reconciler
from .retention import enforce_retention
from .runner import RunRegistry, ScanRunner

__all__ = [
    "__version__",
    "DeviceEvent",
    "DeviceHistoryEntry",
    "DeviceKey",
    "DeviceStatus",
    "EventKind",
    "Host",
    "Job",
    "JobRun",
    "JobStatus",
    "KnownDevice",
    "Notification",
    "NotificationType",
    "Observation",
    "ReconcileResult",
    "RetentionMode",
    "RetentionPolicy",
    "RunStatus",
    "AllHostsFailedError",
    "AlreadyRunningError",
    "JobNotFoundError",
    "MacTrackerError",
    "NoEnabledHostsError",
    "ParseFailureError",
    "StorageError",
    "TransportError",
    "build_notifications",
    "parse_mac_table",
    "Reconciler",
    "enforce_retention",
    "RunRegistry",
    "ScanRunner",
]
