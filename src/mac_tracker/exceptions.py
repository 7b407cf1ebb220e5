"""
Error taxonomy for MAC tracker runs.

Precondition errors (AlreadyRunningError, JobNotFoundError,
NoEnabledHostsError) are raised before a run starts. Per-host errors
(TransportError, ParseFailureError) degrade a run to partial success and
never propagate past the runner. AllHostsFailedError and StorageError end
the run as failed and reach the caller.
"""

from __future__ import annotations

from typing import Optional


class MacTrackerError(Exception):
    """Base exception for MAC tracker errors."""
    pass


class AlreadyRunningError(MacTrackerError):
    """A run for this job is already in flight."""

    def __init__(self, job_id: str, run_id: Optional[str] = None):
        self.job_id = job_id
        self.run_id = run_id
        super().__init__(f"Job {job_id} is already running")


class JobNotFoundError(MacTrackerError):
    """Job does not exist or is not active."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found or inactive")


class NoEnabledHostsError(MacTrackerError):
    """Job has no enabled hosts to scan."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"No enabled SSH hosts configured for job {job_id}")


class AllHostsFailedError(MacTrackerError):
    """Every host of a run failed; the inventory was left untouched."""

    def __init__(self, job_id: str, run_id: str, host_errors: dict[str, str]):
        self.job_id = job_id
        self.run_id = run_id
        self.host_errors = dict(host_errors)
        details = "; ".join(f"{name}: {err}" for name, err in self.host_errors.items())
        super().__init__(f"Failed to scan any hosts ({details})")


class ParseFailureError(MacTrackerError):
    """Host output could not be read as a MAC address table."""
    pass


class TransportError(MacTrackerError):
    """Connection, authentication or command execution failed on a host."""

    def __init__(self, host_name: str, message: str):
        self.host_name = host_name
        super().__init__(f"{host_name}: {message}")


class StorageError(MacTrackerError):
    """Inventory database operation failed."""
    pass
