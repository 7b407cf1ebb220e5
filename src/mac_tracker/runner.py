"""
Scan orchestration.

ScanRunner executes one job end to end: query every enabled host of the job
for its MAC table, parse the output, pool the observations and hand them to
the reconciler, notifier and retention enforcer. One run per job at a time,
tracked by RunRegistry.

Per-host failures (unreachable, bad credentials, unreadable output, timeout)
only add diagnostic lines to the run. The run fails when no host answered.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, Optional

from ._types import Host, Job, JobRun, JobStatus, Observation, RunStatus, now_utc
from .config import TrackerConfig
from .exceptions import (
    AllHostsFailedError,
    AlreadyRunningError,
    JobNotFoundError,
    NoEnabledHostsError,
    ParseFailureError,
    StorageError,
    TransportError,
)
from .inventory_db import InventoryDatabase
from .notifier import build_notifications, count_warnings
from .parser import parse_mac_table
from .reconciler import Reconciler
from .retention import enforce_retention
from .transport import TableTransport

logger = logging.getLogger(__name__)


class RunRegistry:
    """
    Jobs with a run in flight.

    Safe to share between threads; claim() is the only way in and always
    releases on exit.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: dict[str, Optional[str]] = {}

    @contextmanager
    def claim(self, job_id: str) -> Iterator[None]:
        with self._lock:
            if job_id in self._runs:
                raise AlreadyRunningError(job_id, self._runs[job_id])
            self._runs[job_id] = None
        try:
            yield
        finally:
            with self._lock:
                self._runs.pop(job_id, None)

    def attach(self, job_id: str, run_id: str) -> None:
        """Record the run id once the run record exists."""
        with self._lock:
            if job_id in self._runs:
                self._runs[job_id] = run_id

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._runs

    def active_runs(self) -> dict[str, Optional[str]]:
        with self._lock:
            return dict(self._runs)


@dataclass
class _HostOutcome:
    host: Host
    observations: list[Observation] = field(default_factory=list)
    error: Optional[str] = None
    debug_lines: list[str] = field(default_factory=list)


def _stamp(message: str) -> str:
    return f"[{now_utc().isoformat()}] {message}"


class ScanRunner:
    """Runs jobs against their hosts and folds the results into the inventory."""

    def __init__(
        self,
        db: InventoryDatabase,
        transport: TableTransport,
        config: Optional[TrackerConfig] = None,
        registry: Optional[RunRegistry] = None,
    ):
        self.db = db
        self.transport = transport
        self.config = config or TrackerConfig()
        self.registry = registry or RunRegistry()
        self.reconciler = Reconciler(db)

    async def run_job(self, job_id: str) -> JobRun:
        """
        Execute a job once.

        Returns:
            The finalized run record (status completed)

        Raises:
            AlreadyRunningError: A run of this job is in flight
            JobNotFoundError: Job is missing or not active
            NoEnabledHostsError: Job has no enabled hosts
            AllHostsFailedError: No host could be scanned
            StorageError: Results could not be committed
        """
        with self.registry.claim(job_id):
            job = self.db.get_job(job_id)
            if job is None or job.status != JobStatus.ACTIVE:
                raise JobNotFoundError(job_id)

            hosts = job.enabled_hosts
            if not hosts:
                raise NoEnabledHostsError(job_id)

            run = JobRun(job_id=job.id)
            self.db.create_run(run)
            self.registry.attach(job.id, run.id)
            logger.info(f"Starting job {job.name} (id={job.id}, run={run.id}, hosts={len(hosts)})")

            try:
                self.db.set_job_status(job.id, JobStatus.RUNNING)
                return await self._execute(job, hosts, run)
            except (AllHostsFailedError, StorageError):
                raise
            except Exception as e:
                logger.error(f"Job {job.name} failed: {e}")
                self._record_failure(run, job.id, str(e))
                raise
            finally:
                if run.status == RunStatus.RUNNING:
                    self._record_failure(run, job.id, "Run interrupted")

    async def _execute(self, job: Job, hosts: list[Host], run: JobRun) -> JobRun:
        outcomes = await self._scan_hosts(job, hosts)

        observations: list[Observation] = []
        host_errors: dict[str, str] = {}
        for outcome in outcomes:
            run.debug_info.extend(outcome.debug_lines)
            if outcome.error is not None:
                host_errors[outcome.host.name] = outcome.error
            else:
                observations.extend(outcome.observations)

        run.hosts_scanned = len(hosts)

        if len(host_errors) == len(hosts):
            error = AllHostsFailedError(job.id, run.id, host_errors)
            logger.error(f"Job {job.name}: {error}")
            self._record_failure(run, job.id, str(error))
            raise error

        try:
            with self.db.transaction() as conn:
                whitelist = self.db.get_whitelist(job.id, conn=conn)
                result = self.reconciler.reconcile(job.id, observations, whitelist, conn=conn)

                notifications = build_notifications(job, result.events)
                self.db.add_notifications(notifications, conn=conn)
                enforce_retention(self.db, job.id, job.retention, conn=conn)

                run.devices_found = result.devices_found
                run.new_devices = result.new_devices
                run.warnings = count_warnings(notifications)
                self._finish(run, RunStatus.COMPLETED)
                self.db.finalize_run(run, conn=conn)
                self.db.set_job_status(
                    job.id, JobStatus.ACTIVE, conn=conn, last_run_at=run.finished_at
                )
        except StorageError as e:
            logger.error(f"Job {job.name}: storing results failed: {e}")
            self._record_failure(run, job.id, f"Storage error: {e}")
            raise

        logger.info(
            f"Job {job.name} completed: {len(hosts) - len(host_errors)}/{len(hosts)} hosts, "
            f"{run.devices_found} devices, {run.new_devices} new, {run.warnings} warnings"
        )
        return run

    async def _scan_hosts(self, job: Job, hosts: list[Host]) -> list[_HostOutcome]:
        """Scan hosts concurrently; outcomes come back in host order."""
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent_hosts))
        loop = asyncio.get_running_loop()
        deadline = None
        if self.config.run_timeout_seconds:
            deadline = loop.time() + self.config.run_timeout_seconds

        async def bounded(host: Host) -> _HostOutcome:
            async with semaphore:
                return await self._scan_host(job, host, deadline)

        return list(await asyncio.gather(*(bounded(h) for h in hosts)))

    async def _scan_host(
        self, job: Job, host: Host, deadline: Optional[float]
    ) -> _HostOutcome:
        outcome = _HostOutcome(host=host)
        outcome.debug_lines.append(
            _stamp(f"Starting scan on {host.name} ({host.address}:{host.port})")
        )

        timeout = float(self.config.host_timeout_seconds)
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                return self._host_failed(outcome, "Run deadline reached before host was scanned")
            timeout = min(timeout, remaining)

        try:
            result = await asyncio.wait_for(
                self.transport.query_table(host, job.vlan_id), timeout=timeout
            )
            if not result.success:
                raise TransportError(host.name, result.error or "Query failed")
            outcome.observations = parse_mac_table(result.raw_output, host.name)
        except asyncio.TimeoutError:
            return self._host_failed(outcome, f"Timed out after {timeout:.0f}s")
        except (TransportError, ParseFailureError) as e:
            return self._host_failed(outcome, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error scanning {host.name}")
            return self._host_failed(outcome, f"{type(e).__name__}: {e}")

        outcome.debug_lines.append(
            _stamp(f"Successfully scanned {host.name}: {len(outcome.observations)} devices found")
        )
        return outcome

    def _host_failed(self, outcome: _HostOutcome, error: str) -> _HostOutcome:
        logger.warning(f"Failed to scan {outcome.host.name}: {error}")
        outcome.error = error
        outcome.observations = []
        outcome.debug_lines.append(_stamp(f"Failed to scan {outcome.host.name}: {error}"))
        return outcome

    def _finish(self, run: JobRun, status: RunStatus, error: Optional[str] = None) -> None:
        run.status = status
        run.error_message = error
        run.finished_at = now_utc()
        run.duration_seconds = round((run.finished_at - run.started_at).total_seconds())

    def _record_failure(self, run: JobRun, job_id: str, error: str) -> None:
        """Finalize a run as failed and reactivate its job, as far as storage allows."""
        self._finish(run, RunStatus.FAILED, error)
        try:
            self.db.finalize_run(run)
            self.db.set_job_status(job_id, JobStatus.ACTIVE, last_run_at=run.finished_at)
        except StorageError as e:
            logger.error(f"Could not record failure of run {run.id}: {e}")
