"""
MAC Tracker Service - HTTP surface and process entry point.

Exposes job management, on-demand runs, inventory and notifications over a
small aiohttp API. Scheduling is left to an external trigger (cron, systemd
timer) calling POST /api/jobs/{job_id}/run.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError, field_validator

from ._types import (
    DeviceStatus,
    Host,
    Job,
    JobRun,
    JobStatus,
    KnownDevice,
    Notification,
    RetentionMode,
    RetentionPolicy,
    is_valid_mac,
    normalize_mac,
)
from .config import TrackerConfig
from .exceptions import AllHostsFailedError, MacTrackerError
from .inventory_db import InventoryDatabase
from .runner import ScanRunner
from .transport import SSHTableTransport, TableTransport

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Request payloads
# -----------------------------------------------------------------------------

class HostPayload(BaseModel):
    """SSH host as submitted by a client."""

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = ""
    private_key_path: Optional[str] = None
    enabled: bool = True


class JobPayload(BaseModel):
    """Job create/update request."""

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    vlan_id: Optional[int] = Field(default=None, ge=1, le=4094)

    notifications_enabled: bool = True
    notify_new_macs: bool = True
    notify_unauthorized_macs: bool = True
    notify_ip_changes: bool = True

    retention_mode: RetentionMode = RetentionMode.DAYS
    retention_days: int = Field(default=30, ge=0)

    disabled: bool = False
    hosts: list[HostPayload] = Field(default_factory=list)
    whitelist: list[str] = Field(default_factory=list)

    @field_validator('whitelist')
    @classmethod
    def validate_whitelist(cls, v):
        macs = [m.strip() for m in v if m and m.strip()]
        invalid = [m for m in macs if not is_valid_mac(m)]
        if invalid:
            raise ValueError(f"invalid MAC addresses: {', '.join(invalid)}")
        return [normalize_mac(m) for m in macs]

    def to_job(self, existing: Optional[Job] = None) -> Job:
        """Build the Job to persist, keeping identity fields of an existing job."""
        job = Job(
            name=self.name,
            vlan_id=self.vlan_id,
            notifications_enabled=self.notifications_enabled,
            notify_new_macs=self.notify_new_macs,
            notify_unauthorized_macs=self.notify_unauthorized_macs,
            notify_ip_changes=self.notify_ip_changes,
            retention=RetentionPolicy(self.retention_mode, self.retention_days),
            status=JobStatus.DISABLED if self.disabled else JobStatus.ACTIVE,
            hosts=[
                Host(
                    name=h.name,
                    address=h.address,
                    port=h.port,
                    username=h.username,
                    private_key_path=h.private_key_path,
                    enabled=h.enabled,
                    **({"id": h.id} if h.id else {}),
                )
                for h in self.hosts
            ],
            whitelist=set(self.whitelist),
        )
        if self.id:
            job.id = self.id
        if existing is not None:
            job.id = existing.id
            job.created_at = existing.created_at
            job.last_run_at = existing.last_run_at
            if existing.status == JobStatus.RUNNING and not self.disabled:
                job.status = JobStatus.RUNNING
        return job


# -----------------------------------------------------------------------------
# Response shapes
# -----------------------------------------------------------------------------

def _job_to_dict(job: Job) -> dict:
    return {
        "id": job.id,
        "name": job.name,
        "vlan_id": job.vlan_id,
        "notifications_enabled": job.notifications_enabled,
        "notify_new_macs": job.notify_new_macs,
        "notify_unauthorized_macs": job.notify_unauthorized_macs,
        "notify_ip_changes": job.notify_ip_changes,
        "retention_mode": job.retention.mode.value,
        "retention_days": job.retention.days,
        "status": job.status.value,
        "hosts": [h.to_dict() for h in job.hosts],
        "whitelist": sorted(job.whitelist),
        "created_at": job.created_at.isoformat(),
        "last_run_at": job.last_run_at.isoformat() if job.last_run_at else None,
    }


def _run_to_dict(run: JobRun) -> dict:
    return {
        "id": run.id,
        "job_id": run.job_id,
        "status": run.status.value,
        "hosts_scanned": run.hosts_scanned,
        "devices_found": run.devices_found,
        "new_devices": run.new_devices,
        "warnings": run.warnings,
        "started_at": run.started_at.isoformat(),
        "finished_at": run.finished_at.isoformat() if run.finished_at else None,
        "duration_seconds": run.duration_seconds,
        "error_message": run.error_message,
        "debug_info": run.debug_info,
    }


def _device_to_dict(device: KnownDevice) -> dict:
    return {
        "id": device.id,
        "mac_address": device.mac_address,
        "host_name": device.host_name,
        "interface_name": device.interface_name,
        "vlan_id": device.vlan_id,
        "whitelisted": device.whitelisted,
        "status": device.status.value,
        "first_seen_at": device.first_seen_at.isoformat(),
        "last_seen_at": device.last_seen_at.isoformat(),
    }


def _notification_to_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "job_id": n.job_id,
        "job_name": n.job_name,
        "type": n.type.value,
        "message": n.message,
        "mac_address": n.mac_address,
        "host_name": n.host_name,
        "interface_name": n.interface_name,
        "read": n.read,
        "created_at": n.created_at.isoformat(),
    }


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"status": "error", "message": message}, status=status)


class MacTrackerService:
    """
    MAC tracker service.

    Owns the inventory database, the SSH transport and the scan runner, and
    serves the HTTP API until stopped.
    """

    def __init__(
        self,
        config: TrackerConfig,
        db: Optional[InventoryDatabase] = None,
        transport: Optional[TableTransport] = None,
    ):
        self.config = config
        self.db = db or InventoryDatabase(config.db_path)
        self.transport = transport or SSHTableTransport(
            credentials=config.credentials,
            base_command=config.mac_table_command,
            connect_timeout=config.connect_timeout_seconds,
            command_timeout=config.host_timeout_seconds,
        )
        self.runner = ScanRunner(self.db, self.transport, config)

        # Nothing can be running yet; leftovers are from a previous process
        recovered = self.db.recover_interrupted_runs()
        if recovered:
            logger.warning(f"Marked {recovered} interrupted run(s) as failed")

        self._shutdown_event = asyncio.Event()
        self._background: set[asyncio.Task] = set()
        self._api_runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_post("/api/jobs", self._handle_save_job)
        app.router.add_get("/api/jobs", self._handle_list_jobs)
        app.router.add_get("/api/jobs/{job_id}", self._handle_get_job)
        app.router.add_delete("/api/jobs/{job_id}", self._handle_delete_job)
        app.router.add_post("/api/jobs/{job_id}/run", self._handle_run_job)
        app.router.add_get("/api/jobs/{job_id}/runs", self._handle_list_runs)
        app.router.add_get("/api/jobs/{job_id}/devices", self._handle_list_devices)
        app.router.add_delete(
            "/api/jobs/{job_id}/devices/{device_id}", self._handle_delete_device
        )
        app.router.add_post(
            "/api/jobs/{job_id}/hosts/{host_id}/test", self._handle_test_host
        )
        app.router.add_get("/api/notifications", self._handle_list_notifications)
        app.router.add_post(
            "/api/notifications/{notification_id}/read", self._handle_mark_read
        )
        app.router.add_get("/api/health", self._handle_health)
        return app

    async def start(self) -> None:
        """Start the API server and wait for shutdown."""
        logger.info("Starting MAC Tracker Service")
        self._api_runner = web.AppRunner(self.build_app())
        await self._api_runner.setup()
        site = web.TCPSite(self._api_runner, self.config.api_host, self.config.api_port)
        await site.start()
        logger.info(f"API server started on {self.config.api_host}:{self.config.api_port}")

        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the service; runs in flight are allowed to finish."""
        logger.info("Stopping MAC Tracker Service")
        self._shutdown_event.set()

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        if self._api_runner:
            await self._api_runner.cleanup()
            self._api_runner = None

    async def _run_in_background(self, job_id: str) -> None:
        try:
            await self.runner.run_job(job_id)
        except MacTrackerError as e:
            logger.error(f"Background run of job {job_id} failed: {e}")
        except Exception:
            logger.exception(f"Background run of job {job_id} crashed")

    # -------------------------------------------------------------------------
    # API Handlers
    # -------------------------------------------------------------------------

    async def _handle_save_job(self, request: web.Request) -> web.Response:
        """Handle POST /api/jobs."""
        try:
            payload = JobPayload.model_validate(await request.json())
        except ValidationError as e:
            return web.json_response(
                {"status": "error", "message": "Invalid job", "errors": e.errors(include_url=False, include_context=False)},
                status=400,
            )
        except ValueError:
            return _error("Request body must be JSON", 400)

        try:
            existing = self.db.get_job(payload.id) if payload.id else None
            job = payload.to_job(existing)
            self.db.save_job(job)
            logger.info(f"Saved job {job.name} (id={job.id}, hosts={len(job.hosts)})")
            return web.json_response(
                {"status": "ok", "job": _job_to_dict(job)},
                status=200 if existing else 201,
            )
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_list_jobs(self, request: web.Request) -> web.Response:
        """Handle GET /api/jobs."""
        try:
            jobs = self.db.list_jobs()
            return web.json_response({"jobs": [_job_to_dict(j) for j in jobs]})
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_get_job(self, request: web.Request) -> web.Response:
        """Handle GET /api/jobs/{job_id}."""
        job_id = request.match_info["job_id"]
        try:
            job = self.db.get_job(job_id)
            if not job:
                return _error("Job not found", 404)
            runs = self.db.get_runs(job_id, limit=1)
            return web.json_response({
                "job": _job_to_dict(job),
                "running": self.runner.registry.is_running(job_id),
                "last_run": _run_to_dict(runs[0]) if runs else None,
            })
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_delete_job(self, request: web.Request) -> web.Response:
        """Handle DELETE /api/jobs/{job_id}."""
        job_id = request.match_info["job_id"]
        if self.runner.registry.is_running(job_id):
            return _error("Job is running", 409)
        try:
            if self.db.delete_job(job_id):
                logger.info(f"Deleted job {job_id}")
                return web.json_response({"status": "ok"})
            return _error("Job not found", 404)
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_run_job(self, request: web.Request) -> web.Response:
        """
        Handle POST /api/jobs/{job_id}/run.

        Starts the run in the background; with ?wait=true the response
        carries the finished run instead.
        """
        job_id = request.match_info["job_id"]
        if self.runner.registry.is_running(job_id):
            return _error(f"Job {job_id} is already running", 409)

        try:
            job = self.db.get_job(job_id)
        except MacTrackerError as e:
            return _error(str(e), 500)
        if job is None or job.status != JobStatus.ACTIVE:
            return _error(f"Job {job_id} not found or inactive", 404)
        if not job.enabled_hosts:
            return _error(f"No enabled SSH hosts configured for job {job_id}", 400)

        if request.query.get("wait", "").lower() in ("1", "true", "yes"):
            try:
                run = await self.runner.run_job(job_id)
            except AllHostsFailedError as e:
                failed = self.db.get_run(e.run_id)
                return web.json_response(
                    {
                        "status": "failed",
                        "message": str(e),
                        "run": _run_to_dict(failed) if failed else None,
                    },
                    status=502,
                )
            except MacTrackerError as e:
                return _error(str(e), 500)
            return web.json_response({"status": "completed", "run": _run_to_dict(run)})

        task = asyncio.create_task(self._run_in_background(job_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return web.json_response(
            {"status": "started", "message": f"Run of job {job.name} started"},
            status=202,
        )

    async def _handle_list_runs(self, request: web.Request) -> web.Response:
        """Handle GET /api/jobs/{job_id}/runs."""
        job_id = request.match_info["job_id"]
        try:
            limit = int(request.query.get("limit", "50"))
            runs = self.db.get_runs(job_id, limit=limit)
            return web.json_response({"runs": [_run_to_dict(r) for r in runs]})
        except ValueError:
            return _error("limit must be an integer", 400)
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_list_devices(self, request: web.Request) -> web.Response:
        """Handle GET /api/jobs/{job_id}/devices."""
        job_id = request.match_info["job_id"]
        status = request.query.get("status")
        try:
            status_filter = DeviceStatus(status) if status else None
        except ValueError:
            return _error(f"Unknown device status: {status}", 400)

        try:
            devices = self.db.get_known_devices(job_id, status=status_filter)
            return web.json_response({
                "devices": [_device_to_dict(d) for d in devices.values()],
                "total": len(devices),
            })
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_delete_device(self, request: web.Request) -> web.Response:
        """Handle DELETE /api/jobs/{job_id}/devices/{device_id}."""
        job_id = request.match_info["job_id"]
        device_id = request.match_info["device_id"]
        if self.runner.registry.is_running(job_id):
            return _error("Job is running", 409)
        try:
            if self.db.delete_known_device(job_id, device_id):
                logger.info(f"Deleted device {device_id} from job {job_id}")
                return web.json_response({"status": "ok"})
            return _error("Device not found", 404)
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_test_host(self, request: web.Request) -> web.Response:
        """Handle POST /api/jobs/{job_id}/hosts/{host_id}/test."""
        job_id = request.match_info["job_id"]
        host_id = request.match_info["host_id"]
        try:
            job = self.db.get_job(job_id)
        except MacTrackerError as e:
            return _error(str(e), 500)

        host = next((h for h in job.hosts if h.id == host_id), None) if job else None
        if host is None:
            return _error("Host not found", 404)

        result = await self.transport.test_connection(host)
        if result.success:
            return web.json_response({"status": "ok", "message": "Connection successful"})
        return web.json_response(
            {"status": "error", "message": result.error or "Connection failed"},
            status=502,
        )

    async def _handle_list_notifications(self, request: web.Request) -> web.Response:
        """Handle GET /api/notifications."""
        job_id = request.query.get("job_id")
        unread_only = request.query.get("unread", "").lower() in ("1", "true", "yes")
        try:
            limit = int(request.query.get("limit", "100"))
            notifications = self.db.get_notifications(
                job_id=job_id, unread_only=unread_only, limit=limit
            )
            return web.json_response({
                "notifications": [_notification_to_dict(n) for n in notifications],
            })
        except ValueError:
            return _error("limit must be an integer", 400)
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_mark_read(self, request: web.Request) -> web.Response:
        """Handle POST /api/notifications/{notification_id}/read."""
        notification_id = request.match_info["notification_id"]
        try:
            if self.db.mark_notification_read(notification_id):
                return web.json_response({"status": "ok"})
            return _error("Notification not found", 404)
        except MacTrackerError as e:
            return _error(str(e), 500)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /api/health."""
        try:
            jobs = self.db.list_jobs()
        except MacTrackerError as e:
            return _error(str(e), 500)
        return web.json_response({
            "status": "ok",
            "service": "mac-tracker",
            "jobs": len(jobs),
            "running": sorted(self.runner.registry.active_runs()),
        })


def main():
    """Entry point for mac-tracker service."""
    import argparse

    parser = argparse.ArgumentParser(description="MAC Tracker Service")
    parser.add_argument("--config", type=str, help="Path to config file")
    parser.add_argument("--host", type=str, default=None, help="API host")
    parser.add_argument("--port", type=int, default=None, help="API port")
    parser.add_argument("--log-level", type=str, default="INFO", help="Log level")
    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Load configuration
    if args.config:
        config = TrackerConfig.from_yaml(Path(args.config))
    else:
        config = TrackerConfig.from_env()

    # Override with CLI args
    if args.host:
        config.api_host = args.host
    if args.port:
        config.api_port = args.port
    config.log_level = args.log_level

    # Load credentials from separate file
    config.load_credentials()

    # Validate
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        sys.exit(1)

    service = MacTrackerService(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        loop.run_until_complete(service.stop())
        loop.close()


if __name__ == "__main__":
    main()
