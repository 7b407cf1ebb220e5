"""
Inventory reconciliation.

Merges one job's pooled observation batch against the stored inventory:
unknown (MAC, host) pairs become new devices, known pairs are refreshed and
checked for interface moves, and pairs the batch did not mention are marked
inactive. Every observation is appended to the device history.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import AbstractSet, Optional

from ._types import (
    DeviceEvent,
    DeviceHistoryEntry,
    DeviceKey,
    DeviceStatus,
    EventKind,
    KnownDevice,
    Observation,
    ReconcileResult,
    now_utc,
)
from .inventory_db import InventoryDatabase

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Applies an observation batch to a job's known devices.

    Writes go through the given connection when one is supplied so the
    caller can commit reconciliation together with notifications, retention
    and run finalization.
    """

    def __init__(self, db: InventoryDatabase):
        self.db = db

    def reconcile(
        self,
        job_id: str,
        observations: list[Observation],
        whitelist: AbstractSet[str],
        conn: Optional[sqlite3.Connection] = None,
        now: Optional[datetime] = None,
    ) -> ReconcileResult:
        """
        Reconcile observations against the stored inventory of a job.

        Args:
            job_id: Job the batch belongs to
            observations: Pooled batch in host order, then line order
            whitelist: Authorized MACs, frozen for this call
            conn: Open transaction to join
            now: Timestamp for first/last seen (defaults to now)

        Returns:
            Counters and the new-device / interface-moved events
        """
        now = now or now_utc()
        known = self.db.get_known_devices(job_id, conn=conn)

        # Collapse duplicates; a later line for the same key wins but keeps
        # the position of the first one.
        latest: dict[DeviceKey, Observation] = {}
        for obs in observations:
            latest[obs.key] = obs

        result = ReconcileResult(devices_found=len(latest))

        for key, obs in latest.items():
            device = known.get(key)
            if device is None:
                whitelisted = obs.mac_address in whitelist
                self.db.insert_known_device(
                    KnownDevice(
                        job_id=job_id,
                        mac_address=obs.mac_address,
                        host_name=obs.host_name,
                        interface_name=obs.interface_name,
                        vlan_id=obs.vlan_id,
                        whitelisted=whitelisted,
                        first_seen_at=now,
                        last_seen_at=now,
                        status=DeviceStatus.ACTIVE,
                    ),
                    conn=conn,
                )
                result.new_devices += 1
                result.events.append(DeviceEvent(
                    kind=EventKind.NEW_DEVICE,
                    mac_address=obs.mac_address,
                    host_name=obs.host_name,
                    interface_name=obs.interface_name,
                    vlan_id=obs.vlan_id,
                    whitelisted=whitelisted,
                ))
                continue

            if device.interface_name != obs.interface_name:
                result.events.append(DeviceEvent(
                    kind=EventKind.INTERFACE_MOVED,
                    mac_address=obs.mac_address,
                    host_name=obs.host_name,
                    interface_name=obs.interface_name,
                    vlan_id=obs.vlan_id,
                    whitelisted=device.whitelisted,
                    previous_interface=device.interface_name,
                ))
                logger.info(
                    f"Device {obs.mac_address} moved from {device.interface_name} "
                    f"to {obs.interface_name} on {obs.host_name}"
                )

            device.interface_name = obs.interface_name
            device.vlan_id = obs.vlan_id
            device.last_seen_at = now
            device.status = DeviceStatus.ACTIVE
            self.db.update_known_device(device, conn=conn)

        self.db.add_history_entries(
            [
                DeviceHistoryEntry(
                    job_id=job_id,
                    mac_address=obs.mac_address,
                    host_name=obs.host_name,
                    interface_name=obs.interface_name,
                    vlan_id=obs.vlan_id,
                    detected_at=now,
                )
                for obs in observations
            ],
            conn=conn,
        )

        unseen = [
            key for key, device in known.items()
            if key not in latest and device.status != DeviceStatus.INACTIVE
        ]
        self.db.mark_devices_inactive(job_id, unseen, conn=conn)
        result.inactive_devices = len(unseen)

        logger.info(
            f"Reconciled job {job_id}: {result.devices_found} devices, "
            f"{result.new_devices} new, {result.inactive_devices} now inactive"
        )
        return result
