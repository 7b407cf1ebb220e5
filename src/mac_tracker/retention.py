"""
Retention of inactive inventory records.

Applied at the end of every completed reconciliation. Only inactive devices
of the job are candidates; active devices and history are never removed.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Optional

from ._types import RetentionMode, RetentionPolicy, now_utc
from .inventory_db import InventoryDatabase

logger = logging.getLogger(__name__)


def enforce_retention(
    db: InventoryDatabase,
    job_id: str,
    policy: RetentionPolicy,
    conn: Optional[sqlite3.Connection] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete inactive devices the policy no longer keeps.

    Returns:
        Number of devices deleted
    """
    if policy.mode == RetentionMode.FOREVER:
        return 0

    if policy.mode == RetentionMode.REMOVE:
        removed = db.delete_inactive_devices(job_id, conn=conn)
    else:
        cutoff = (now or now_utc()) - timedelta(days=policy.days)
        removed = db.delete_inactive_devices(job_id, last_seen_before=cutoff, conn=conn)

    if removed:
        logger.info(f"Retention removed {removed} inactive devices from job {job_id}")
    return removed
