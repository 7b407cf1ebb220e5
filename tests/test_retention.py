"""Tests for retention enforcement."""

import tempfile
from datetime import timedelta
from pathlib import Path

import pytest

from mac_tracker._types import DeviceStatus, Job, KnownDevice, RetentionPolicy, now_utc
from mac_tracker.inventory_db import InventoryDatabase
from mac_tracker.retention import enforce_retention


@pytest.fixture
def db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    database = InventoryDatabase(db_path)
    yield database

    db_path.unlink(missing_ok=True)
    db_path.with_suffix(".db-wal").unlink(missing_ok=True)
    db_path.with_suffix(".db-shm").unlink(missing_ok=True)


@pytest.fixture
def seeded(db: InventoryDatabase):
    """Job with one active and two inactive devices of different ages."""
    job = Job(name="Core")
    db.save_job(job)
    now = now_utc()

    def add(mac, days_ago, status):
        db.insert_known_device(KnownDevice(
            job_id=job.id,
            mac_address=mac,
            host_name="sw1",
            interface_name="Gi0/1",
            last_seen_at=now - timedelta(days=days_ago),
            status=status,
        ))

    add("aa:bb:cc:dd:ee:01", 8, DeviceStatus.INACTIVE)
    add("aa:bb:cc:dd:ee:02", 6, DeviceStatus.INACTIVE)
    add("aa:bb:cc:dd:ee:03", 60, DeviceStatus.ACTIVE)
    return job.id, now


def macs(db: InventoryDatabase, job_id: str) -> set[str]:
    return {k.mac_address for k in db.get_known_devices(job_id)}


class TestEnforceRetention:
    """Tests for enforce_retention."""

    def test_days_boundary(self, db, seeded):
        """Should delete the 8-day-old inactive device and keep the 6-day-old one."""
        job_id, now = seeded

        removed = enforce_retention(db, job_id, RetentionPolicy.for_days(7), now=now)

        assert removed == 1
        assert macs(db, job_id) == {"aa:bb:cc:dd:ee:02", "aa:bb:cc:dd:ee:03"}

    def test_forever_keeps_everything(self, db, seeded):
        """Should never delete under the forever policy."""
        job_id, now = seeded

        assert enforce_retention(db, job_id, RetentionPolicy.forever(), now=now) == 0
        assert len(macs(db, job_id)) == 3

    def test_remove_immediately(self, db, seeded):
        """Should delete every inactive device and keep active ones."""
        job_id, now = seeded

        removed = enforce_retention(db, job_id, RetentionPolicy.remove_immediately(), now=now)

        assert removed == 2
        assert macs(db, job_id) == {"aa:bb:cc:dd:ee:03"}

    def test_never_touches_active_devices(self, db, seeded):
        """Should keep old active devices even with zero-day retention."""
        job_id, now = seeded

        enforce_retention(db, job_id, RetentionPolicy.for_days(0), now=now)

        assert "aa:bb:cc:dd:ee:03" in macs(db, job_id)
