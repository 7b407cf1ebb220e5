"""Tests for MAC tracker type definitions."""

import pytest

from mac_tracker._types import (
    DeviceKey,
    Host,
    Job,
    JobRun,
    JobStatus,
    KnownDevice,
    Observation,
    RetentionMode,
    RetentionPolicy,
    RunStatus,
    is_valid_mac,
    normalize_mac,
)


class TestMacHelpers:
    """Tests for MAC validation and normalization."""

    @pytest.mark.parametrize("mac", [
        "aa:bb:cc:dd:ee:ff",
        "AA:BB:CC:DD:EE:FF",
        "00-1a-2b-3c-4d-5e",
    ])
    def test_valid_macs(self, mac):
        """Should accept colon and hyphen forms in any case."""
        assert is_valid_mac(mac) is True

    @pytest.mark.parametrize("mac", [
        "aabb.ccdd.eeff",
        "aa:bb:cc:dd:ee",
        "aa:bb:cc:dd:ee:ff:00",
        "gg:bb:cc:dd:ee:ff",
        "",
    ])
    def test_invalid_macs(self, mac):
        """Should reject anything but six two-hex-digit groups."""
        assert is_valid_mac(mac) is False

    def test_normalize(self):
        """Should lowercase and use colons."""
        assert normalize_mac(" 00-1A-2B-3C-4D-5E ") == "00:1a:2b:3c:4d:5e"


class TestRetentionPolicy:
    """Tests for retention policy constructors."""

    def test_default_is_thirty_days(self):
        """Should default to 30 days."""
        policy = RetentionPolicy()
        assert policy.mode == RetentionMode.DAYS
        assert policy.days == 30

    def test_for_days_rejects_negative(self):
        """Should refuse negative day counts."""
        with pytest.raises(ValueError):
            RetentionPolicy.for_days(-1)

    def test_named_constructors(self):
        """Should build forever and remove policies."""
        assert RetentionPolicy.forever().mode == RetentionMode.FOREVER
        assert RetentionPolicy.remove_immediately().mode == RetentionMode.REMOVE
        assert RetentionPolicy.for_days(7) == RetentionPolicy(RetentionMode.DAYS, 7)


class TestJob:
    """Tests for job model."""

    def test_defaults(self):
        """Should be active with every notification enabled."""
        job = Job(name="Core switches")
        assert job.status == JobStatus.ACTIVE
        assert job.notifications_enabled is True
        assert job.notify_new_macs is True
        assert job.notify_unauthorized_macs is True
        assert job.notify_ip_changes is True
        assert job.vlan_id is None

    def test_enabled_hosts(self):
        """Should skip disabled hosts and keep order."""
        a = Host(name="sw-a", address="10.0.0.1")
        b = Host(name="sw-b", address="10.0.0.2", enabled=False)
        c = Host(name="sw-c", address="10.0.0.3")
        job = Job(name="j", hosts=[a, b, c])
        assert job.enabled_hosts == [a, c]


class TestHost:
    """Tests for host model."""

    def test_to_dict_hides_key_path(self):
        """Should report key presence, not the path."""
        host = Host(name="sw", address="10.0.0.1", private_key_path="/keys/sw")
        data = host.to_dict()
        assert data["has_private_key"] is True
        assert "private_key_path" not in data
        assert data["port"] == 22


class TestDeviceKey:
    """Tests for device identity."""

    def test_observation_and_device_share_key(self):
        """Should key observations and known devices the same way."""
        obs = Observation(
            mac_address="aa:bb:cc:dd:ee:ff",
            vlan_id=10,
            interface_name="Gi0/1",
            host_name="sw1",
        )
        device = KnownDevice(
            job_id="job",
            mac_address="aa:bb:cc:dd:ee:ff",
            host_name="sw1",
            interface_name="Gi0/2",
        )
        assert obs.key == device.key == DeviceKey("aa:bb:cc:dd:ee:ff", "sw1")

    def test_same_mac_different_host(self):
        """Should treat the same MAC on two hosts as two devices."""
        assert DeviceKey("aa:bb:cc:dd:ee:ff", "sw1") != DeviceKey("aa:bb:cc:dd:ee:ff", "sw2")


class TestJobRun:
    """Tests for job run model."""

    def test_starts_running(self):
        """Should start in running state with zero counters."""
        run = JobRun(job_id="job")
        assert run.status == RunStatus.RUNNING
        assert run.hosts_scanned == 0
        assert run.finished_at is None
        assert run.debug_info == []
