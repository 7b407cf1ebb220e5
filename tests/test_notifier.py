"""Tests for notification rules."""

from mac_tracker._types import DeviceEvent, EventKind, Job, NotificationType
from mac_tracker.notifier import build_notifications, count_warnings


def new_device(whitelisted: bool) -> DeviceEvent:
    return DeviceEvent(
        kind=EventKind.NEW_DEVICE,
        mac_address="aa:bb:cc:dd:ee:01",
        host_name="sw1",
        interface_name="Gi0/1",
        vlan_id=10,
        whitelisted=whitelisted,
    )


def moved() -> DeviceEvent:
    return DeviceEvent(
        kind=EventKind.INTERFACE_MOVED,
        mac_address="aa:bb:cc:dd:ee:01",
        host_name="sw1",
        interface_name="Gi0/7",
        previous_interface="Gi0/1",
    )


class TestBuildNotifications:
    """Tests for build_notifications."""

    def test_authorized_new_device_is_informational(self):
        """Should report whitelisted newcomers as informational."""
        job = Job(name="Core")
        [n] = build_notifications(job, [new_device(whitelisted=True)])

        assert n.type == NotificationType.INFORMATIONAL
        assert "New authorized device discovered" in n.message
        assert n.job_id == job.id
        assert n.job_name == "Core"
        assert n.mac_address == "aa:bb:cc:dd:ee:01"
        assert n.host_name == "sw1"
        assert n.interface_name == "Gi0/1"

    def test_unauthorized_new_device_is_warning(self):
        """Should report unknown newcomers as warnings."""
        [n] = build_notifications(Job(name="Core"), [new_device(whitelisted=False)])

        assert n.type == NotificationType.WARNING
        assert "Unauthorized device detected" in n.message

    def test_move_is_informational(self):
        """Should describe both interfaces of a move."""
        [n] = build_notifications(Job(name="Core"), [moved()])

        assert n.type == NotificationType.INFORMATIONAL
        assert "Gi0/1" in n.message
        assert "Gi0/7" in n.message
        assert n.interface_name == "Gi0/7"

    def test_master_toggle(self):
        """Should produce nothing when notifications are disabled."""
        job = Job(name="Core", notifications_enabled=False)
        events = [new_device(True), new_device(False), moved()]
        assert build_notifications(job, events) == []

    def test_individual_toggles(self):
        """Should honour each per-kind toggle."""
        events = [new_device(True), new_device(False), moved()]

        no_new = build_notifications(Job(name="j", notify_new_macs=False), events)
        assert [n.type for n in no_new] == [NotificationType.WARNING, NotificationType.INFORMATIONAL]

        no_warn = build_notifications(Job(name="j", notify_unauthorized_macs=False), events)
        assert count_warnings(no_warn) == 0
        assert len(no_warn) == 2

        no_moves = build_notifications(Job(name="j", notify_ip_changes=False), events)
        assert len(no_moves) == 2

    def test_count_warnings(self):
        """Should count warning notifications only."""
        notifications = build_notifications(
            Job(name="Core"), [new_device(False), new_device(False), new_device(True)]
        )
        assert count_warnings(notifications) == 2
