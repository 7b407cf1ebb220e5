"""
Notification rules.

Turns reconciliation events into Notification records according to the
job's preferences. Pure: nothing here touches the database.
"""

from __future__ import annotations

from typing import Iterable

from ._types import DeviceEvent, EventKind, Job, Notification, NotificationType


def _new_device_notification(job: Job, event: DeviceEvent) -> Notification | None:
    if event.whitelisted:
        if not job.notify_new_macs:
            return None
        return Notification(
            job_id=job.id,
            job_name=job.name,
            type=NotificationType.INFORMATIONAL,
            message=(
                f"New authorized device discovered: {event.mac_address} "
                f"on {event.host_name} ({event.interface_name})"
            ),
            mac_address=event.mac_address,
            host_name=event.host_name,
            interface_name=event.interface_name,
        )

    if not job.notify_unauthorized_macs:
        return None
    return Notification(
        job_id=job.id,
        job_name=job.name,
        type=NotificationType.WARNING,
        message=(
            f"Unauthorized device detected: {event.mac_address} "
            f"on {event.host_name} ({event.interface_name})"
        ),
        mac_address=event.mac_address,
        host_name=event.host_name,
        interface_name=event.interface_name,
    )


def _moved_notification(job: Job, event: DeviceEvent) -> Notification | None:
    if not job.notify_ip_changes:
        return None
    return Notification(
        job_id=job.id,
        job_name=job.name,
        type=NotificationType.INFORMATIONAL,
        message=(
            f"Device {event.mac_address} moved from {event.previous_interface} "
            f"to {event.interface_name} on {event.host_name}"
        ),
        mac_address=event.mac_address,
        host_name=event.host_name,
        interface_name=event.interface_name,
    )


def build_notifications(job: Job, events: Iterable[DeviceEvent]) -> list[Notification]:
    """
    Build notifications for a job's reconciliation events.

    New whitelisted devices give informational notices, new unknown devices
    give warnings, and interface moves give informational notices, each
    gated by its own toggle. With notifications_enabled off nothing is
    produced.
    """
    if not job.notifications_enabled:
        return []

    notifications = []
    for event in events:
        if event.kind == EventKind.NEW_DEVICE:
            notification = _new_device_notification(job, event)
        elif event.kind == EventKind.INTERFACE_MOVED:
            notification = _moved_notification(job, event)
        else:
            notification = None

        if notification is not None:
            notifications.append(notification)

    return notifications


def count_warnings(notifications: Iterable[Notification]) -> int:
    """Count warning-level notifications."""
    return sum(1 for n in notifications if n.type == NotificationType.WARNING)
