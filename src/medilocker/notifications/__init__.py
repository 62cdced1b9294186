"""Notification delivery."""

from medilocker.notifications.base import (
    NotificationMessage,
    NotificationSink,
    NotificationType,
    NullNotificationSink,
)
from medilocker.notifications.service import DatabaseNotificationSink

__all__ = [
    "DatabaseNotificationSink",
    "NotificationMessage",
    "NotificationSink",
    "NotificationType",
    "NullNotificationSink",
]
