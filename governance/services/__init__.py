"""Services surrounding the governance core."""

from governance.services.notifications import (
    NotificationDispatcher,
    NotificationEventType,
    LoggingNotifier,
    dispatch,
)

__all__ = [
    "NotificationDispatcher",
    "NotificationEventType",
    "LoggingNotifier",
    "dispatch",
]
