"""Notification dispatch for governance state transitions.

The core never delivers anything itself. It hands each transition to an
injected dispatcher (email, push, webhooks live behind it). Dispatch is
fire-and-forget: a failing dispatcher is logged and the transition that
triggered it still stands.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional, Protocol

from governance.core.config import get_settings

logger = logging.getLogger(__name__)


class NotificationEventType(str, Enum):
    """Events emitted by the approval and delegation services."""

    REQUEST_CREATED = "request_created"
    DECISION_RECORDED = "decision_recorded"
    REQUEST_ESCALATED = "request_escalated"
    REQUEST_RESOLVED = "request_resolved"
    REQUEST_CANCELLED = "request_cancelled"
    DELEGATION_CREATED = "delegation_created"
    DELEGATION_UPDATED = "delegation_updated"
    DELEGATION_REVOKED = "delegation_revoked"


class NotificationDispatcher(Protocol):
    """Observer notified on every state transition."""

    def notify(self, event: NotificationEventType, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Dispatcher that only writes events to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def notify(self, event: NotificationEventType, payload: Dict[str, Any]) -> None:
        logger.log(self.level, "Governance event %s: %s", event.value, payload)


def dispatch(
    notifier: Optional[NotificationDispatcher],
    event: NotificationEventType,
    payload: Dict[str, Any],
) -> bool:
    """
    Hand an event to the notifier without ever raising.

    Returns:
        True if the notifier accepted the event
    """
    if notifier is None or not get_settings().notifications_enabled:
        return False
    try:
        notifier.notify(event, payload)
        return True
    except Exception:
        # Log but dont fail the transition
        logger.warning("Notification %s failed", event.value, exc_info=True)
        return False
