"""Logging setup for the governance core.

Library modules only call ``logging.getLogger(__name__)``. The host decides
where records go by calling :func:`configure_logging` once at startup.

Service records carry the workspace and approval request they concern, so one
request can be followed from creation through escalation to resolution::

    2026-03-01T10:00:00 INFO governance.core.approval.service [ws=5f1c... req=9a2e...] ...

Records logged without that context show ``-`` in both slots.
"""

import logging
import logging.handlers
import os
from typing import Any, Dict, Optional

from governance.core.config import Settings, get_settings

LOGGER_NAME = "governance"
LOG_FILE = "governance.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [ws=%(workspace_id)s req=%(request_id)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

CONTEXT_FIELDS = ("workspace_id", "request_id")
NO_CONTEXT = "-"


def log_context(workspace_id: Any = None, request_id: Any = None) -> Dict[str, str]:
    """Build the ``extra`` mapping that tags a record with its workspace and request."""
    return {
        "workspace_id": str(workspace_id) if workspace_id else NO_CONTEXT,
        "request_id": str(request_id) if request_id else NO_CONTEXT,
    }


class GovernanceContextFilter(logging.Filter):
    """Fill in the context fields on records logged without ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field_name in CONTEXT_FIELDS:
            if not hasattr(record, field_name):
                setattr(record, field_name, NO_CONTEXT)
        return True


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """
    Configure the ``governance`` logger tree from settings.

    Calling it again replaces the handlers installed by the previous call.

    Raises:
        ValueError: If ``log_level`` is not a logging level name
    """
    settings = settings or get_settings()
    level_name = "DEBUG" if settings.debug else settings.log_level.upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(
            f"Invalid log level: {settings.log_level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers = []
    if settings.file_logging:
        os.makedirs(settings.log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(settings.log_dir, LOG_FILE),
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
        ))
    if settings.console_logging:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    context = GovernanceContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)
        logger.addHandler(handler)

    return logger
