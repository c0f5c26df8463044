"""
Audit Logger

DESIGN DECISION: Every significant gateway action is logged.
This provides:
1. Traceability of streaming sessions and pipeline runs
2. Debugging capability when the vendor misbehaves
3. A record of account and sync activity on the backend

The audit logger:
- Is async so it can persist to the key-value store
- Gracefully handles failures (a broken audit sink never breaks a request)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from subscript_gateway.models.audit import AuditEvent, AuditSeverity
from subscript_gateway.services.storage.interface import AuditStorageInterface


_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
    structlog.processors.JSONRenderer(ensure_ascii=False),
]


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Route structlog through stdlib logging as JSON lines.

    Runs once at import with no level. Entry points call it again with
    the configured level, which also attaches a stdout handler.
    """
    if log_level:
        logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level.upper())

    structlog.configure(
        processors=_PROCESSORS,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Producers are stream sessions, the receipt pipeline, the image client
    and the backend handlers. Every event goes to:
    1. The local structlog stream (JSON lines, severity-mapped level)
    2. Optionally a KeyValueAuditStorage in the backend's key-value store
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Audit sink, usually a KeyValueAuditStorage writing
                    audit:<id> keys. If None, events only go to structlog.
        """
        self._storage = storage
        self._logger = structlog.get_logger("subscript_gateway.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always emits a structlog line. Writes to the audit sink if one is
        configured; sink failures are logged and reported as False.

        Returns True if the sink write succeeded (or no sink is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt scan)
    and pass it through all subsequent operations.
    """
    return uuid4()
