"""
Audit Logger

DESIGN DECISION: Every edit, save and archive step emits an audit event,
so a flaky network can be reconstructed from the log alone. Events are
structured JSON lines; a failure to log is reported on the stdlib logger
and never reaches the caller.
"""

import logging
from typing import Optional

import structlog

from billsplit.models.audit import AuditEvent, AuditSeverity


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog on top of the stdlib logging module."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(ensure_ascii=False)
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Writes AuditEvents through structlog.

    Events are logged locally at their own severity. The store only
    holds ledger data, so audit events are not persisted remotely.
    """

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._logger = logger or structlog.get_logger("billsplit.audit")

    def log(self, event: AuditEvent) -> None:
        """Log an audit event. Never raises."""
        log_dict = event.to_log_dict()

        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Logging must not break the main flow
            logging.getLogger(__name__).warning("Failed to write audit event: %s", e)
