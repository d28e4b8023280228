"""Audit logging package."""

from billsplit.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
