"""
Data Models Package

This package contains all Pydantic models used in the Bill Split Ledger.
All data flowing between the ledger and the store conforms to these schemas.
"""

from billsplit.models.ledger import (
    DEFAULT_ITEM_NAME,
    ExpenseItem,
    InvalidAmountError,
    Ledger,
    LedgerTotals,
    MonthlyRecord,
    Owner,
    current_year_month,
    default_ledger,
    parse_amount,
    settlement_amount,
    sum_amounts,
)
from billsplit.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_ITEM_NAME",
    "ExpenseItem",
    "InvalidAmountError",
    "Ledger",
    "LedgerTotals",
    "MonthlyRecord",
    "Owner",
    "current_year_month",
    "default_ledger",
    "parse_amount",
    "settlement_amount",
    "sum_amounts",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
