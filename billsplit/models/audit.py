"""
Audit Models for Bill Split Ledger

Every remote synchronization and every user edit is logged as an audit
event. This provides:
1. A trace of what reached the store and what only stayed local
2. Debugging information when the network misbehaves
3. A record of which months were archived and when

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger edits
    ITEM_ADDED = "item_added"
    ITEM_UPDATED = "item_updated"
    ITEM_DELETED = "item_deleted"

    # Settlement document
    LEDGER_LOADED = "ledger_loaded"
    LEDGER_LOAD_FALLBACK = "ledger_load_fallback"
    LEDGER_INITIALIZED = "ledger_initialized"
    LEDGER_SAVED = "ledger_saved"
    LEDGER_SAVE_FAILED = "ledger_save_failed"

    # Monthly archive
    SNAPSHOT_SAVED = "snapshot_saved"
    SNAPSHOT_FAILED = "snapshot_failed"
    SNAPSHOTS_CLEARED = "snapshots_cleared"


class AuditSeverity(str, Enum):
    """Log level an event is written at."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    One logged fact about the ledger, its sync or the archive.

    Built through AuditEventBuilder rather than by hand.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Random id for correlating log lines"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC time the event was built"
    )

    event_type: AuditEventType = Field(
        ...,
        description="What happened"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Level used when logging"
    )

    # Subject of the event
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'item', 'ledger', 'snapshot')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Item id or year-month key"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="One-line summary for humans"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured extras such as totals or counts"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="True for edits made through the session"
    )

    def to_log_dict(self) -> dict:
        """Flat keyword arguments for a structlog call."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Factory methods, one per event the ledger emits.

    Usage:
        event = AuditEventBuilder.ledger_saved(total_mine, total_siblings)
        event = AuditEventBuilder.snapshot_saved("2025-08", created=True)
    """

    @staticmethod
    def item_changed(
        event_type: AuditEventType,
        owner: str,
        item_id: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.DEBUG,
            entity_type="item",
            entity_id=item_id,
            description=f"Item {verb} on {owner} side",
            details={"owner": owner, **(details or {})},
            is_user_action=True,
        )

    @staticmethod
    def ledger_loaded(item_counts: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            entity_type="ledger",
            description="Settlement document loaded from store",
            details={"item_counts": item_counts},
        )

    @staticmethod
    def ledger_load_fallback(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOAD_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description="Store unreachable, using default ledger",
            error_message=reason,
        )

    @staticmethod
    def ledger_initialized() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_INITIALIZED,
            entity_type="ledger",
            description="Settlement document missing, wrote default ledger",
        )

    @staticmethod
    def ledger_saved(total_mine: int, total_siblings: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_SAVED,
            entity_type="ledger",
            description="Settlement document saved",
            details={
                "total_mine": total_mine,
                "total_siblings": total_siblings,
            },
        )

    @staticmethod
    def ledger_save_failed(reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            description="Settlement document save failed after retries",
            error_message=reason,
        )

    @staticmethod
    def snapshot_saved(
        year_month: str,
        created: bool,
        settlement_amount: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_SAVED,
            entity_type="snapshot",
            entity_id=year_month,
            description=(
                f"Monthly record {'created' if created else 'updated'}: {year_month}"
            ),
            details={
                "created": created,
                "settlement_amount": settlement_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def snapshot_failed(year_month: str, stage: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="snapshot",
            entity_id=year_month,
            description=f"Monthly record save failed while {stage}",
            details={"stage": stage},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def snapshots_cleared(count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOTS_CLEARED,
            severity=AuditSeverity.WARNING,
            entity_type="snapshot",
            description=f"Deleted {count} monthly records",
            details={"count": count},
            is_user_action=True,
        )
