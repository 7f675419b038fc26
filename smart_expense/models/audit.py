"""
Audit Models for the Ledger Core

Every state change the orchestrator performs is logged for audit purposes.
This provides:
1. Traceability of every materialized transaction back to its rule
2. Visibility into silently-tolerated failures (e.g. unfunded goals)
3. Debugging information when a snapshot looks wrong

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Snapshot handling
    SNAPSHOT_LOADED = "snapshot_loaded"

    # Recurring rules
    RULE_CREATED = "rule_created"
    RULE_MATERIALIZED = "rule_materialized"
    RULE_SKIPPED = "rule_skipped"
    RULE_FAILED = "rule_failed"
    RULES_PROCESSED = "rules_processed"

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_ROLLED_BACK = "transaction_rolled_back"
    CATEGORY_AUTO_CREATED = "category_auto_created"

    # Savings goals
    GOAL_FUNDED = "goal_funded"
    GOAL_COMPLETED = "goal_completed"
    GOAL_FUNDING_FAILED = "goal_funding_failed"

    # Deletions of any record type
    RECORD_DELETED = "record_deleted"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # Context - which user and which record
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'rule', 'goal')"
    )
    entity_id: Optional[str] = None

    # Correlation - all events of one session sync share an id
    correlation_id: Optional[UUID] = None

    # Fixed text only; values taken from records belong in details
    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.rule_materialized(rule, count, correlation_id)
        event = AuditEventBuilder.goal_funded(goal, amount, correlation_id)
    """

    @staticmethod
    def snapshot_loaded(
        user_id: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_LOADED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            entity_type="ledger",
            correlation_id=correlation_id,
            description="Ledger snapshot loaded",
            details=counts,
        )

    @staticmethod
    def rule_created(
        user_id: str,
        rule_id: str,
        frequency: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_CREATED,
            user_id=user_id,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring rule created ({frequency})",
            details={"frequency": frequency},
        )

    @staticmethod
    def rule_materialized(
        user_id: str,
        rule_id: str,
        transaction_ids: list[str],
        next_due_date: Optional[datetime],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_MATERIALIZED,
            user_id=user_id,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Rule materialized {len(transaction_ids)} transaction(s)",
            details={
                "transaction_ids": transaction_ids,
                "next_due_date": next_due_date.isoformat() if next_due_date else None,
            },
        )

    @staticmethod
    def rule_skipped(
        user_id: str,
        rule_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_SKIPPED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description="Rule skipped",
            details={"reason": reason},
        )

    @staticmethod
    def rule_failed(
        user_id: str,
        rule_id: Optional[str],
        reason: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description="Rule rejected by scheduler",
            error_message=reason,
            details={"issues": issues},
        )

    @staticmethod
    def rules_processed(
        user_id: str,
        materialized: int,
        skipped: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULES_PROCESSED,
            user_id=user_id,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Scheduler pass materialized {materialized} transaction(s)",
            details={
                "materialized": materialized,
                "skipped": skipped,
                "failed": failed,
            },
        )

    @staticmethod
    def transaction_created(
        user_id: str,
        transaction_id: str,
        tx_type: str,
        amount: float,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created ({tx_type})",
            details={
                "type": tx_type,
                "amount": amount,
                "category": category,
            },
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction edited",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def transaction_rolled_back(
        user_id: str,
        transaction_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ROLLED_BACK,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction removed after failed goal funding",
            error_message=reason,
        )

    @staticmethod
    def category_auto_created(
        user_id: str,
        category_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_AUTO_CREATED,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description="Category created on first use",
            details={"name": name},
        )

    @staticmethod
    def goal_funded(
        user_id: str,
        goal_id: str,
        amount: float,
        current_amount: float,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_FUNDED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Goal funded with {amount} ({source})",
            details={
                "amount": amount,
                "current_amount": current_amount,
                "source": source,
            },
        )

    @staticmethod
    def goal_completed(
        user_id: str,
        goal_id: str,
        target_amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_COMPLETED,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Savings goal reached its target",
            details={"target_amount": target_amount},
        )

    @staticmethod
    def goal_funding_failed(
        user_id: str,
        goal_id: str,
        transaction_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_FUNDING_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Linked goal could not be funded",
            error_message=error_message,
            details={"transaction_id": transaction_id},
        )

    @staticmethod
    def record_deleted(
        user_id: str,
        entity_type: str,
        entity_id: str,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Deleted {entity_type}",
            details={"reason": reason} if reason else {},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
