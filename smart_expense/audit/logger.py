"""
Audit Logger

DESIGN DECISION: Every state change the orchestrator makes is logged.
This provides:
1. Traceability of generated transactions back to their rules
2. Visibility into tolerated failures (skipped rules, unfunded goals)
3. Debugging capability

The audit logger:
- Is async so it composes with store I/O
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from smart_expense.models.audit import AuditEvent, AuditEventBuilder
from smart_expense.services.storage import AuditStorageInterface


# Configure structlog for local logging
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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, if one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
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

    async def log_snapshot_loaded(
        self,
        user_id: str,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.snapshot_loaded(
            user_id=user_id,
            counts=counts,
            correlation_id=correlation_id,
        ))

    async def log_rule_created(
        self,
        user_id: str,
        rule_id: str,
        frequency: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rule_created(
            user_id=user_id,
            rule_id=rule_id,
            frequency=frequency,
            correlation_id=correlation_id,
        ))

    async def log_rule_materialized(
        self,
        user_id: str,
        rule_id: str,
        transaction_ids: list[str],
        next_due_date: Optional[datetime],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the transactions one rule produced."""
        await self.log(AuditEventBuilder.rule_materialized(
            user_id=user_id,
            rule_id=rule_id,
            transaction_ids=transaction_ids,
            next_due_date=next_due_date,
            correlation_id=correlation_id,
        ))

    async def log_rule_skipped(
        self,
        user_id: str,
        rule_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rule_skipped(
            user_id=user_id,
            rule_id=rule_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_rule_failed(
        self,
        user_id: str,
        rule_id: Optional[str],
        reason: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rule_failed(
            user_id=user_id,
            rule_id=rule_id,
            reason=reason,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_rules_processed(
        self,
        user_id: str,
        materialized: int,
        skipped: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of a whole scheduler pass."""
        await self.log(AuditEventBuilder.rules_processed(
            user_id=user_id,
            materialized=materialized,
            skipped=skipped,
            failed=failed,
            correlation_id=correlation_id,
        ))

    async def log_transaction_created(
        self,
        user_id: str,
        transaction_id: str,
        tx_type: str,
        amount: float,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction_id,
            tx_type=tx_type,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_record_deleted(
        self,
        user_id: str,
        entity_type: str,
        entity_id: str,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_transaction_rolled_back(
        self,
        user_id: str,
        transaction_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_rolled_back(
            user_id=user_id,
            transaction_id=transaction_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_category_created(
        self,
        user_id: str,
        category_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.category_auto_created(
            user_id=user_id,
            category_id=category_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_goal_funded(
        self,
        user_id: str,
        goal_id: str,
        amount: float,
        current_amount: float,
        source: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_funded(
            user_id=user_id,
            goal_id=goal_id,
            amount=amount,
            current_amount=current_amount,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_goal_completed(
        self,
        user_id: str,
        goal_id: str,
        target_amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_completed(
            user_id=user_id,
            goal_id=goal_id,
            target_amount=target_amount,
            correlation_id=correlation_id,
        ))

    async def log_goal_funding_failed(
        self,
        user_id: str,
        goal_id: str,
        transaction_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_funding_failed(
            user_id=user_id,
            goal_id=goal_id,
            transaction_id=transaction_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a session sync or user action.
    Pass it through all subsequent operations.
    """
    return uuid4()
