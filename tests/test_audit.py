"""Tests for the audit logger."""

import pytest

from smart_expense.audit import AuditLogger, create_correlation_id
from smart_expense.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from smart_expense.services.storage import InMemoryAuditStorage


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("disk full")


class TestAuditLogger:
    """Tests for local and persisted audit logging."""

    @pytest.mark.asyncio
    async def test_persists_events(self):
        """Test that events reach the audit store."""
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await audit.log_transaction_created(
            user_id="u1",
            transaction_id="t1",
            tx_type="expense",
            amount=10,
            category="Food",
            correlation_id=correlation_id,
        )
        await audit.log_rule_skipped(
            user_id="u1",
            rule_id="r1",
            reason="missing next_due_date",
            correlation_id=correlation_id,
        )

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.TRANSACTION_CREATED,
            AuditEventType.RULE_SKIPPED,
        ]
        assert events[1].severity == AuditSeverity.WARNING

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_raised(self):
        """Test that a failing audit store doesn't break the caller."""
        audit = AuditLogger(BrokenAuditStorage())
        event_written = await audit.log(_sample_event())
        assert event_written is False

    @pytest.mark.asyncio
    async def test_local_only_logging(self):
        """Test that no store means success."""
        audit = AuditLogger()
        assert await audit.log(_sample_event()) is True

    @pytest.mark.asyncio
    async def test_recent_events_newest_first(self):
        """Test the audit store's recent view."""
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        await audit.log_category_created(user_id="u1", category_id="c1", name="Food")
        await audit.log_category_created(user_id="u1", category_id="c2", name="Rent")

        recent = await storage.get_recent_events(limit=1)
        assert [e.entity_id for e in recent] == ["c2"]


def _sample_event():
    return AuditEventBuilder.system_error(
        error_type="test",
        error_message="boom",
    )
